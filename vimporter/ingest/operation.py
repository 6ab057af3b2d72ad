"""Per-video import operation.

An operation decides which pipeline stages a source video still needs and
records the stages reached during the current run. Each requirement is
evaluated on its own so a run interrupted after one upload resumes without
repeating it.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Sequence

from vimporter.core.errors import InvalidState

from .asset_cache import CacheEntry
from .manifest import IndexedVideo
from .matcher import is_metadata_equivalent
from .models import SourceVideo
from .roles import AssetRole


class Stage(str, Enum):
    THUMBNAIL_UPLOADED = "thumbnail_uploaded"
    VIDEO_STREAMS_UPLOADED = "video_streams_uploaded"
    MANIFEST_UPLOADED = "manifest_uploaded"
    INDEX_UPDATED = "index_updated"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STAGES


TERMINAL_STAGES = frozenset({Stage.SUCCEEDED, Stage.FAILED})


class OperationState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[OperationState, dict[Stage, OperationState]] = {
    OperationState.PENDING: {
        Stage.THUMBNAIL_UPLOADED: OperationState.RUNNING,
        Stage.VIDEO_STREAMS_UPLOADED: OperationState.RUNNING,
        Stage.MANIFEST_UPLOADED: OperationState.RUNNING,
        Stage.INDEX_UPDATED: OperationState.RUNNING,
        Stage.SUCCEEDED: OperationState.SUCCEEDED,
        Stage.FAILED: OperationState.FAILED,
    },
    OperationState.RUNNING: {
        Stage.THUMBNAIL_UPLOADED: OperationState.RUNNING,
        Stage.VIDEO_STREAMS_UPLOADED: OperationState.RUNNING,
        Stage.MANIFEST_UPLOADED: OperationState.RUNNING,
        Stage.INDEX_UPDATED: OperationState.RUNNING,
        Stage.SUCCEEDED: OperationState.SUCCEEDED,
        Stage.FAILED: OperationState.FAILED,
    },
    OperationState.SUCCEEDED: {},
    OperationState.FAILED: {},
}


class ImportOperation:
    """Import state of one source video for the current run."""

    def __init__(
        self,
        video: SourceVideo,
        matches: Iterable[IndexedVideo],
        cache_entry: CacheEntry,
        *,
        thumbnail_roles: Sequence[AssetRole] = (),
        stream_roles: Sequence[AssetRole] = (),
        force_full_upload: bool = False,
    ):
        self.video = video
        self.matches = tuple(matches)
        self.cache_entry = cache_entry
        self.thumbnail_roles = list(thumbnail_roles)
        self.stream_roles = list(stream_roles)
        self.force_full_upload = force_full_upload
        self._state = OperationState.PENDING
        self._trace: list[Stage] = []

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def trace(self) -> tuple[Stage, ...]:
        return tuple(self._trace)

    @property
    def is_completed(self) -> bool:
        return self._state in {OperationState.SUCCEEDED, OperationState.FAILED}

    @property
    def succeeded(self) -> bool:
        return self._state is OperationState.SUCCEEDED

    @property
    def is_ambiguous(self) -> bool:
        return len(self.matches) > 1

    @property
    def existing_entry(self) -> Optional[IndexedVideo]:
        """The single matched entry, or None for a first publication."""
        return self.matches[0] if len(self.matches) == 1 else None

    def trace_stage(self, stage: Stage) -> None:
        next_state = _TRANSITIONS[self._state].get(stage)
        if next_state is None:
            raise InvalidState(f"stage_after_completion:{stage.value}")
        self._trace.append(stage)
        self._state = next_state

    def has_traced(self, stage: Stage) -> bool:
        return stage in self._trace

    @property
    def _has_capable_publication(self) -> bool:
        return any(
            entry.last_valid_manifest is not None and entry.last_valid_manifest.has_last_specifications
            for entry in self.matches
        )

    @property
    def requires_thumbnail_upload(self) -> bool:
        if self.has_traced(Stage.THUMBNAIL_UPLOADED):
            return False
        if not self.thumbnail_roles:
            return False
        if self.force_full_upload:
            return True
        if self._has_capable_publication:
            return False
        return not self.cache_entry.has_uploaded_all(self.thumbnail_roles, self.cache_entry.batch_id)

    @property
    def requires_video_stream_upload(self) -> bool:
        if self.has_traced(Stage.VIDEO_STREAMS_UPLOADED):
            return False
        if not self.stream_roles:
            return False
        if self.force_full_upload:
            return True
        if self._has_capable_publication:
            return False
        return not self.cache_entry.has_uploaded_all(self.stream_roles, self.cache_entry.batch_id)

    @property
    def requires_manifest_upload(self) -> bool:
        if self.has_traced(Stage.MANIFEST_UPLOADED):
            return False
        if self.force_full_upload:
            return True
        if self.requires_thumbnail_upload or self.requires_video_stream_upload:
            return True
        if not self.matches:
            return True
        return not any(
            entry.last_valid_manifest is not None
            and entry.last_valid_manifest.has_last_specifications
            and is_metadata_equivalent(entry, self.video)
            for entry in self.matches
        )

    @property
    def requires_index_update(self) -> bool:
        if self.has_traced(Stage.INDEX_UPDATED):
            return False
        return self.has_traced(Stage.MANIFEST_UPLOADED) or not self.matches

    def required_stages(self) -> list[Stage]:
        """Stages still needed, in pipeline order, as seen before any upload."""
        stages = []
        if self.requires_thumbnail_upload:
            stages.append(Stage.THUMBNAIL_UPLOADED)
        if self.requires_video_stream_upload:
            stages.append(Stage.VIDEO_STREAMS_UPLOADED)
        if self.requires_manifest_upload:
            stages.append(Stage.MANIFEST_UPLOADED)
        if self.requires_manifest_upload or self.requires_index_update:
            stages.append(Stage.INDEX_UPDATED)
        return stages


__all__ = ["Stage", "TERMINAL_STAGES", "OperationState", "ImportOperation"]
