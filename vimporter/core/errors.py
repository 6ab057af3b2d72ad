"""Error kinds raised by the import pipeline.

Every per-video error ends that video's operation as failed; none of them
aborts the whole run.
"""

from __future__ import annotations

from typing import Iterable, Optional


class ImporterError(Exception):
    """Base class for importer errors."""


class AssetMissing(ImporterError, FileNotFoundError):
    """A local file expected by the cache does not exist on disk."""

    def __init__(self, path: object):
        super().__init__(f"asset_missing:{path}")
        self.path = str(path)


class InvalidState(ImporterError):
    """A protocol violation, or an empty value where one is required."""


class AmbiguousMatch(ImporterError):
    """More than one remote entry fingerprints to the same source video."""

    def __init__(self, video_id: str, index_ids: Iterable[str]):
        self.video_id = video_id
        self.index_ids = tuple(index_ids)
        super().__init__(f"ambiguous_match:{video_id} -> {', '.join(self.index_ids)}")


class UpstreamFailure(ImporterError):
    """A collaborator failed while a stage was in progress."""

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown"
        super().__init__(f"upstream_failure:{stage}: {detail}")


class OperationCancelled(ImporterError):
    """Cancellation was requested between two stages."""


class InvalidMetadata(ImporterError):
    """Source metadata is rejected by the index limits."""


class SourceError(ImporterError):
    """The source catalog cannot be read or is inconsistent."""


__all__ = [
    "ImporterError",
    "AssetMissing",
    "InvalidState",
    "AmbiguousMatch",
    "UpstreamFailure",
    "OperationCancelled",
    "InvalidMetadata",
    "SourceError",
]
