from __future__ import annotations

from typing import Iterable, Optional

from vimporter.core.errors import AmbiguousMatch

from .manifest import IndexedVideo
from .models import SourceVideo


def find_matches(video: SourceVideo, catalog: Iterable[IndexedVideo]) -> list[IndexedVideo]:
    """Return the catalog entries published from this video or one of its legacy ids.

    An empty list means the video was never published. More than one entry is
    a cross-id collision that callers must surface, see :func:`require_single_match`.
    """
    hashes = set(video.all_id_hashes)
    matches: dict[str, IndexedVideo] = {}
    for entry in catalog:
        video_id_hash = entry.video_id_hash
        if video_id_hash is not None and video_id_hash in hashes:
            matches.setdefault(entry.index_id, entry)
    return list(matches.values())


def require_single_match(video: SourceVideo, matches: list[IndexedVideo]) -> Optional[IndexedVideo]:
    if len(matches) > 1:
        raise AmbiguousMatch(video.id, [entry.index_id for entry in matches])
    return matches[0] if matches else None


def is_metadata_equivalent(entry: IndexedVideo, video: SourceVideo) -> bool:
    """True when the published manifest already carries the source's id, title and description."""
    manifest = entry.last_valid_manifest
    if manifest is None:
        return False
    return (
        entry.video_id_hash == video.video_id_hash
        and manifest.title == video.title
        and manifest.description == video.description
    )


__all__ = ["find_matches", "require_single_match", "is_metadata_equivalent"]
