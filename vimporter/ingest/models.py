from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .fingerprint import fingerprint, fingerprints

__all__ = ["MediaInfo", "SourceFile", "SourceVideo"]


@dataclass(slots=True)
class MediaInfo:
    """Dimensions and duration reported by ffprobe."""

    width: int
    height: int
    duration_s: Optional[float] = None


@dataclass(slots=True)
class SourceFile:
    """A materialised local source file."""

    path: Path
    width: int
    height: int

    def exists(self) -> bool:
        return self.path.exists()

    def size_bytes(self) -> int:
        return self.path.stat().st_size


@dataclass(slots=True)
class SourceVideo:
    """A video to import, as described by a source reader."""

    id: str
    title: str
    description: str = ""
    old_ids: tuple[str, ...] = ()
    duration_s: Optional[float] = None
    video_file: Optional[SourceFile] = None
    thumbnail_file: Optional[SourceFile] = None

    @property
    def all_ids(self) -> Iterator[str]:
        yield self.id
        yield from self.old_ids

    @property
    def video_id_hash(self) -> str:
        return fingerprint(self.id)

    @property
    def all_id_hashes(self) -> tuple[str, ...]:
        return fingerprints(self.all_ids)
