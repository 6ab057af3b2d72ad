from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from vimporter import __version__

from .fingerprint import fingerprint

CLIENT_VERSION = __version__
# Manifests written by importer releases older than this lack the current
# asset layout and must be fully re-published.
LAST_SPECIFICATIONS_VERSION = (0, 3)


class PersonalData(BaseModel):
    """Importer-owned data embedded in a manifest."""

    model_config = ConfigDict(extra="ignore")

    client_name: Optional[str] = None
    client_version: Optional[str] = None
    video_id_hash: Optional[str] = None

    @classmethod
    def build_new(cls, video_id: str, client_name: str) -> "PersonalData":
        return cls(
            client_name=client_name,
            client_version=CLIENT_VERSION,
            video_id_hash=fingerprint(video_id),
        )


class ManifestSource(BaseModel):
    """A published audio or video stream."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["audio", "video"]
    quality: str
    reference: str
    size_bytes: int = 0


class ManifestThumbnail(BaseModel):
    """Published thumbnail sources keyed by width, e.g. ``"480w"``."""

    model_config = ConfigDict(extra="forbid")

    aspect_ratio: float
    sources: Dict[str, str]


class Manifest(BaseModel):
    """Metadata document describing a published video."""

    model_config = ConfigDict(extra="ignore")

    title: str
    description: str = ""
    duration_s: float = 0.0
    original_quality: str = ""
    batch_id: str = ""
    created_at_ms: int = 0
    updated_at_ms: int = 0
    thumbnail: Optional[ManifestThumbnail] = None
    sources: List[ManifestSource] = Field(default_factory=list)
    personal_data: Optional[PersonalData] = None

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, ensure_ascii=False)


class IndexedManifest(Manifest):
    """The last valid manifest of an index entry, with its content hash."""

    hash: str

    @property
    def has_last_specifications(self) -> bool:
        version = self.personal_data.client_version if self.personal_data else None
        parsed = parse_client_version(version)
        if parsed is None:
            return False
        return parsed >= LAST_SPECIFICATIONS_VERSION


class IndexedVideo(BaseModel):
    """A previously published entry of the remote catalog."""

    model_config = ConfigDict(extra="ignore")

    index_id: str
    created_at: datetime
    last_valid_manifest: Optional[IndexedManifest] = None

    @property
    def video_id_hash(self) -> Optional[str]:
        manifest = self.last_valid_manifest
        if manifest is None or manifest.personal_data is None:
            return None
        return manifest.personal_data.video_id_hash


RemoteEntry = IndexedVideo

_CATALOG_ADAPTER = TypeAdapter(List[IndexedVideo])


def parse_client_version(value: Optional[str]) -> Optional[tuple[int, int]]:
    """Return ``(major, minor)`` for versions like ``0.3`` or ``0.3.1``."""
    if not value or not value.strip():
        return None
    parts = value.strip().split(".")
    if len(parts) < 2 or len(parts) > 4:
        return None
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        return None
    if any(number < 0 for number in numbers):
        return None
    return numbers[0], numbers[1]


def load_catalog_snapshot(path: Path) -> list[IndexedVideo]:
    """Read a JSON array of index entries previously fetched from the index."""
    return _CATALOG_ADAPTER.validate_json(path.read_text(encoding="utf-8"))


def dump_catalog_snapshot(entries: List[IndexedVideo], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(_CATALOG_ADAPTER.dump_json(entries, indent=2))
    return path


__all__ = [
    "CLIENT_VERSION",
    "LAST_SPECIFICATIONS_VERSION",
    "PersonalData",
    "ManifestSource",
    "ManifestThumbnail",
    "Manifest",
    "IndexedManifest",
    "IndexedVideo",
    "RemoteEntry",
    "parse_client_version",
    "load_catalog_snapshot",
    "dump_catalog_snapshot",
]
