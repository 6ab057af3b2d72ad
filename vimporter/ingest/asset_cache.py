"""Persisted per-video record of encoded and uploaded assets.

A record is keyed by the fingerprint of the source video id and is written
back to storage after every mutation, so an interrupted run resumes from the
last completed asset instead of starting over.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vimporter.core.errors import AssetMissing, InvalidState
from vimporter.core.logging import get_logger
from vimporter.core.storage import Storage

from .fingerprint import is_fingerprint
from .models import SourceVideo
from .roles import AssetRole

TRACKING_FILE_NAME = "tracking.json"

OriginalKind = Literal["video", "thumbnail"]


class OriginalAsset(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str
    height: int
    width: int


class AssetCacheRecord(BaseModel):
    """Schema of one cache record."""

    model_config = ConfigDict(extra="ignore")

    video_id_hash: str
    batch_id: Optional[str] = None
    original_video: Optional[OriginalAsset] = None
    original_thumbnail: Optional[OriginalAsset] = None
    encoded_assets: Dict[str, str] = Field(default_factory=dict)
    uploaded_assets: Dict[str, str] = Field(default_factory=dict)


class CacheEntry:
    """Operations scoped to a single :class:`AssetCacheRecord`."""

    def __init__(self, cache: "AssetCache", record: AssetCacheRecord):
        self._cache = cache
        self._record = record

    @property
    def video_id_hash(self) -> str:
        return self._record.video_id_hash

    @property
    def batch_id(self) -> Optional[str]:
        return self._record.batch_id

    @property
    def record(self) -> AssetCacheRecord:
        return self._record.model_copy(deep=True)

    def set_batch(self, batch_id: str) -> None:
        if not batch_id:
            raise InvalidState("empty_batch_id")
        self._record.batch_id = batch_id
        self._cache._flush(self._record)

    def record_original(self, kind: OriginalKind, path: Path, height: int, width: int) -> None:
        path = Path(path)
        if not path.exists():
            raise AssetMissing(path)
        original = OriginalAsset(path=str(path), height=height, width=width)
        if kind == "video":
            self._record.original_video = original
        elif kind == "thumbnail":
            self._record.original_thumbnail = original
        else:
            raise InvalidState(f"unknown_original_kind:{kind}")
        self._cache._flush(self._record)

    def record_encoded_asset(self, role: AssetRole, path: Path) -> None:
        path = Path(path)
        if not path.exists():
            raise AssetMissing(path)
        self._record.encoded_assets[role.key] = str(path)
        self._cache._flush(self._record)

    def record_uploaded_asset(self, role: AssetRole, batch_id: str, remote_hash: str) -> None:
        if not remote_hash or not remote_hash.strip():
            raise InvalidState("empty_remote_hash")
        if not batch_id:
            raise InvalidState("empty_batch_id")
        if role.key not in self._record.encoded_assets and not self._is_original(role):
            raise InvalidState(f"upload_without_local_asset:{role.key}")
        self._record.uploaded_assets[role.uploaded_key(batch_id)] = remote_hash
        self._cache._flush(self._record)

    def get_encoded_asset(self, role: AssetRole) -> Optional[Path]:
        value = self._record.encoded_assets.get(role.key)
        if value is None:
            return None
        path = Path(value)
        # Local work directories get cleaned; a vanished file means re-encode.
        return path if path.exists() else None

    def get_uploaded_asset(self, role: AssetRole, batch_id: Optional[str]) -> Optional[str]:
        if not batch_id:
            return None
        return self._record.uploaded_assets.get(role.uploaded_key(batch_id))

    def has_uploaded_all(self, roles: list[AssetRole], batch_id: Optional[str]) -> bool:
        return bool(roles) and all(self.get_uploaded_asset(role, batch_id) for role in roles)

    def _is_original(self, role: AssetRole) -> bool:
        original = self._record.original_thumbnail if role.is_thumbnail else self._record.original_video
        if original is None or role.kind == "audio":
            return False
        return (original.height, original.width) == (role.height, role.width)


class AssetCache:
    """All cache records, loaded once and flushed on every mutation."""

    def __init__(self, storage: Storage):
        self.storage = storage
        self.logger = get_logger(component="asset_cache")
        self._records: dict[str, AssetCacheRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._load_all()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, video_id_hash: object) -> bool:
        return video_id_hash in self._records

    def entry(self, video: SourceVideo) -> CacheEntry:
        return self.entry_for(video.video_id_hash)

    def entry_for(self, video_id_hash: str) -> CacheEntry:
        if not is_fingerprint(video_id_hash):
            raise InvalidState(f"invalid_video_id_hash:{video_id_hash}")
        record = self._records.get(video_id_hash)
        if record is None:
            record = AssetCacheRecord(video_id_hash=video_id_hash)
            self._records[video_id_hash] = record
            self._flush(record)
            self.logger.debug("cache_record_created", video_id_hash=video_id_hash)
        return CacheEntry(self, record)

    def peek(self, video_id_hash: str) -> CacheEntry:
        """Look up a record without creating it.

        An unknown fingerprint gets a blank record that is neither kept nor
        written. Callers only read from the returned entry.
        """
        if not is_fingerprint(video_id_hash):
            raise InvalidState(f"invalid_video_id_hash:{video_id_hash}")
        record = self._records.get(video_id_hash)
        if record is None:
            record = AssetCacheRecord(video_id_hash=video_id_hash)
        return CacheEntry(self, record)

    def lock(self, video_id_hash: str) -> asyncio.Lock:
        lock = self._locks.get(video_id_hash)
        if lock is None:
            lock = self._locks[video_id_hash] = asyncio.Lock()
        return lock

    def _flush(self, record: AssetCacheRecord) -> None:
        self.storage.write_text(
            f"{record.video_id_hash}/{TRACKING_FILE_NAME}",
            record.model_dump_json(indent=2),
        )

    def _load_all(self) -> None:
        for key in self.storage.list(suffix=TRACKING_FILE_NAME):
            try:
                record = AssetCacheRecord.model_validate_json(self.storage.read_text(key))
            except ValidationError:
                self.logger.warning("cache_record_unreadable", key=key)
                continue
            self._records[record.video_id_hash] = record
        self.logger.debug("cache_loaded", records=len(self._records))


__all__ = [
    "TRACKING_FILE_NAME",
    "OriginalAsset",
    "AssetCacheRecord",
    "CacheEntry",
    "AssetCache",
]
