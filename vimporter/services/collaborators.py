from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from vimporter.ingest.manifest import IndexedVideo, Manifest
from vimporter.ingest.models import SourceFile, SourceVideo
from vimporter.ingest.roles import AssetRole


class SourceReader(ABC):
    """Yields the videos of a source catalog. Reading again yields the same set."""

    @property
    @abstractmethod
    def source_name(self) -> str: ...

    @abstractmethod
    def read_videos(self) -> list[SourceVideo]: ...


class Transcoder(ABC):
    @abstractmethod
    async def encode(self, source_file: SourceFile, role: AssetRole, output_dir: Path) -> Path: ...


class StorageClient(ABC):
    """Content-addressed storage plus the index listing published videos."""

    @abstractmethod
    async def create_batch(self, size_bytes: int) -> str: ...

    @abstractmethod
    async def upload_asset(self, path: Path, batch_id: str) -> str: ...

    @abstractmethod
    async def publish_manifest(self, manifest: Manifest, batch_id: str) -> str: ...

    @abstractmethod
    async def upsert_index_entry(self, index_id: Optional[str], manifest_hash: str) -> str: ...

    @abstractmethod
    async def delete_index_entry(self, index_id: str) -> None: ...

    @abstractmethod
    async def unpin_content(self, content_hash: str) -> None: ...

    @abstractmethod
    async def fetch_catalog(self) -> list[IndexedVideo]: ...


__all__ = ["SourceReader", "Transcoder", "StorageClient"]
