"""In-memory collaborators for driving the import service in tests."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from vimporter.domain import AssetRole, IndexedManifest, IndexedVideo, Manifest, PersonalData, SourceFile, SourceVideo
from vimporter.services.collaborators import SourceReader, StorageClient, Transcoder


class FakeTranscoder(Transcoder):
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    async def encode(self, source_file: SourceFile, role: AssetRole, output_dir: Path) -> Path:
        self.calls.append(role.key)
        if role.key in self.fail_on:
            raise RuntimeError(f"encoder crashed on {role.key}")
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / f"{role.key}.bin"
        target.write_bytes(f"{source_file.path.name}:{role.key}".encode("utf-8"))
        return target


class FakeStorageClient(StorageClient):
    """Storage plus index kept in memory; fetch_catalog reflects every publication."""

    def __init__(self, catalog: Iterable[IndexedVideo] = ()) -> None:
        self.catalog: dict[str, IndexedVideo] = {entry.index_id: entry for entry in catalog}
        self.manifests: dict[str, Manifest] = {}
        self.batches: list[str] = []
        self.uploads: list[Path] = []
        self.published: list[str] = []
        self.upserts: list[tuple[Optional[str], str]] = []
        self.deleted: list[str] = []
        self.failures: dict[str, int] = {}
        self.failing_deletes: set[str] = set()
        self.unpinned: list[str] = []
        self.failing_unpins: set[str] = set()
        self.on_upload: Optional[Callable[[Path], None]] = None
        self._next_index = 0

    def fail(self, method: str, times: int = 1) -> None:
        self.failures[method] = times

    def _maybe_fail(self, method: str) -> None:
        remaining = self.failures.get(method, 0)
        if remaining:
            self.failures[method] = remaining - 1
            raise ConnectionError(f"{method} unavailable")

    @property
    def calls(self) -> int:
        return len(self.batches) + len(self.uploads) + len(self.published) + len(self.upserts)

    async def create_batch(self, size_bytes: int) -> str:
        self._maybe_fail("create_batch")
        batch_id = f"batch-{len(self.batches) + 1}"
        self.batches.append(batch_id)
        return batch_id

    async def upload_asset(self, path: Path, batch_id: str) -> str:
        self._maybe_fail("upload_asset")
        self.uploads.append(path)
        if self.on_upload is not None:
            self.on_upload(path)
        return hashlib.sha256(path.read_bytes() + batch_id.encode("utf-8")).hexdigest()

    async def publish_manifest(self, manifest: Manifest, batch_id: str) -> str:
        self._maybe_fail("publish_manifest")
        manifest_hash = hashlib.sha256(manifest.to_json().encode("utf-8")).hexdigest()
        self.manifests[manifest_hash] = manifest
        self.published.append(manifest_hash)
        return manifest_hash

    async def upsert_index_entry(self, index_id: Optional[str], manifest_hash: str) -> str:
        self._maybe_fail("upsert_index_entry")
        self.upserts.append((index_id, manifest_hash))
        manifest = IndexedManifest.model_validate({**self.manifests[manifest_hash].model_dump(), "hash": manifest_hash})
        if index_id is None:
            self._next_index += 1
            index_id = f"index-{self._next_index}"
            created_at = datetime.now(timezone.utc)
        else:
            created_at = self.catalog[index_id].created_at
        self.catalog[index_id] = IndexedVideo(index_id=index_id, created_at=created_at, last_valid_manifest=manifest)
        return index_id

    async def delete_index_entry(self, index_id: str) -> None:
        if index_id in self.failing_deletes:
            raise ConnectionError(f"cannot delete {index_id}")
        self.catalog.pop(index_id)
        self.deleted.append(index_id)

    async def unpin_content(self, content_hash: str) -> None:
        if content_hash in self.failing_unpins:
            raise ConnectionError(f"cannot unpin {content_hash}")
        self.unpinned.append(content_hash)

    async def fetch_catalog(self) -> list[IndexedVideo]:
        return list(self.catalog.values())


class StaticSourceReader(SourceReader):
    def __init__(self, videos: Iterable[SourceVideo], name: str = "static") -> None:
        self.videos = list(videos)
        self.name = name

    @property
    def source_name(self) -> str:
        return self.name

    def read_videos(self) -> list[SourceVideo]:
        return list(self.videos)


def make_video(
    root: Path,
    video_id: str,
    *,
    title: Optional[str] = None,
    description: str = "",
    old_ids: tuple[str, ...] = (),
    with_thumbnail: bool = True,
) -> SourceVideo:
    """Create a 640x360 source video (plus a 960x540 thumbnail) on disk."""
    slug = hashlib.sha1(video_id.encode("utf-8")).hexdigest()[:10]
    root.mkdir(parents=True, exist_ok=True)
    video_path = root / f"{slug}.mp4"
    video_path.write_bytes(b"video:" + video_id.encode("utf-8"))
    thumbnail = None
    if with_thumbnail:
        thumbnail_path = root / f"{slug}.jpg"
        thumbnail_path.write_bytes(b"thumb:" + video_id.encode("utf-8"))
        thumbnail = SourceFile(path=thumbnail_path, width=960, height=540)
    return SourceVideo(
        id=video_id,
        title=title or f"Title of {video_id}",
        description=description,
        old_ids=old_ids,
        duration_s=12.5,
        video_file=SourceFile(path=video_path, width=640, height=360),
        thumbnail_file=thumbnail,
    )


def make_entry(
    index_id: str,
    *,
    video_id: Optional[str] = None,
    title: str = "Remote title",
    description: str = "",
    client_name: Optional[str] = "EthernaImporter",
    client_version: Optional[str] = "0.3.0",
    personal_data: bool = True,
) -> IndexedVideo:
    """Build a remote catalog entry as another run (or another client) left it."""
    data = None
    if personal_data:
        data = PersonalData.build_new(video_id, client_name or "") if video_id else PersonalData()
        data.client_name = client_name
        data.client_version = client_version
    manifest = IndexedManifest(
        hash=hashlib.sha256(index_id.encode("utf-8")).hexdigest(),
        title=title,
        description=description,
        duration_s=10.0,
        original_quality="360p",
        batch_id="remote-batch",
        sources=[{"kind": "video", "quality": "360p", "reference": "remote-ref"}],
        personal_data=data,
    )
    return IndexedVideo(
        index_id=index_id,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        last_valid_manifest=manifest,
    )
