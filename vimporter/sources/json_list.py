from __future__ import annotations

import subprocess
import tempfile
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from vimporter.core.errors import SourceError
from vimporter.core.logging import get_logger
from vimporter.ingest.fingerprint import fingerprint
from vimporter.ingest.models import MediaInfo, SourceFile, SourceVideo
from vimporter.ingest.probe import extract_thumbnail, probe_media
from vimporter.services.collaborators import SourceReader

Prober = Callable[[Path], MediaInfo]
ThumbnailExtractor = Callable[[Path, Path], Path]


class JsonVideoModel(BaseModel):
    """Schema of one entry of a JSON video list."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(min_length=1)
    title: str
    description: str = ""
    video_file_path: str = Field(alias="videoFilePath", min_length=1)
    thumbnail_file_path: Optional[str] = Field(default=None, alias="thumbnailFilePath")
    old_ids: List[str] = Field(default_factory=list, alias="oldIds")


_LIST_ADAPTER = TypeAdapter(List[JsonVideoModel])


class JsonListSourceReader(SourceReader):
    """Reads videos from a JSON array describing local files.

    Entries without a thumbnail get one extracted from the video into
    ``thumbnail_dir``, unless ``thumbnail_extractor`` is None.
    """

    def __init__(
        self,
        list_path: Path,
        *,
        prober: Prober = probe_media,
        thumbnail_extractor: Optional[ThumbnailExtractor] = extract_thumbnail,
        thumbnail_dir: Optional[Path] = None,
    ):
        self.list_path = Path(list_path)
        self.prober = prober
        self.thumbnail_extractor = thumbnail_extractor
        self.thumbnail_dir = Path(thumbnail_dir) if thumbnail_dir else Path(tempfile.gettempdir()) / "vimporter-thumbnails"
        self.logger = get_logger(component="json_list_source", source=str(self.list_path))

    @property
    def source_name(self) -> str:
        return self.list_path.name

    def load_entries(self) -> list[JsonVideoModel]:
        try:
            payload = self.list_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SourceError(f"source_unreadable:{self.list_path}") from exc
        try:
            entries = _LIST_ADAPTER.validate_json(payload)
        except ValidationError as exc:
            raise SourceError(f"invalid_json_list:{exc.error_count()} errors") from exc

        seen: set[str] = set()
        for entry in entries:
            for video_id in [entry.id, *entry.old_ids]:
                if video_id in seen:
                    raise SourceError(f"duplicate_video_id:{video_id}")
                seen.add(video_id)
        return entries

    def read_videos(self) -> list[SourceVideo]:
        videos: list[SourceVideo] = []
        for entry in self.load_entries():
            try:
                videos.append(self._to_source_video(entry))
            except (OSError, ValueError, subprocess.CalledProcessError) as exc:
                self.logger.warning("source_entry_skipped", video_id=entry.id, error=str(exc))
        self.logger.info("source_read", videos=len(videos))
        return videos

    def _to_source_video(self, entry: JsonVideoModel) -> SourceVideo:
        video_path = self._resolve(entry.video_file_path)
        video_info = self._probe(video_path)
        thumbnail = None
        thumbnail_path = None
        if entry.thumbnail_file_path and entry.thumbnail_file_path.strip():
            thumbnail_path = self._resolve(entry.thumbnail_file_path)
        elif self.thumbnail_extractor is not None:
            # Named after the id so reruns overwrite the same file.
            target = self.thumbnail_dir / f"{fingerprint(entry.id)}.jpg"
            thumbnail_path = self.thumbnail_extractor(video_path, target)
            self.logger.info("thumbnail_extracted", video_id=entry.id, path=str(thumbnail_path))
        if thumbnail_path is not None:
            thumbnail_info = self._probe(thumbnail_path)
            thumbnail = SourceFile(path=thumbnail_path, width=thumbnail_info.width, height=thumbnail_info.height)
        return SourceVideo(
            id=entry.id,
            title=entry.title,
            description=entry.description,
            old_ids=tuple(entry.old_ids),
            duration_s=video_info.duration_s,
            video_file=SourceFile(path=video_path, width=video_info.width, height=video_info.height),
            thumbnail_file=thumbnail,
        )

    def _resolve(self, value: str) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.list_path.parent / path
        return path.resolve()

    def _probe(self, path: Path) -> MediaInfo:
        if not path.exists():
            raise FileNotFoundError(f"source_file_missing:{path}")
        return self.prober(path)


__all__ = ["JsonVideoModel", "JsonListSourceReader", "ThumbnailExtractor"]
