"""Source reader for a folder of markdown files with front matter.

Each ``*.md`` file describes one video::

    ---
    TITLE: A talk
    DESCRIPTION: First line of the description
    continued here
    VIDEOFILE: media/talk.mp4
    THUMBNAIL: media/talk.jpg
    OLDIDS: talks/a-talk.md, a-talk
    ---

Paths are relative to the markdown file. The video id is the file path
relative to the folder, in POSIX form.
"""

from __future__ import annotations

import re
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Optional

from vimporter.core.errors import SourceError
from vimporter.core.logging import get_logger
from vimporter.ingest.fingerprint import fingerprint
from vimporter.ingest.models import SourceFile, SourceVideo
from vimporter.ingest.probe import extract_thumbnail, probe_media
from vimporter.services.collaborators import SourceReader

from .json_list import Prober, ThumbnailExtractor

FRONT_MATTER_DELIMITER = "---"
KNOWN_KEYS = ("TITLE", "DESCRIPTION", "VIDEOFILE", "THUMBNAIL", "OLDIDS")

_KEY_LINE = re.compile(r"^(?P<key>[A-Z]+)\s*:\s?(?P<value>.*)$")


def parse_front_matter(text: str) -> Dict[str, str]:
    """Return the front-matter fields of a markdown document.

    Lines that do not start a known key are appended to the description.
    """
    lines = text.splitlines()
    try:
        start = next(i for i, line in enumerate(lines) if line.strip() == FRONT_MATTER_DELIMITER)
        end = next(i for i in range(start + 1, len(lines)) if lines[i].strip() == FRONT_MATTER_DELIMITER)
    except StopIteration:
        return {}

    fields: Dict[str, str] = {}
    for line in lines[start + 1 : end]:
        match = _KEY_LINE.match(line.strip())
        if match and match.group("key") in KNOWN_KEYS:
            fields[match.group("key")] = match.group("value").strip()
        elif line.strip():
            previous = fields.get("DESCRIPTION", "")
            fields["DESCRIPTION"] = f"{previous}\n{line.strip()}" if previous else line.strip()
    return fields


class MarkdownSourceReader(SourceReader):
    def __init__(
        self,
        root: Path,
        *,
        prober: Prober = probe_media,
        thumbnail_extractor: Optional[ThumbnailExtractor] = extract_thumbnail,
        thumbnail_dir: Optional[Path] = None,
    ):
        self.root = Path(root)
        self.prober = prober
        self.thumbnail_extractor = thumbnail_extractor
        self.thumbnail_dir = Path(thumbnail_dir) if thumbnail_dir else Path(tempfile.gettempdir()) / "vimporter-thumbnails"
        self.logger = get_logger(component="markdown_source", source=str(self.root))

    @property
    def source_name(self) -> str:
        return self.root.name

    def read_videos(self) -> list[SourceVideo]:
        if not self.root.is_dir():
            raise SourceError(f"source_folder_missing:{self.root}")

        videos: list[SourceVideo] = []
        seen: set[str] = set()
        for document in sorted(self.root.rglob("*.md")):
            video_id = document.relative_to(self.root).as_posix()
            try:
                video = self._read_document(document, video_id)
            except (OSError, ValueError, subprocess.CalledProcessError) as exc:
                self.logger.warning("source_entry_skipped", video_id=video_id, error=str(exc))
                continue
            if video is None:
                continue
            for known_id in video.all_ids:
                if known_id in seen:
                    raise SourceError(f"duplicate_video_id:{known_id}")
                seen.add(known_id)
            videos.append(video)
        self.logger.info("source_read", videos=len(videos))
        return videos

    def _read_document(self, document: Path, video_id: str) -> Optional[SourceVideo]:
        fields = parse_front_matter(document.read_text(encoding="utf-8"))
        if not fields.get("VIDEOFILE"):
            self.logger.debug("document_without_video", video_id=video_id)
            return None
        if not fields.get("TITLE"):
            raise ValueError("missing_title")

        video_path = self._resolve(document, fields["VIDEOFILE"])
        video_info = self._probe(video_path)
        thumbnail = None
        thumbnail_path = None
        if fields.get("THUMBNAIL"):
            thumbnail_path = self._resolve(document, fields["THUMBNAIL"])
        elif self.thumbnail_extractor is not None:
            thumbnail_path = self.thumbnail_extractor(video_path, self.thumbnail_dir / f"{fingerprint(video_id)}.jpg")
            self.logger.info("thumbnail_extracted", video_id=video_id, path=str(thumbnail_path))
        if thumbnail_path is not None:
            thumbnail_info = self._probe(thumbnail_path)
            thumbnail = SourceFile(path=thumbnail_path, width=thumbnail_info.width, height=thumbnail_info.height)

        old_ids = tuple(part.strip() for part in fields.get("OLDIDS", "").split(",") if part.strip())
        return SourceVideo(
            id=video_id,
            title=fields["TITLE"],
            description=fields.get("DESCRIPTION", ""),
            old_ids=old_ids,
            duration_s=video_info.duration_s,
            video_file=SourceFile(path=video_path, width=video_info.width, height=video_info.height),
            thumbnail_file=thumbnail,
        )

    @staticmethod
    def _resolve(document: Path, value: str) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = document.parent / path
        return path.resolve()

    def _probe(self, path: Path):
        if not path.exists():
            raise FileNotFoundError(f"source_file_missing:{path}")
        return self.prober(path)


__all__ = ["FRONT_MATTER_DELIMITER", "parse_front_matter", "MarkdownSourceReader"]
