from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional

from .models import MediaInfo


def run_ffprobe(target: Path) -> Dict[str, Any]:
    """Run ffprobe on a media file and return its JSON output."""
    command = [
        "ffprobe",
        "-v",
        "error",
        "-show_format",
        "-show_streams",
        "-print_format",
        "json",
        str(target),
    ]
    proc = subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    return json.loads(proc.stdout)


def parse_media_info(raw: Dict[str, Any]) -> MediaInfo:
    """Extract the first video stream's dimensions and the container duration.

    Raises:
        ValueError: If no stream carries positive dimensions.
    """
    for stream in raw.get("streams") or []:
        if stream.get("codec_type") != "video":
            continue
        width = _as_int(stream.get("width"))
        height = _as_int(stream.get("height"))
        if width and height:
            duration = _as_float((raw.get("format") or {}).get("duration"))
            if duration is None:
                duration = _as_float(stream.get("duration"))
            return MediaInfo(width=width, height=height, duration_s=duration)
    raise ValueError("no_video_stream")


def probe_media(path: Path) -> MediaInfo:
    return parse_media_info(run_ffprobe(path))


def extract_thumbnail(video_path: Path, output_path: Path) -> Path:
    """Save one randomly chosen keyframe of a video as a JPEG image."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    command = [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-i",
        str(video_path),
        "-vf",
        "select=eq(pict_type\\,I),random",
        "-frames:v",
        "1",
        str(output_path),
    ]
    subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    return output_path


def _as_int(value: Any) -> Optional[int]:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _as_float(value: Any) -> Optional[float]:
    if value in (None, "", "N/A"):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


__all__ = ["run_ffprobe", "parse_media_info", "probe_media", "extract_thumbnail"]
