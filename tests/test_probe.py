from __future__ import annotations

import subprocess

import pytest

from vimporter.ingest import probe
from vimporter.ingest.probe import extract_thumbnail, parse_media_info


def test_parse_media_info_reads_first_video_stream():
    raw = {
        "streams": [
            {"codec_type": "audio", "channels": 2},
            {"codec_type": "video", "width": 1920, "height": 1080, "duration": "9.5"},
            {"codec_type": "video", "width": 320, "height": 240},
        ],
        "format": {"duration": "10.0"},
    }
    info = parse_media_info(raw)
    assert (info.width, info.height, info.duration_s) == (1920, 1080, 10.0)


def test_parse_media_info_falls_back_to_stream_duration():
    raw = {"streams": [{"codec_type": "video", "width": "640", "height": "360", "duration": "3.25"}]}
    info = parse_media_info(raw)
    assert (info.width, info.height, info.duration_s) == (640, 360, 3.25)


def test_parse_media_info_for_still_images_has_no_duration():
    raw = {"streams": [{"codec_type": "video", "width": 1280, "height": 720}], "format": {"duration": "N/A"}}
    assert parse_media_info(raw).duration_s is None


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"streams": [{"codec_type": "audio"}]},
        {"streams": [{"codec_type": "video", "width": 0, "height": 720}]},
    ],
)
def test_parse_media_info_requires_a_video_stream(raw):
    with pytest.raises(ValueError):
        parse_media_info(raw)


def test_extract_thumbnail_runs_ffmpeg_for_one_keyframe(tmp_path, monkeypatch):
    commands = []

    def fake_run(command, **kwargs):
        commands.append(command)
        return subprocess.CompletedProcess(command, 0, "", "")

    monkeypatch.setattr(probe.subprocess, "run", fake_run)
    target = tmp_path / "thumbs" / "a.jpg"

    assert extract_thumbnail(tmp_path / "a.mp4", target) == target
    assert target.parent.is_dir()
    [command] = commands
    assert command[0] == "ffmpeg"
    assert command[command.index("-i") + 1] == str(tmp_path / "a.mp4")
    assert command[command.index("-frames:v") + 1] == "1"
    assert command[-1] == str(target)
