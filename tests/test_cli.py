from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import structlog
from fakes import make_entry

from vimporter import cli
from vimporter.core.storage import LocalStorage
from vimporter.ingest.asset_cache import AssetCache
from vimporter.ingest.fingerprint import fingerprint
from vimporter.ingest.manifest import dump_catalog_snapshot
from vimporter.ingest.models import MediaInfo


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)


def _fake_extract_thumbnail(video_path: Path, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(b"frame")
    return output_path


@pytest.fixture()
def source_list(tmp_path, monkeypatch) -> Path:
    monkeypatch.setattr(cli, "probe_media", lambda path: MediaInfo(width=640, height=360, duration_s=5.0))
    monkeypatch.setattr(cli, "extract_thumbnail", _fake_extract_thumbnail)
    media = tmp_path / "media"
    media.mkdir()
    for name in ("a.mp4", "b.mp4"):
        (media / name).write_bytes(b"media")
    list_path = tmp_path / "videos.json"
    list_path.write_text(
        json.dumps(
            [
                {"id": "a", "title": "A", "videoFilePath": "media/a.mp4"},
                {"id": "b", "title": "B", "videoFilePath": "media/b.mp4"},
            ]
        )
    )
    return list_path


@pytest.fixture()
def catalog(tmp_path) -> Path:
    entries = [
        make_entry("i-a", video_id="a", title="A"),
        make_entry("i-gone", video_id="gone"),
        make_entry("i-foreign", video_id="x", client_name="Other"),
    ]
    return dump_catalog_snapshot(entries, tmp_path / "catalog.json")


def _stdout_json(capsys):
    return json.loads(capsys.readouterr().out)


def test_fingerprint_command(capsys):
    cli.main(["fingerprint", "a", "talks/b.md"])
    assert _stdout_json(capsys) == {"a": fingerprint("a"), "talks/b.md": fingerprint("talks/b.md")}


def test_plan_command(capsys, source_list, catalog):
    cli.main(["plan", "--json-list", str(source_list), "--catalog", str(catalog)])
    planned = {item["source_id"]: item for item in _stdout_json(capsys)}

    assert planned["a"]["matches"] == ["i-a"]
    assert planned["a"]["required_stages"] == []
    assert planned["b"]["matches"] == []
    assert planned["b"]["required_stages"] == [
        "thumbnail_uploaded",
        "video_streams_uploaded",
        "manifest_uploaded",
        "index_updated",
    ]
    assert planned["b"]["video_id_hash"] == fingerprint("b")


def test_plan_command_leaves_the_cache_untouched(capsys, source_list, catalog, cache_root, tmp_path):
    cli.main(["plan", "--json-list", str(source_list), "--catalog", str(catalog)])
    capsys.readouterr()

    assert not cache_root.exists() or list(cache_root.iterdir()) == []
    assert sorted(path.name for path in (tmp_path / "work" / "thumbnails").iterdir()) == sorted(
        [f"{fingerprint('a')}.jpg", f"{fingerprint('b')}.jpg"]
    )


def test_plan_command_with_force(capsys, source_list, catalog):
    cli.main(["plan", "--json-list", str(source_list), "--catalog", str(catalog), "--force"])
    planned = {item["source_id"]: item for item in _stdout_json(capsys)}
    assert planned["a"]["required_stages"] == [
        "thumbnail_uploaded",
        "video_streams_uploaded",
        "manifest_uploaded",
        "index_updated",
    ]


def test_sweep_command(capsys, source_list, catalog):
    cli.main(["sweep", "--json-list", str(source_list), "--catalog", str(catalog), "--delete-missing"])
    assert _stdout_json(capsys) == [
        {"index_id": "i-gone", "video_id_hash": fingerprint("gone"), "class": "missing_from_source"}
    ]

    cli.main(["sweep", "--json-list", str(source_list), "--catalog", str(catalog), "--delete-exogenous"])
    assert [item["index_id"] for item in _stdout_json(capsys)] == ["i-foreign"]


def test_cache_show_command(capsys, cache_root):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["cache", "show", "a"])
    assert excinfo.value.code == 2
    capsys.readouterr()

    AssetCache(LocalStorage(cache_root)).entry_for(fingerprint("a"))
    cli.main(["cache", "show", "a"])
    record = _stdout_json(capsys)
    assert record["video_id_hash"] == fingerprint("a")
    assert record["uploaded_assets"] == {}


def test_rejected_source_exits_with_error(tmp_path, catalog):
    list_path = tmp_path / "dupes.json"
    list_path.write_text(
        json.dumps(
            [
                {"id": "a", "title": "A", "videoFilePath": "a.mp4"},
                {"id": "a", "title": "A", "videoFilePath": "a.mp4"},
            ]
        )
    )
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["plan", "--json-list", str(list_path), "--catalog", str(catalog)])
    assert excinfo.value.code == 2


def test_environment_check_names_the_application(capsys, monkeypatch):
    monkeypatch.setenv("VIMPORTER_APP_NAME", "Talks Importer")
    monkeypatch.setattr(cli.subprocess, "run", lambda *args, **kwargs: None)

    cli.main(["--check"])

    output = capsys.readouterr().out
    assert "Talks Importer environment check" in output
    assert "Environment looks good!" in output


def test_missing_command_prints_help():
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])
    assert excinfo.value.code == 1
