from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeStorageClient, FakeTranscoder

from vimporter.core.config import get_settings
from vimporter.core.storage import LocalStorage
from vimporter.ingest.asset_cache import AssetCache
from vimporter.services.import_service import ImportService


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("VIMPORTER_ENV", "test")
    monkeypatch.setenv("VIMPORTER_LOG_LEVEL", "debug")
    monkeypatch.setenv("VIMPORTER_CACHE_ROOT", str(tmp_path / "cache"))
    monkeypatch.setenv("VIMPORTER_WORK_ROOT", str(tmp_path / "work"))
    monkeypatch.setenv("VIMPORTER_MAX_PARALLEL_IMPORTS", "2")
    for name in (
        "VIMPORTER_ENVIRONMENT",
        "VIMPORTER_WORKERS",
        "VIMPORTER_CACHE_ENABLED",
        "VIMPORTER_FORCE_FULL_UPLOAD",
        "VIMPORTER_DELETE_EXOGENOUS",
        "VIMPORTER_DELETE_MISSING_FROM_SOURCE",
        "VIMPORTER_UNPIN_REMOVED",
        "VIMPORTER_APP_NAME",
    ):
        monkeypatch.delenv(name, raising=False)

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment):
    return get_settings()


@pytest.fixture()
def cache_root(settings) -> Path:
    return Path(settings.cache_root)


@pytest.fixture()
def cache(cache_root) -> AssetCache:
    return AssetCache(LocalStorage(cache_root))


@pytest.fixture()
def client() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture()
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture()
def service(settings, cache, client, transcoder) -> ImportService:
    return ImportService(settings, cache, client, transcoder)


@pytest.fixture()
def media_root(tmp_path) -> Path:
    return tmp_path / "media"
