from __future__ import annotations

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

from .config import Settings


class Storage(ABC):
    """Durable key/value text storage; keys are relative POSIX paths."""

    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def read_text(self, key: str) -> str: ...

    @abstractmethod
    def write_text(self, key: str, payload: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    @abstractmethod
    def list(self, suffix: str = "") -> Iterable[str]: ...


class LocalStorage(Storage):
    """Filesystem-backed storage. Writes replace the target atomically."""

    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        if not key or Path(key).is_absolute() or ".." in Path(key).parts:
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.base_path / key

    def exists(self, key: str) -> bool:
        return self._resolve(key).exists()

    def read_text(self, key: str) -> str:
        return self._resolve(key).read_text(encoding="utf-8")

    def write_text(self, key: str, payload: str) -> None:
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> bool:
        path = self._resolve(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list(self, suffix: str = "") -> Iterable[str]:
        if not self.base_path.exists():
            return []
        return sorted(
            p.relative_to(self.base_path).as_posix()
            for p in self.base_path.rglob("*")
            if p.is_file() and not p.name.startswith(".") and p.name.endswith(suffix)
        )


class MemoryStorage(Storage):
    """Process-local storage used when the cache is disabled."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def exists(self, key: str) -> bool:
        return key in self._items

    def read_text(self, key: str) -> str:
        try:
            return self._items[key]
        except KeyError:
            raise FileNotFoundError(key) from None

    def write_text(self, key: str, payload: str) -> None:
        self._items[key] = payload

    def delete(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def list(self, suffix: str = "") -> Iterable[str]:
        return sorted(key for key in self._items if key.endswith(suffix))


def get_storage(settings: Settings) -> Storage:
    if settings.cache_enabled:
        return LocalStorage(base_path=Path(settings.cache_root))
    return MemoryStorage()


__all__ = [
    "Storage",
    "LocalStorage",
    "MemoryStorage",
    "get_storage",
]
