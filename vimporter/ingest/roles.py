from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

__all__ = [
    "AssetKind",
    "AssetRole",
    "plan_stream_roles",
    "plan_thumbnail_roles",
]

AssetKind = Literal["audio", "video", "thumbnail"]


@dataclass(frozen=True, slots=True)
class AssetRole:
    """A categorised kind of file: the audio track, or a video/thumbnail size."""

    kind: AssetKind
    height: int = 0
    width: int = 0

    def __post_init__(self) -> None:
        if self.kind == "audio":
            if self.height or self.width:
                raise ValueError("audio role has no dimensions")
        elif self.height <= 0 or self.width <= 0:
            raise ValueError(f"{self.kind} role requires positive dimensions")

    @classmethod
    def audio(cls) -> "AssetRole":
        return cls("audio")

    @classmethod
    def video(cls, height: int, width: int) -> "AssetRole":
        return cls("video", height, width)

    @classmethod
    def thumbnail(cls, height: int, width: int) -> "AssetRole":
        return cls("thumbnail", height, width)

    @classmethod
    def from_key(cls, key: str) -> "AssetRole":
        if key == "audio":
            return cls.audio()
        kind, _, dims = key.partition("_")
        height, _, width = dims.partition("_")
        if kind not in {"video", "thumbnail"} or not height.isdigit() or not width.isdigit():
            raise ValueError(f"Unknown asset role key: {key!r}")
        return cls(kind, int(height), int(width))  # type: ignore[arg-type]

    @property
    def key(self) -> str:
        if self.kind == "audio":
            return "audio"
        return f"{self.kind}_{self.height}_{self.width}"

    @property
    def is_thumbnail(self) -> bool:
        return self.kind == "thumbnail"

    def uploaded_key(self, batch_id: str) -> str:
        return f"{self.key}_{batch_id}"


def _even(value: float) -> int:
    rounded = int(round(value))
    return max(2, rounded - rounded % 2)


def plan_stream_roles(source_height: int, source_width: int, target_heights: Iterable[int]) -> list[AssetRole]:
    """Return the audio role followed by one video role per usable target height.

    Targets taller than the source are skipped; when none fits, the source
    resolution itself is used.
    """
    if source_height <= 0 or source_width <= 0:
        raise ValueError("source dimensions must be positive")
    heights = sorted({h for h in target_heights if 0 < h <= source_height})
    if not heights:
        heights = [source_height]
    roles = [AssetRole.audio()]
    for height in heights:
        width = source_width if height == source_height else _even(source_width * height / source_height)
        roles.append(AssetRole.video(height, width))
    return roles


def plan_thumbnail_roles(source_height: int, source_width: int, target_widths: Iterable[int]) -> list[AssetRole]:
    """Return one thumbnail role per target width not wider than the source."""
    if source_height <= 0 or source_width <= 0:
        raise ValueError("source dimensions must be positive")
    widths = sorted({w for w in target_widths if 0 < w <= source_width})
    if not widths:
        widths = [source_width]
    roles = []
    for width in widths:
        height = source_height if width == source_width else max(1, int(round(source_height * width / source_width)))
        roles.append(AssetRole.thumbnail(height, width))
    return roles
