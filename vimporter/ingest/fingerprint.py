from __future__ import annotations

import re
from hashlib import sha3_256
from typing import Iterable, Optional

from vimporter.core.errors import InvalidState

__all__ = [
    "FINGERPRINT_LENGTH",
    "fingerprint",
    "fingerprints",
    "is_fingerprint",
]

FINGERPRINT_LENGTH = 64

_FINGERPRINT_RE = re.compile(r"^[0-9A-F]{64}$")


def fingerprint(video_id: Optional[str]) -> str:
    """Return the opaque, deterministic fingerprint of a source video id.

    The value is the upper-case hexadecimal SHA3-256 digest of the UTF-8 id. It
    keys cache records and is published in manifest personal data, so it must
    never change for a given id.

    Args:
        video_id: The source-scheme-defined video identifier.

    Returns:
        The 64 character fingerprint.

    Raises:
        InvalidState: If the id is empty or missing.
    """
    if not video_id:
        raise InvalidState("empty_video_id")
    return sha3_256(video_id.encode("utf-8")).hexdigest().upper()


def fingerprints(video_ids: Iterable[str]) -> tuple[str, ...]:
    """Fingerprint every id, keeping the first occurrence order."""
    seen: dict[str, None] = {}
    for video_id in video_ids:
        seen.setdefault(fingerprint(video_id), None)
    return tuple(seen)


def is_fingerprint(value: Optional[str]) -> bool:
    """Return True when the value has the shape produced by :func:`fingerprint`."""
    return bool(value) and _FINGERPRINT_RE.match(value) is not None
