from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Iterable

from vimporter.core.logging import get_logger

from .fingerprint import is_fingerprint
from .manifest import IndexedVideo
from .models import SourceVideo

logger = get_logger(component="sweep")


class EntryClass(str, Enum):
    EXOGENOUS = "exogenous"
    MISSING_FROM_SOURCE = "missing_from_source"
    PRESENT = "present"


@dataclass(frozen=True, slots=True)
class SweepOptions:
    delete_exogenous: bool = False
    delete_missing_from_source: bool = False
    unpin_removed: bool = False


def source_hashes(source_catalog: Iterable[SourceVideo]) -> frozenset[str]:
    """Fingerprints of every current and legacy id in the source catalog."""
    hashes: set[str] = set()
    for video in source_catalog:
        hashes.update(video.all_id_hashes)
    return frozenset(hashes)


def classify_entry(entry: IndexedVideo, hashes: AbstractSet[str], importer_identifier: str) -> EntryClass:
    manifest = entry.last_valid_manifest
    personal_data = manifest.personal_data if manifest else None
    if (
        personal_data is None
        or personal_data.client_name != importer_identifier
        or not is_fingerprint(personal_data.video_id_hash)
    ):
        return EntryClass.EXOGENOUS
    if personal_data.video_id_hash not in hashes:
        return EntryClass.MISSING_FROM_SOURCE
    return EntryClass.PRESENT


def compute_deletions(
    source_catalog: Iterable[SourceVideo],
    remote_catalog: Iterable[IndexedVideo],
    options: SweepOptions,
    *,
    importer_identifier: str,
) -> list[IndexedVideo]:
    """Return the remote entries that should be removed from the index.

    The result is advisory: nothing is deleted here.
    """
    hashes = source_hashes(source_catalog)
    deletions: list[IndexedVideo] = []
    for entry in remote_catalog:
        entry_class = classify_entry(entry, hashes, importer_identifier)
        logger.debug("sweep_entry_classified", index_id=entry.index_id, entry_class=entry_class.value)
        if entry_class is EntryClass.EXOGENOUS and options.delete_exogenous:
            deletions.append(entry)
        elif entry_class is EntryClass.MISSING_FROM_SOURCE and options.delete_missing_from_source:
            deletions.append(entry)
    return deletions


__all__ = ["EntryClass", "SweepOptions", "source_hashes", "classify_entry", "compute_deletions"]
