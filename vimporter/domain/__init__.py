"""Domain entities and reconciliation helpers reused by the services and CLI."""

from vimporter.ingest.asset_cache import AssetCache, AssetCacheRecord, CacheEntry
from vimporter.ingest.fingerprint import fingerprint, is_fingerprint
from vimporter.ingest.manifest import IndexedManifest, IndexedVideo, Manifest, PersonalData, RemoteEntry
from vimporter.ingest.models import MediaInfo, SourceFile, SourceVideo
from vimporter.ingest.operation import ImportOperation, Stage
from vimporter.ingest.roles import AssetRole
from vimporter.ingest.sweep import EntryClass, SweepOptions

__all__ = [
    "AssetCache",
    "AssetCacheRecord",
    "CacheEntry",
    "fingerprint",
    "is_fingerprint",
    "IndexedManifest",
    "IndexedVideo",
    "Manifest",
    "PersonalData",
    "RemoteEntry",
    "MediaInfo",
    "SourceFile",
    "SourceVideo",
    "ImportOperation",
    "Stage",
    "AssetRole",
    "EntryClass",
    "SweepOptions",
]
