from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Iterable, Literal, Optional, Sequence, TypeVar

from vimporter.core.config import Settings
from vimporter.core.errors import (
    AmbiguousMatch,
    ImporterError,
    InvalidMetadata,
    InvalidState,
    OperationCancelled,
    UpstreamFailure,
)
from vimporter.core.logging import get_logger
from vimporter.ingest.asset_cache import AssetCache
from vimporter.ingest.fingerprint import fingerprint
from vimporter.ingest.manifest import (
    IndexedVideo,
    Manifest,
    ManifestSource,
    ManifestThumbnail,
    PersonalData,
)
from vimporter.ingest.matcher import find_matches, require_single_match
from vimporter.ingest.models import SourceFile, SourceVideo
from vimporter.ingest.operation import ImportOperation, Stage
from vimporter.ingest.roles import AssetRole, plan_stream_roles, plan_thumbnail_roles
from vimporter.ingest.sweep import EntryClass, SweepOptions, classify_entry, compute_deletions, source_hashes

from .collaborators import SourceReader, StorageClient, Transcoder

T = TypeVar("T")

Outcome = Literal["imported", "updated", "skipped", "failed", "ambiguous"]

# Headroom over the raw source size when sizing a new storage batch.
BATCH_SIZE_TOLERANCE = 1.2


@dataclass(slots=True)
class ImportOperationResult:
    source_id: str
    stage: Stage
    outcome: Outcome
    trace: tuple[Stage, ...] = ()
    index_id: Optional[str] = None
    manifest_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.stage is Stage.SUCCEEDED


@dataclass(slots=True)
class DeletionReport:
    deleted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    unpinned: list[str] = field(default_factory=list)
    unpin_failed: dict[str, str] = field(default_factory=dict)


@dataclass
class ImportSummary:
    """Aggregate counts of a run."""

    imported: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    ambiguous: int = 0
    deleted_exogenous: int = 0
    deleted_missing_from_source: int = 0
    deletion_failures: int = 0
    unpinned: int = 0
    unpin_failures: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.imported + self.updated + self.skipped + self.failed + self.ambiguous

    def add_result(self, result: ImportOperationResult) -> None:
        if result.outcome == "imported":
            self.imported += 1
        elif result.outcome == "updated":
            self.updated += 1
        elif result.outcome == "skipped":
            self.skipped += 1
        elif result.outcome == "ambiguous":
            self.ambiguous += 1
        else:
            self.failed += 1
        if result.error:
            self.errors.append(f"{result.source_id}: {result.error}")

    def __str__(self) -> str:
        return (
            f"Total videos: {self.total}\n"
            f"Imported: {self.imported}\n"
            f"Updated: {self.updated}\n"
            f"Skipped: {self.skipped}\n"
            f"Failed: {self.failed}\n"
            f"Ambiguous: {self.ambiguous}\n"
            f"Deleted exogenous: {self.deleted_exogenous}\n"
            f"Deleted missing from source: {self.deleted_missing_from_source}\n"
            f"Deletion failures: {self.deletion_failures}\n"
            f"Unpinned contents: {self.unpinned}\n"
            f"Unpin failures: {self.unpin_failures}"
        )


class ImportService:
    """Runs import operations for a source catalog and sweeps the remote index."""

    def __init__(
        self,
        settings: Settings,
        cache: AssetCache,
        client: Optional[StorageClient] = None,
        transcoder: Optional[Transcoder] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.client = client
        self.transcoder = transcoder
        self.logger = get_logger(component="import_service")

    # Planning.

    def build_operation(
        self,
        video: SourceVideo,
        matches: Sequence[IndexedVideo],
        *,
        force_full_upload: Optional[bool] = None,
        persist: bool = True,
    ) -> ImportOperation:
        stream_roles: list[AssetRole] = []
        thumbnail_roles: list[AssetRole] = []
        if video.video_file is not None:
            stream_roles = plan_stream_roles(
                video.video_file.height, video.video_file.width, self.settings.video_heights
            )
        if video.thumbnail_file is not None:
            thumbnail_roles = plan_thumbnail_roles(
                video.thumbnail_file.height, video.thumbnail_file.width, self.settings.thumbnail_widths
            )
        return ImportOperation(
            video,
            matches,
            self.cache.entry(video) if persist else self.cache.peek(video.video_id_hash),
            thumbnail_roles=thumbnail_roles,
            stream_roles=stream_roles,
            force_full_upload=self.settings.force_full_upload if force_full_upload is None else force_full_upload,
        )

    def plan(
        self,
        source_catalog: Iterable[SourceVideo],
        remote_catalog: Sequence[IndexedVideo],
        *,
        force_full_upload: Optional[bool] = None,
    ) -> list[dict[str, Any]]:
        """Describe the stages each video would need, without running any.

        Nothing is written to the cache.
        """
        planned = []
        for video in source_catalog:
            matches = find_matches(video, remote_catalog)
            operation = self.build_operation(video, matches, force_full_upload=force_full_upload, persist=False)
            planned.append(
                {
                    "source_id": video.id,
                    "video_id_hash": video.video_id_hash,
                    "matches": [entry.index_id for entry in matches],
                    "ambiguous": operation.is_ambiguous,
                    "required_stages": [stage.value for stage in operation.required_stages()],
                }
            )
        return planned

    # Import.

    async def reconcile(
        self,
        source_catalog: Iterable[SourceVideo],
        *,
        remote_catalog: Optional[Sequence[IndexedVideo]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> list[ImportOperationResult]:
        client = self._require_client()
        videos = list(source_catalog)
        if remote_catalog is None:
            remote_catalog = await client.fetch_catalog()
        snapshot = tuple(remote_catalog)
        self.logger.info("reconcile_started", videos=len(videos), remote_entries=len(snapshot))

        semaphore = asyncio.Semaphore(max(1, self.settings.max_parallel_imports))
        seen_hashes: set[str] = set()
        tasks: list[Awaitable[ImportOperationResult]] = []
        for video in videos:
            try:
                video_id_hash = fingerprint(video.id)
            except InvalidState as exc:
                tasks.append(self._failed_now(video, exc))
                continue
            if video_id_hash in seen_hashes:
                tasks.append(self._failed_now(video, InvalidState(f"duplicate_source_id:{video.id}")))
                continue
            seen_hashes.add(video_id_hash)
            tasks.append(self._import_one(video, video_id_hash, snapshot, semaphore, cancel_event))

        results = list(await asyncio.gather(*tasks))
        self.logger.info(
            "reconcile_finished",
            succeeded=sum(1 for r in results if r.succeeded),
            failed=sum(1 for r in results if not r.succeeded),
        )
        return results

    async def _failed_now(self, video: SourceVideo, exc: ImporterError) -> ImportOperationResult:
        self.logger.error("operation_rejected", source_id=video.id, error=str(exc))
        return ImportOperationResult(source_id=video.id, stage=Stage.FAILED, outcome="failed", error=str(exc))

    async def _import_one(
        self,
        video: SourceVideo,
        video_id_hash: str,
        remote_catalog: Sequence[IndexedVideo],
        semaphore: asyncio.Semaphore,
        cancel_event: Optional[asyncio.Event],
    ) -> ImportOperationResult:
        async with semaphore:
            async with self.cache.lock(video_id_hash):
                return await self._run_operation(video, remote_catalog, cancel_event)

    async def _run_operation(
        self,
        video: SourceVideo,
        remote_catalog: Sequence[IndexedVideo],
        cancel_event: Optional[asyncio.Event],
    ) -> ImportOperationResult:
        log = self.logger.bind(video_id_hash=video.video_id_hash)
        try:
            operation = self.build_operation(video, find_matches(video, remote_catalog))
        except Exception as exc:
            error = str(exc) if isinstance(exc, ImporterError) else f"{type(exc).__name__}: {exc}"
            log.exception("operation_setup_failed")
            return ImportOperationResult(source_id=video.id, stage=Stage.FAILED, outcome="failed", error=error)

        try:
            require_single_match(video, list(operation.matches))
            index_id, manifest_hash = await self._execute(operation, cancel_event, log)
            operation.trace_stage(Stage.SUCCEEDED)
        except AmbiguousMatch as exc:
            operation.trace_stage(Stage.FAILED)
            log.error("ambiguous_match", index_ids=list(exc.index_ids))
            return self._result(operation, "ambiguous", error=str(exc))
        except ImporterError as exc:
            operation.trace_stage(Stage.FAILED)
            log.error("operation_failed", error=str(exc), trace=[s.value for s in operation.trace])
            return self._result(operation, "failed", error=str(exc))
        except Exception as exc:
            operation.trace_stage(Stage.FAILED)
            log.exception("operation_crashed")
            return self._result(operation, "failed", error=f"{type(exc).__name__}: {exc}")

        if len(operation.trace) == 1:
            outcome: Outcome = "skipped"
        elif operation.existing_entry is None:
            outcome = "imported"
        else:
            outcome = "updated"
        log.info("operation_succeeded", outcome=outcome, index_id=index_id)
        return self._result(operation, outcome, index_id=index_id, manifest_hash=manifest_hash)

    @staticmethod
    def _result(
        operation: ImportOperation,
        outcome: Outcome,
        *,
        index_id: Optional[str] = None,
        manifest_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ImportOperationResult:
        return ImportOperationResult(
            source_id=operation.video.id,
            stage=operation.trace[-1],
            outcome=outcome,
            trace=operation.trace,
            index_id=index_id,
            manifest_hash=manifest_hash,
            error=error,
        )

    async def _execute(self, operation: ImportOperation, cancel_event: Optional[asyncio.Event], log) -> tuple[str, str]:
        video = operation.video
        entry = operation.existing_entry
        cache_entry = operation.cache_entry
        existing_manifest = entry.last_valid_manifest if entry is not None else None

        index_id = entry.index_id if entry is not None else None
        manifest_hash = existing_manifest.hash if existing_manifest is not None else None

        self._check_cancelled(cancel_event)
        needs_thumbnail = operation.requires_thumbnail_upload
        needs_streams = operation.requires_video_stream_upload
        if operation.requires_manifest_upload:
            self._validate_metadata(video)

        batch_id = cache_entry.batch_id
        if needs_thumbnail or needs_streams:
            self._record_originals(operation)
            first_stage = Stage.THUMBNAIL_UPLOADED if needs_thumbnail else Stage.VIDEO_STREAMS_UPLOADED
            batch_id = await self._ensure_batch(operation, first_stage)

        if needs_thumbnail:
            self._check_cancelled(cancel_event)
            await self._upload_roles(
                operation, operation.thumbnail_roles, video.thumbnail_file, batch_id, Stage.THUMBNAIL_UPLOADED, cancel_event
            )
            operation.trace_stage(Stage.THUMBNAIL_UPLOADED)
            log.info("thumbnail_uploaded", roles=[r.key for r in operation.thumbnail_roles])

        if needs_streams:
            self._check_cancelled(cancel_event)
            await self._upload_roles(
                operation, operation.stream_roles, video.video_file, batch_id, Stage.VIDEO_STREAMS_UPLOADED, cancel_event
            )
            operation.trace_stage(Stage.VIDEO_STREAMS_UPLOADED)
            log.info("video_streams_uploaded", roles=[r.key for r in operation.stream_roles])

        if operation.requires_manifest_upload:
            self._check_cancelled(cancel_event)
            if batch_id is None:
                batch_id = existing_manifest.batch_id if existing_manifest and existing_manifest.batch_id else None
            if batch_id is None:
                batch_id = await self._ensure_batch(operation, Stage.MANIFEST_UPLOADED)
            manifest = self._build_manifest(operation, batch_id)
            manifest_hash = await self._call(Stage.MANIFEST_UPLOADED, self.client.publish_manifest(manifest, batch_id))
            if not manifest_hash:
                raise InvalidState("empty_manifest_hash")
            operation.trace_stage(Stage.MANIFEST_UPLOADED)
            log.info("manifest_uploaded", manifest_hash=manifest_hash)

        if operation.requires_index_update:
            self._check_cancelled(cancel_event)
            if manifest_hash is None:
                raise InvalidState("index_update_without_manifest")
            index_id = await self._call(Stage.INDEX_UPDATED, self.client.upsert_index_entry(index_id, manifest_hash))
            operation.trace_stage(Stage.INDEX_UPDATED)
            log.info("index_updated", index_id=index_id)

        if index_id is None or manifest_hash is None:
            raise InvalidState("operation_without_publication")
        return index_id, manifest_hash

    async def _upload_roles(
        self,
        operation: ImportOperation,
        roles: Sequence[AssetRole],
        source_file: Optional[SourceFile],
        batch_id: str,
        stage: Stage,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        cache_entry = operation.cache_entry
        output_dir = Path(self.settings.work_root) / cache_entry.video_id_hash
        for role in roles:
            self._check_cancelled(cancel_event)
            if not operation.force_full_upload and cache_entry.get_uploaded_asset(role, batch_id):
                continue
            path = cache_entry.get_encoded_asset(role)
            if path is None:
                if source_file is None:
                    raise InvalidState(f"missing_source_file:{role.key}")
                if self.transcoder is None:
                    raise InvalidState("transcoder_not_configured")
                path = await self._call(stage, self.transcoder.encode(source_file, role, output_dir))
                cache_entry.record_encoded_asset(role, path)
            remote_hash = await self._call(stage, self.client.upload_asset(path, batch_id))
            cache_entry.record_uploaded_asset(role, batch_id, remote_hash)

    async def _ensure_batch(self, operation: ImportOperation, stage: Stage) -> str:
        cache_entry = operation.cache_entry
        if cache_entry.batch_id:
            return cache_entry.batch_id
        video = operation.video
        size = sum(f.size_bytes() for f in (video.video_file, video.thumbnail_file) if f is not None and f.exists())
        batch_id = await self._call(stage, self.client.create_batch(int(size * BATCH_SIZE_TOLERANCE)))
        cache_entry.set_batch(batch_id)
        return batch_id

    def _record_originals(self, operation: ImportOperation) -> None:
        record = operation.cache_entry.record
        video = operation.video
        for kind, source_file, original in (
            ("video", video.video_file, record.original_video),
            ("thumbnail", video.thumbnail_file, record.original_thumbnail),
        ):
            if source_file is None:
                continue
            if original is not None and (original.path, original.height, original.width) == (
                str(source_file.path),
                source_file.height,
                source_file.width,
            ):
                continue
            operation.cache_entry.record_original(kind, source_file.path, source_file.height, source_file.width)

    def _build_manifest(self, operation: ImportOperation, batch_id: str) -> Manifest:
        video = operation.video
        entry = operation.existing_entry
        existing = entry.last_valid_manifest if entry is not None else None
        cache_entry = operation.cache_entry
        now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)

        if cache_entry.has_uploaded_all(operation.stream_roles, batch_id):
            sources = [
                ManifestSource(
                    kind="audio" if role.kind == "audio" else "video",
                    quality="audio" if role.kind == "audio" else f"{role.height}p",
                    reference=cache_entry.get_uploaded_asset(role, batch_id),
                    size_bytes=self._encoded_size(operation, role),
                )
                for role in operation.stream_roles
            ]
        elif existing is not None and existing.sources:
            sources = list(existing.sources)
        else:
            raise InvalidState("missing_stream_references")

        thumbnail = existing.thumbnail if existing is not None else None
        if cache_entry.has_uploaded_all(operation.thumbnail_roles, batch_id):
            thumbnail_file = video.thumbnail_file
            thumbnail = ManifestThumbnail(
                aspect_ratio=round(thumbnail_file.width / thumbnail_file.height, 4),
                sources={
                    f"{role.width}w": cache_entry.get_uploaded_asset(role, batch_id)
                    for role in operation.thumbnail_roles
                },
            )

        if video.video_file is not None:
            original_quality = f"{video.video_file.height}p"
        else:
            original_quality = existing.original_quality if existing is not None else ""

        duration = video.duration_s
        if duration is None:
            duration = existing.duration_s if existing is not None else 0.0

        return Manifest(
            title=video.title,
            description=video.description,
            duration_s=duration,
            original_quality=original_quality,
            batch_id=batch_id,
            created_at_ms=int(entry.created_at.timestamp() * 1000) if entry is not None else now_ms,
            updated_at_ms=now_ms,
            thumbnail=thumbnail,
            sources=sources,
            personal_data=PersonalData.build_new(video.id, self.settings.importer_identifier),
        )

    @staticmethod
    def _encoded_size(operation: ImportOperation, role: AssetRole) -> int:
        path = operation.cache_entry.get_encoded_asset(role)
        return path.stat().st_size if path is not None else 0

    def _validate_metadata(self, video: SourceVideo) -> None:
        title_max = self.settings.title_max_length
        description_max = self.settings.description_max_length
        if not video.title.strip():
            raise InvalidMetadata("empty_title")
        if title_max is not None and len(video.title) > title_max:
            raise InvalidMetadata(f"title_too_long:max={title_max}")
        if description_max is not None and len(video.description) > description_max:
            raise InvalidMetadata(f"description_too_long:max={description_max}")

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled("cancelled")

    @staticmethod
    async def _call(stage: Stage, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except ImporterError:
            raise
        except Exception as exc:
            raise UpstreamFailure(stage.value, exc) from exc

    def _require_client(self) -> StorageClient:
        if self.client is None:
            raise InvalidState("storage_client_not_configured")
        return self.client

    # Sweep.

    def sweep_deletions(
        self,
        source_catalog: Iterable[SourceVideo],
        remote_catalog: Iterable[IndexedVideo],
        options: SweepOptions,
    ) -> list[IndexedVideo]:
        return compute_deletions(
            source_catalog,
            remote_catalog,
            options,
            importer_identifier=self.settings.importer_identifier,
        )

    async def apply_deletions(self, entries: Iterable[IndexedVideo], *, unpin: bool = False) -> DeletionReport:
        """Delete index entries one by one; a failure never stops the others.

        With ``unpin``, the contents referenced by each deleted entry are
        unpinned afterwards.
        """
        client = self._require_client()
        report = DeletionReport()
        for entry in entries:
            try:
                await client.delete_index_entry(entry.index_id)
            except Exception as exc:
                report.failed[entry.index_id] = f"{type(exc).__name__}: {exc}"
                self.logger.warning("index_entry_delete_failed", index_id=entry.index_id, error=str(exc))
                continue
            report.deleted.append(entry.index_id)
            self.logger.info("index_entry_deleted", index_id=entry.index_id)
            if unpin:
                await self._unpin_contents(client, entry, report)
        return report

    async def _unpin_contents(self, client: StorageClient, entry: IndexedVideo, report: DeletionReport) -> None:
        manifest = entry.last_valid_manifest
        if manifest is None:
            return
        hashes = [source.reference for source in manifest.sources]
        if manifest.thumbnail is not None:
            hashes.extend(manifest.thumbnail.sources.values())
        hashes.append(manifest.hash)
        hashes = list(dict.fromkeys(h for h in hashes if h))
        for content_hash in hashes:
            try:
                await client.unpin_content(content_hash)
            except Exception as exc:
                report.unpin_failed[content_hash] = f"{type(exc).__name__}: {exc}"
                self.logger.warning(
                    "content_unpin_failed", index_id=entry.index_id, content_hash=content_hash, error=str(exc)
                )
                continue
            report.unpinned.append(content_hash)
        self.logger.info("index_entry_unpinned", index_id=entry.index_id, contents=len(hashes))

    # Full run.

    async def run(
        self,
        reader: SourceReader,
        options: Optional[SweepOptions] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportSummary:
        client = self._require_client()
        if options is None:
            options = SweepOptions(
                delete_exogenous=self.settings.delete_exogenous,
                delete_missing_from_source=self.settings.delete_missing_from_source,
                unpin_removed=self.settings.unpin_removed,
            )
        self.logger.info("run_started", source=reader.source_name)
        videos = reader.read_videos()
        remote_catalog = await client.fetch_catalog()

        summary = ImportSummary()
        for result in await self.reconcile(videos, remote_catalog=remote_catalog, cancel_event=cancel_event):
            summary.add_result(result)

        if cancel_event is not None and cancel_event.is_set():
            self.logger.warning("sweep_skipped_after_cancel")
            return summary

        deletions = self.sweep_deletions(videos, remote_catalog, options)
        hashes = source_hashes(videos)
        classes = {
            entry.index_id: classify_entry(entry, hashes, self.settings.importer_identifier) for entry in deletions
        }
        report = await self.apply_deletions(deletions, unpin=options.unpin_removed)
        for index_id in report.deleted:
            if classes[index_id] is EntryClass.EXOGENOUS:
                summary.deleted_exogenous += 1
            else:
                summary.deleted_missing_from_source += 1
        summary.deletion_failures = len(report.failed)
        summary.errors.extend(f"delete {index_id}: {error}" for index_id, error in report.failed.items())
        summary.unpinned = len(report.unpinned)
        summary.unpin_failures = len(report.unpin_failed)
        summary.errors.extend(f"unpin {content_hash}: {error}" for content_hash, error in report.unpin_failed.items())
        self.logger.info("run_finished", **{k: v for k, v in vars(summary).items() if k != "errors"})
        return summary


__all__ = [
    "ImportOperationResult",
    "DeletionReport",
    "ImportSummary",
    "ImportService",
]
