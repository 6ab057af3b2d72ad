from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError
from rich.console import Console

from .core.config import Settings, get_settings
from .core.errors import SourceError
from .core.logging import configure_logging, level_from_name
from .core.storage import get_storage
from .ingest.asset_cache import AssetCache
from .ingest.fingerprint import fingerprint
from .ingest.manifest import IndexedVideo, load_catalog_snapshot
from .ingest.probe import extract_thumbnail, probe_media
from .ingest.sweep import SweepOptions, classify_entry, source_hashes
from .services.collaborators import SourceReader
from .services.import_service import ImportService
from .sources.json_list import JsonListSourceReader
from .sources.markdown import MarkdownSourceReader

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(level_from_name(settings.log_level))

    if getattr(args, "check", False):
        _run_environment_check(settings)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Video importer developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    fingerprint_parser = subparsers.add_parser("fingerprint", help="Print the fingerprint of source video ids")
    fingerprint_parser.add_argument("ids", nargs="+", help="Source video ids")
    fingerprint_parser.set_defaults(func=_cmd_fingerprint)

    plan_parser = subparsers.add_parser("plan", help="Print the stages each source video still requires")
    _add_source_arguments(plan_parser)
    plan_parser.add_argument("--force", action="store_true", help="Plan as if a full upload was forced")
    plan_parser.set_defaults(func=_cmd_plan)

    sweep_parser = subparsers.add_parser("sweep", help="Print the index entries a sweep would delete")
    _add_source_arguments(sweep_parser)
    sweep_parser.add_argument("--delete-exogenous", action="store_true", help="Include entries from other clients")
    sweep_parser.add_argument(
        "--delete-missing",
        action="store_true",
        help="Include entries whose source video is gone",
    )
    sweep_parser.set_defaults(func=_cmd_sweep)

    cache_parser = subparsers.add_parser("cache", help="Inspect the asset cache")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command", required=True)
    show_parser = cache_subparsers.add_parser("show", help="Print the cache record of a source video id")
    show_parser.add_argument("id", help="Source video id")
    show_parser.set_defaults(func=_cmd_cache_show)
    return parser


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    source_group = parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument("--json-list", help="Path to a JSON list of videos")
    source_group.add_argument("--md-folder", help="Folder of markdown video descriptions")
    parser.add_argument("--catalog", required=True, help="JSON snapshot of the remote index catalog")


def _cmd_fingerprint(args: argparse.Namespace) -> None:
    console.print_json(data={video_id: fingerprint(video_id) for video_id in args.ids})


def _cmd_plan(args: argparse.Namespace) -> None:
    """Print, as JSON, the required stages of every source video.

    Args:
        args: The command-line arguments.
    """
    settings = get_settings()
    videos = _read_source(_build_reader(args, settings))
    remote_catalog = _load_catalog(Path(args.catalog))
    service = ImportService(settings, AssetCache(get_storage(settings)))
    planned = service.plan(videos, remote_catalog, force_full_upload=args.force or None)
    console.print_json(data=planned)


def _cmd_sweep(args: argparse.Namespace) -> None:
    """Print, as JSON, the index entries a sweep would delete.

    Args:
        args: The command-line arguments.
    """
    settings = get_settings()
    videos = _read_source(_build_reader(args, settings))
    remote_catalog = _load_catalog(Path(args.catalog))
    service = ImportService(settings, AssetCache(get_storage(settings)))
    options = SweepOptions(delete_exogenous=args.delete_exogenous, delete_missing_from_source=args.delete_missing)
    deletions = service.sweep_deletions(videos, remote_catalog, options)
    hashes = source_hashes(videos)
    console.print_json(
        data=[
            {
                "index_id": entry.index_id,
                "video_id_hash": entry.video_id_hash,
                "class": classify_entry(entry, hashes, settings.importer_identifier).value,
            }
            for entry in deletions
        ]
    )


def _cmd_cache_show(args: argparse.Namespace) -> None:
    settings = get_settings()
    cache = AssetCache(get_storage(settings))
    video_id_hash = fingerprint(args.id)
    if video_id_hash not in cache:
        console.print(f"[red]No cache record for {args.id}[/]")
        sys.exit(2)
    console.print_json(cache.entry_for(video_id_hash).record.model_dump_json())


def _build_reader(args: argparse.Namespace, settings: Settings) -> SourceReader:
    if args.json_list:
        return JsonListSourceReader(
            Path(args.json_list).expanduser().resolve(),
            prober=probe_media,
            thumbnail_extractor=extract_thumbnail,
            thumbnail_dir=Path(settings.work_root) / "thumbnails",
        )
    return MarkdownSourceReader(
        Path(args.md_folder).expanduser().resolve(),
        prober=probe_media,
        thumbnail_extractor=extract_thumbnail,
        thumbnail_dir=Path(settings.work_root) / "thumbnails",
    )


def _read_source(reader: SourceReader):
    try:
        return reader.read_videos()
    except SourceError as exc:
        console.print(f"[red]Source rejected:[/] {exc}")
        sys.exit(2)


def _load_catalog(path: Path) -> list[IndexedVideo]:
    try:
        return load_catalog_snapshot(path)
    except (OSError, ValidationError) as exc:
        console.print(f"[red]Catalog snapshot unreadable:[/] {exc}")
        sys.exit(2)


def _run_environment_check(settings: Settings) -> None:
    """Check for the presence of required external dependencies."""
    checks = {
        "ffmpeg": ["ffmpeg", "-version"],
        "ffprobe": ["ffprobe", "-version"],
    }
    results = {}
    for label, cmd in checks.items():
        try:
            subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
            results[label] = True
        except (OSError, subprocess.CalledProcessError):
            results[label] = False

    console.rule(f"[bold]{settings.app_name} environment check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg to encode and probe media.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
