# src/main.py
"""CLI entry point.

Usage:
    reprostore ingest <bundle.zip> [--json]
    reprostore validate <dir|bundle_id> [--json] [--summary]
    reprostore inspect <bundle_id> [--json]
    reprostore list [--build B] [--map M] [--platform P] [--limit N] [--offset N] [--json]
    reprostore tag <bundle_id> <tag>
    reprostore note <bundle_id> --author A <content>
    reprostore sweep [--max-age-hours N]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from reprostore.version import __version__

logger = logging.getLogger("reprostore.main")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from reprostore.config.settings import ConfigurationError, load_settings
    from reprostore.core.errors import ReproStoreError
    from reprostore.logging.logger import setup_logging

    try:
        overrides: dict[str, object] = {}
        if args.data_dir is not None:
            overrides["data_dir"] = args.data_dir
        settings = load_settings(**overrides)
    except (ConfigurationError, ValueError) as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ReproStoreError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="reprostore",
        description=f"reprostore v{__version__}: repro bundle ingestion and validation",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--data-dir", type=Path, default=None,
        help="Data directory (default: REPROSTORE_DATA_DIR or ./data)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- ingest ---
    p_ingest = subparsers.add_parser("ingest", help="Ingest a bundle zip file")
    p_ingest.add_argument("file", type=Path, help="Path to bundle .zip")
    p_ingest.add_argument("--json", action="store_true", help="Print result as JSON")
    p_ingest.set_defaults(func=_cmd_ingest)

    # --- validate ---
    p_validate = subparsers.add_parser(
        "validate", help="Check a bundle directory for internal consistency",
    )
    p_validate.add_argument("target", help="Bundle directory or stored bundle id")
    p_validate.add_argument("--json", action="store_true", help="Print report as JSON")
    p_validate.add_argument(
        "--summary", action="store_true", help="Also print the input timeline summary",
    )
    p_validate.set_defaults(func=_cmd_validate, standalone=True)

    # --- inspect ---
    p_inspect = subparsers.add_parser("inspect", help="Show a stored bundle")
    p_inspect.add_argument("bundle_id")
    p_inspect.add_argument("--json", action="store_true", help="Print bundle as JSON")
    p_inspect.set_defaults(func=_cmd_inspect)

    # --- list ---
    p_list = subparsers.add_parser("list", help="List stored bundles, newest first")
    p_list.add_argument("--build", default=None, help="Filter by build id")
    p_list.add_argument("--map", dest="map_name", default=None, help="Filter by map name")
    p_list.add_argument("--platform", default=None, help="Filter by platform")
    p_list.add_argument("--limit", type=int, default=50, help="Page size (max 500)")
    p_list.add_argument("--offset", type=int, default=0)
    p_list.add_argument("--json", action="store_true", help="Print page as JSON")
    p_list.set_defaults(func=_cmd_list)

    # --- tag ---
    p_tag = subparsers.add_parser("tag", help="Tag a bundle")
    p_tag.add_argument("bundle_id")
    p_tag.add_argument("tag")
    p_tag.set_defaults(func=_cmd_tag)

    # --- note ---
    p_note = subparsers.add_parser("note", help="Attach a QA note to a bundle")
    p_note.add_argument("bundle_id")
    p_note.add_argument("content")
    p_note.add_argument("--author", required=True)
    p_note.set_defaults(func=_cmd_note)

    # --- sweep ---
    p_sweep = subparsers.add_parser("sweep", help="Remove stale staging directories")
    p_sweep.add_argument(
        "--max-age-hours", type=float, default=None,
        help="Age threshold (default: REPROSTORE_STAGING_MAX_AGE_HOURS)",
    )
    p_sweep.set_defaults(func=_cmd_sweep)

    return parser


async def _run(args: argparse.Namespace, settings: object) -> int:
    if getattr(args, "standalone", False):
        return await args.func(args, settings)

    from reprostore.api.facade import BundleService

    async with BundleService.from_settings(settings) as service:
        return await args.func(args, service)


async def _cmd_ingest(args: argparse.Namespace, service) -> int:
    """Ingest one zip archive from disk."""
    file_path: Path = args.file
    if not file_path.is_file():
        print(f"file not found: {file_path}", file=sys.stderr)
        return 1

    result = await service.ingest_archive_file(file_path)
    if args.json:
        print(result.model_dump_json(indent=2))
        return 0

    print(f"Bundle:    {result.bundle_id}")
    print(f"Status:    {result.status}")
    print(f"Artifacts: {result.artifact_count}")
    return 0


async def _resolve_bundle_dir(target: str, settings: object) -> Path:
    """Directories are used as given; anything else is looked up as a stored bundle id."""
    path = Path(target)
    if path.is_dir():
        return path

    from reprostore.api.facade import BundleService

    async with BundleService.from_settings(settings) as service:
        return await service.bundle_path(target)


async def _cmd_validate(args: argparse.Namespace, settings: object) -> int:
    """Validate a directory (or a stored bundle). Exit 1 when invalid."""
    from reprostore.validation.engine import ValidationEngine
    from reprostore.validation.formatting import format_report, format_summary
    from reprostore.validation.summary import SummaryBuilder

    bundle_dir = await _resolve_bundle_dir(args.target, settings)

    # InvalidManifestError from the builder surfaces as a structured error
    summary = SummaryBuilder().build(bundle_dir) if args.summary else None
    report = ValidationEngine().validate(bundle_dir)

    if args.json:
        payload = report.model_dump(mode="json", by_alias=True, exclude_none=True)
        if summary is not None:
            payload["summary"] = summary.model_dump(mode="json", by_alias=True, exclude_none=True)
        print(json.dumps(payload, indent=2))
    else:
        print(format_report(report), end="")
        if summary is not None:
            print()
            print(format_summary(summary), end="")

    return 0 if report.valid else 1


async def _cmd_inspect(args: argparse.Namespace, service) -> int:
    bundle = await service.get_bundle(args.bundle_id)
    if args.json:
        print(bundle.model_dump_json(indent=2))
        return 0

    print(f"Bundle:    {bundle.bundle_id}")
    print(f"Hash:      {bundle.content_hash}")
    print(f"Build:     {bundle.build_id}")
    print(f"Map:       {bundle.map_name or '-'}")
    print(f"Platform:  {bundle.platform}")
    print(f"Timestamp: {bundle.bundle_timestamp.isoformat()}")
    print(f"Size:      {bundle.size_bytes} bytes")
    print(f"Stored at: {bundle.storage_path}")
    if bundle.tags:
        print(f"Tags:      {', '.join(bundle.tags)}")
    print(f"\nArtifacts ({len(bundle.artifacts)}):")
    for a in bundle.artifacts:
        print(f"  {a.artifact_id}  {a.artifact_type.value:<11} {a.size_bytes:>12}  {a.filename}")
    if bundle.notes:
        print(f"\nNotes ({len(bundle.notes)}):")
        for n in bundle.notes:
            print(f"  [{n.created_at:%Y-%m-%d %H:%M}] {n.author}: {n.content}")
    return 0


async def _cmd_list(args: argparse.Namespace, service) -> int:
    from reprostore.core.models import BundleListQuery

    page = await service.list_bundles(BundleListQuery(
        build_id=args.build,
        map_name=args.map_name,
        platform=args.platform,
        limit=args.limit,
        offset=args.offset,
    ))
    if args.json:
        print(page.model_dump_json(indent=2))
        return 0

    if not page.bundles:
        print("No bundles found.")
        return 0
    print(f"{'BUNDLE':<12} {'BUILD':<20} {'MAP':<20} {'PLATFORM':<10} {'ARTIFACTS':>9}  CREATED")
    for b in page.bundles:
        print(
            f"{b.bundle_id:<12} {b.build_id[:20]:<20} {(b.map_name or '-')[:20]:<20} "
            f"{b.platform[:10]:<10} {b.artifact_count:>9}  {b.created_at:%Y-%m-%d %H:%M}"
        )
    print(f"\n{len(page.bundles)} of {page.total} (offset {page.offset})")
    return 0


async def _cmd_tag(args: argparse.Namespace, service) -> int:
    tags = await service.add_tag(args.bundle_id, args.tag)
    print(f"{args.bundle_id}: {', '.join(tags)}")
    return 0


async def _cmd_note(args: argparse.Namespace, service) -> int:
    note = await service.add_note(args.bundle_id, args.author, args.content)
    print(note.note_id)
    return 0


async def _cmd_sweep(args: argparse.Namespace, service) -> int:
    max_age = args.max_age_hours * 3600.0 if args.max_age_hours is not None else None
    removed = service.sweep_staging(max_age)
    print(f"Removed {removed} stale staging directories")
    return 0


if __name__ == "__main__":
    sys.exit(main())
