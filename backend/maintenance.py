#!/usr/bin/env python3
"""
Maintenance CLI for the gallery pipeline.

Subcommands:
  retry-thumbnails      re-queue photos whose thumbnails failed or stalled
  backfill-dimensions   fill missing width/height from the blobs
  generate-og-images    queue social preview images
  reconcile             run one orphan reconciliation pass
"""

import argparse
import json
import sys

from gallery.config import settings
from gallery.database.core import SyncDatabase
from gallery.database.exceptions import DatabaseOperationError
from gallery.services.logger import configure_logging
from gallery.services.maintenance_service import MaintenanceService
from gallery.services.orphan_reconciler import OrphanReconciler


def _build_parser():
    parser = argparse.ArgumentParser(
        description="Gallery maintenance tasks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s retry-thumbnails --include-pending
  %(prog)s retry-thumbnails --include-processing --place-id 42
  %(prog)s backfill-dimensions --dry-run
  %(prog)s generate-og-images --place-id 42 --force
  %(prog)s reconcile --dry-run --json
        """,
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument(
        "--database-url", default=None, help="SQLAlchemy URL (defaults to settings)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    retry = subparsers.add_parser(
        "retry-thumbnails", help="Reset failed thumbnails and queue them again"
    )
    retry.add_argument(
        "--include-pending",
        action="store_true",
        help="Also queue photos still pending (e.g. whose job was never queued)",
    )
    retry.add_argument(
        "--include-processing",
        action="store_true",
        help="Also queue photos left processing with no active thumbnail job",
    )
    retry.add_argument("--place-id", type=int, default=None, help="Limit to one place")
    retry.add_argument("--dry-run", action="store_true", help="Only report")

    backfill = subparsers.add_parser(
        "backfill-dimensions", help="Fill missing width/height from the blobs"
    )
    backfill.add_argument("--dry-run", action="store_true", help="Only report")

    og = subparsers.add_parser(
        "generate-og-images", help="Queue social preview images"
    )
    og.add_argument("--place-id", type=int, default=None, help="Limit to one place")
    og.add_argument(
        "--force", action="store_true", help="Regenerate existing previews too"
    )
    og.add_argument("--dry-run", action="store_true", help="Only report")

    reconcile = subparsers.add_parser(
        "reconcile", help="Delete orphan files and directories from the blob store"
    )
    reconcile.add_argument(
        "--dry-run", action="store_true", help="Log deletions without deleting"
    )
    reconcile.add_argument(
        "--min-age-minutes",
        type=float,
        default=None,
        help="Override the age gate for this pass",
    )
    return parser


def _run_command(args, db):
    if args.command == "reconcile":
        reconciler = OrphanReconciler(db, min_age_minutes=args.min_age_minutes)
        stats = reconciler.run(dry_run=args.dry_run)
        return dict(stats.model_dump(), total_deleted=stats.total_deleted)

    service = MaintenanceService(db)
    if args.command == "retry-thumbnails":
        return service.retry_thumbnails(
            include_pending=args.include_pending,
            include_processing=args.include_processing,
            place_id=args.place_id,
            dry_run=args.dry_run,
        )
    if args.command == "backfill-dimensions":
        return service.backfill_dimensions(dry_run=args.dry_run)
    if args.command == "generate-og-images":
        return service.generate_og_images(
            place_id=args.place_id, force=args.force, dry_run=args.dry_run
        )
    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None):
    """Main CLI entry point."""
    args = _build_parser().parse_args(argv)
    configure_logging(settings.log_level, settings.log_file)

    db = SyncDatabase(args.database_url)
    try:
        result = _run_command(args, db)
    except DatabaseOperationError as e:
        if args.json:
            print(json.dumps({"error": str(e), "success": False}))
        else:
            print(f"❌ {e}")
        return 1
    finally:
        db.close()

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        prefix = "[DRY RUN] " if result.get("dry_run") else ""
        print(f"✅ {prefix}{args.command}")
        for key, value in result.items():
            if key != "dry_run":
                print(f"  {key}: {value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
