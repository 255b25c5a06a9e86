#!/usr/bin/env python3
"""
Database initialization CLI for the gallery pipeline.

Creates missing tables and indexes, or reports which ones exist.
"""

import argparse
import json
import sys

from gallery.database.exceptions import DatabaseInitializationError
from gallery.database.migrations import get_database_status, initialize_database


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Gallery Database Initialization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                  # Initialize database
  %(prog)s --status                         # Check database status
  %(prog)s --status --json                  # Status as JSON
  %(prog)s --database-url sqlite:///x.db    # Use another database
        """,
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Check database status instead of initializing",
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument(
        "--database-url", default=None, help="SQLAlchemy URL (defaults to settings)"
    )

    args = parser.parse_args(argv)

    try:
        if args.status:
            status = get_database_status(args.database_url)

            if args.json:
                print(json.dumps(status, indent=2))
            else:
                _print_status(status)
            return 1 if status.get("error") else 0

        result = initialize_database(args.database_url)
        if args.json:
            print(json.dumps(result, indent=2))
        else:
            print(f"✅ {result['message']} (method: {result['method']})")

    except DatabaseInitializationError as e:
        if args.json:
            print(json.dumps({"error": str(e), "success": False}))
        else:
            print(f"❌ {e}")
        return 1

    return 0


def _print_status(status):
    """Print human-readable status information."""
    if status.get("error"):
        print(f"❌ Error: {status['error']}")
        return

    print("📊 Database Status")
    print("=" * 18)
    print(f"Dialect: {status.get('dialect', 'unknown')}")
    print(f"Fresh database: {status.get('is_fresh', 'unknown')}")
    print(f"Up to date: {status.get('up_to_date', 'unknown')}")
    for table, exists in status.get("tables", {}).items():
        print(f"  {'✅' if exists else '❌'} {table}")


if __name__ == "__main__":
    sys.exit(main())
