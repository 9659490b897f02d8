"""Marketplace management CLI.

Creates and drops database schemas and runs the periodic SLA breach sweep.
Schedule ``sweep-sla`` from cron (or any job runner) to keep breach flags
current between case updates.

Usage:
    python src/manage.py setup-db                           # Create all tables
    python src/manage.py drop-db                            # Drop all tables
    python src/manage.py sweep-sla                          # Evaluate as of now
    python src/manage.py sweep-sla --as-of 2025-01-01T00:00:00+00:00
"""

import argparse
import sys
from datetime import datetime


def setup_database():
    from marketplace.domain import marketplace
    from marketplace.utils.db import setup_db

    print("Initializing marketplace domain...")
    marketplace.init()
    print("Creating marketplace database schema...")
    setup_db(marketplace)
    print("Done.")


def drop_database():
    from marketplace.domain import marketplace
    from marketplace.utils.db import drop_db

    print("Initializing marketplace domain...")
    marketplace.init()
    print("Dropping marketplace database schema...")
    drop_db(marketplace)
    print("Done.")


def sweep_sla(as_of: datetime | None = None) -> int:
    from marketplace.domain import marketplace
    from marketplace.sla.sweep import run_breach_sweep

    marketplace.init()
    with marketplace.domain_context():
        changed = run_breach_sweep(as_of=as_of)
    print(f"SLA sweep complete: {changed} record(s) changed.")
    return changed


def main():
    from marketplace.utils.logging import configure_logging

    parser = argparse.ArgumentParser(description="Marketplace management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    sweep_parser = subparsers.add_parser("sweep-sla", help="Re-evaluate SLA breach flags")
    sweep_parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="Evaluate as of this ISO timestamp (default: now)",
    )

    args = parser.parse_args()
    configure_logging()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "sweep-sla":
        sweep_sla(args.as_of)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
