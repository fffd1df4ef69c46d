"""Funding management CLI.

Usage:
    python src/manage.py setup-db               # Create all tables
    python src/manage.py drop-db                # Drop all tables
    python src/manage.py charge-subscriptions   # Renew subscriptions due now
    python src/manage.py charge-subscriptions --as-of 2026-01-01T00:00:00+00:00
"""

import argparse
import sys
from datetime import UTC, datetime


def _initialized_domain():
    from funding.domain import funding

    funding.init()
    return funding


def setup_database():
    from funding.utils.db import setup_db

    print("Initializing funding domain...")
    domain = _initialized_domain()
    print("Creating funding database schema...")
    prepared = setup_db(domain)
    if not prepared:
        print("  No relational provider configured; nothing to create.")
    print("Done.")


def drop_database():
    from funding.utils.db import drop_db

    print("Initializing funding domain...")
    domain = _initialized_domain()
    print("Dropping funding database schema...")
    drop_db(domain)
    print("Done.")


def charge_subscriptions(as_of: datetime | None = None) -> int:
    from funding.subscription.renewal import charge_due_subscriptions

    domain = _initialized_domain()
    with domain.domain_context():
        report = charge_due_subscriptions(as_of or datetime.now(UTC))

    print(
        f"Attempted {report.attempted}: {len(report.charged)} charged, {len(report.failed)} failed "
        f"({len(report.deactivated)} deactivated), {len(report.errored)} errored, "
        f"{len(report.skipped)} skipped."
    )
    return 1 if report.errored else 0


def _parse_as_of(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def main():
    parser = argparse.ArgumentParser(description="Funding management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    charge_parser = subparsers.add_parser("charge-subscriptions", help="Charge every subscription that is due")
    charge_parser.add_argument("--as-of", type=_parse_as_of, default=None, help="ISO timestamp (default: now)")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "charge-subscriptions":
        sys.exit(charge_subscriptions(args.as_of))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
