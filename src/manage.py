"""Order fulfillment database management CLI.

Creates and drops the schema for the fulfillment domain's SQL providers.
With the default memory providers both commands are no-ops.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys


def setup_database():
    """Create database tables for the fulfillment domain."""
    from order_fulfillment.domain import fulfillment
    from order_fulfillment.utils.db import setup_db

    print("Initializing fulfillment domain...")
    fulfillment.init()
    print("Creating fulfillment database schema...")
    providers = setup_db(fulfillment)
    if providers:
        print(f"  Schema ready on: {', '.join(providers)}")
    else:
        print("  No SQL providers configured, nothing to create.")
    print("Done.")


def drop_database():
    """Drop database tables for the fulfillment domain."""
    from order_fulfillment.domain import fulfillment
    from order_fulfillment.utils.db import drop_db

    print("Initializing fulfillment domain...")
    fulfillment.init()
    print("Dropping fulfillment database schema...")
    providers = drop_db(fulfillment)
    if providers:
        print(f"  Schema dropped on: {', '.join(providers)}")
    else:
        print("  No SQL providers configured, nothing to drop.")
    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="Order fulfillment database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
