#!/usr/bin/env python3
"""
Create the messages table from the SQLAlchemy models.

Usage:
    python scripts/migrate_db.py            # create missing tables
    python scripts/migrate_db.py --check    # report only, exit 1 if tables are missing

The database URL comes from config/settings.yaml (DATABASE_URL).
"""
import argparse
import asyncio
import os
import sys

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def table_names(engine) -> set[str]:
    from sqlalchemy import inspect

    async with engine.connect() as conn:
        return set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))


async def run(check_only: bool = False) -> int:
    from config.settings import load_settings
    from database.models import Base
    from database.session import close_db, get_engine, init_db

    load_settings()
    engine = get_engine()
    defined = set(Base.metadata.tables)

    try:
        print(f"Database: {engine.dialect.name} ({engine.url.render_as_string(hide_password=True)})")
        missing = defined - await table_names(engine)

        if check_only:
            if missing:
                print(f"Missing tables: {', '.join(sorted(missing))}")
                print("Run without --check to create them.")
                return 1
            print(f"All tables exist: {', '.join(sorted(defined))}")
            return 0

        if not missing:
            print("Nothing to do.")
            return 0
        await init_db(engine)
        still_missing = defined - await table_names(engine)
        if still_missing:
            print(f"Failed to create: {', '.join(sorted(still_missing))}")
            return 1
        print(f"Created: {', '.join(sorted(missing))}")
        return 0
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Create message tables")
    parser.add_argument("--check", action="store_true", help="Report missing tables without changes")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(check_only=args.check)))


if __name__ == "__main__":
    main()
