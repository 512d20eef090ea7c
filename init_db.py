"""Initialize the marketplace schema and seed the lookup tables.

Creates every table and inserts the fixed option lists (statuses, durations,
team sizes, degrees, majors, schools). Tag catalogs start empty and grow as
profiles reference new names.

Usage:
    python init_db.py            # create missing tables, seed missing options
    python init_db.py --reset    # drop everything first
"""

import argparse
import asyncio
import sys

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncConnection

from projectboard import models
from projectboard.config import settings
from projectboard.db import engine

SEED_DATA: dict[type[models.Base], list[str]] = {
    models.Status: ["Active", "Pending", "Completed", "Cancelled", "Closed"],
    models.Duration: ["Less than 1 month", "1-3 months", "3-6 months", "6+ months"],
    models.TeamSize: ["1", "2-3", "4-6", "7+"],
    models.Degree: ["High School", "Associate", "Bachelor", "Master", "Doctorate"],
    models.Major: [
        "Business",
        "Computer Science",
        "Design",
        "Economics",
        "Education",
        "Engineering",
        "Marketing",
        "Mathematics",
        "Psychology",
    ],
    models.School: ["Community College", "State University", "Technical Institute"],
}


async def seed_lookups(conn: AsyncConnection) -> dict[str, int]:
    """Insert missing option names; returns how many were added per table."""
    added = {}
    for model, names in SEED_DATA.items():
        table = model.__table__
        existing = set((await conn.execute(select(table.c.name))).scalars().all())
        missing = [{"name": name} for name in names if name not in existing]
        if missing:
            await conn.execute(table.insert(), missing)
        added[table.name] = len(missing)
    return added


async def init_database(reset: bool = False):
    """Create all database tables and seed lookup options."""
    print(f"Initializing database: {settings.db.url.split('@')[-1]}")

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(models.Base.metadata.drop_all)
            print("✓ Dropped existing tables")

        await conn.run_sync(models.Base.metadata.create_all)
        print("✓ Created all tables")

        for table, count in (await seed_lookups(conn)).items():
            print(f"✓ Seeded {table}: {count} new")

    print("\n✅ Database initialization complete!")
    print(f"Tables: {', '.join(models.Base.metadata.tables.keys())}")


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--reset", action="store_true", help="Drop all tables before creating them")
    args = parser.parse_args()

    try:
        await init_database(reset=args.reset)
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
