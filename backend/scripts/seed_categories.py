"""CLI script to seed default categories and repair legacy entries.
Usage: python scripts/seed_categories.py [--list]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `scoreboard` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from scoreboard.database import engine, create_db_and_tables
from scoreboard import services


def main(list_categories: bool = False):
    """Create tables, seed categories and run the legacy data migrations.

    Results are printed to stdout for a quick CLI feedback loop.
    """
    create_db_and_tables()
    with Session(engine) as session:
        svc = services.CategoryService(session)
        result = svc.run_startup_migrations()
        print(f"Seeded {result['seeded']} categories, migrated {result['migrated']} legacy entries, "
              f"backfilled {result['backfilled']} uncategorised entries")
        if list_categories:
            for c in svc.list_categories():
                print(f'{c.id:>3}  {c.name:<12} {c.label}')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--list', action='store_true', help='Print the categories after seeding')
    args = parser.parse_args()
    main(list_categories=args.list)
