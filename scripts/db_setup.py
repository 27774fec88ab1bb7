#!/usr/bin/env python3
"""
Database setup script for the pharmacy usage service.

Uses the SQLAlchemy models in pharmacy_usage/db/models.py as the single
source of truth for the schema.

Usage:
    python scripts/db_setup.py setup      # Create all tables
    python scripts/db_setup.py teardown   # Drop all tables (with confirmation)
    python scripts/db_setup.py reset      # Teardown + setup
    python scripts/db_setup.py status     # Show row counts per table

Environment variables (from .env):
    - DATABASE_URL: asyncpg connection URL
    - DATABASE_ENABLED: must be true
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from sqlalchemy import func, select  # noqa: E402

from pharmacy_usage.db.connection import db, mask_database_url  # noqa: E402
from pharmacy_usage.db.models import Base  # noqa: E402


def _confirm(prompt: str, force: bool) -> bool:
    if force:
        return True
    answer = input(f"{prompt} (yes/no): ")
    return answer.strip().lower() == "yes"


async def cmd_setup() -> None:
    """Create all tables defined by the models."""
    await db.create_tables()
    for table in Base.metadata.sorted_tables:
        logger.info(f"  - {table.name}")


async def cmd_teardown(force: bool = False) -> bool:
    if not _confirm("Are you sure you want to DROP all tables? This cannot be undone.", force):
        logger.info("Teardown cancelled")
        return False
    await db.drop_tables()
    return True


async def cmd_reset(force: bool = False) -> None:
    if not _confirm("Are you sure you want to RESET the database? All data will be lost.", force):
        logger.info("Reset cancelled")
        return
    await db.drop_tables()
    await db.create_tables()


async def cmd_status() -> None:
    """Print the row count for each table, or note that it is missing."""
    if not await db.test_connection():
        logger.error("Database is not reachable")
        return

    for table in Base.metadata.sorted_tables:
        try:
            async with db.session() as session:
                count = (await session.execute(select(func.count()).select_from(table))).scalar_one()
            print(f"  {table.name:<24} {count:>10,} rows")
        except Exception as e:
            print(f"  {table.name:<24} {'missing':>10} ({type(e).__name__})")


async def run(command: str, force: bool) -> None:
    try:
        if command == "setup":
            await cmd_setup()
        elif command == "teardown":
            await cmd_teardown(force=force)
        elif command == "reset":
            await cmd_reset(force=force)
        elif command == "status":
            await cmd_status()
    finally:
        await db.close_all()


def main():
    parser = argparse.ArgumentParser(
        description="Pharmacy usage database setup",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command",
        choices=["setup", "teardown", "reset", "status"],
        help="Command to execute"
    )
    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Skip confirmation prompts for destructive operations"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not db.config.enabled:
        logger.error("DATABASE_ENABLED is false; nothing to do")
        sys.exit(1)

    print(f"\nTarget database: {mask_database_url(db.config.database_url)}\n")
    asyncio.run(run(args.command, args.force))


if __name__ == "__main__":
    main()
