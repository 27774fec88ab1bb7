#!/usr/bin/env python3
"""
Rebuild the system-wide user count aggregate from user_profiles.

Run on a schedule (or by hand) to correct drift from missed lifecycle
deltas. Safe to run at any time; the result is the same on every run.

Usage:
    python scripts/recompute_user_counts.py
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from pharmacy_usage.core.usage.service import build_usage_service  # noqa: E402
from pharmacy_usage.db.connection import db  # noqa: E402


async def recompute() -> int:
    service = build_usage_service()
    try:
        before = await service.get_user_counts()
        after = await service.recompute_user_counts()
        logger.info(
            f"User counts recomputed: total {before.total_users} -> {after.total_users}, "
            f"active {before.active_users} -> {after.active_users}"
        )
        return 0
    except Exception as e:
        logger.error(f"Recompute failed: {e}")
        return 1
    finally:
        await service.close()
        await db.close_all()


def main():
    parser = argparse.ArgumentParser(description="Recompute dashboard user counts")
    parser.parse_args()
    sys.exit(asyncio.run(recompute()))


if __name__ == "__main__":
    main()
