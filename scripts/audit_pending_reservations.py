#!/usr/bin/env python3
"""
Find (and optionally release) abandoned AI message reservations.

A reservation is abandoned when the client never called complete or
release, for example after a crash. Abandoned reservations keep counting
against the free tier, so operators can list them and release them.

Usage:
    python scripts/audit_pending_reservations.py                  # list only
    python scripts/audit_pending_reservations.py --older-than 120 # minutes
    python scripts/audit_pending_reservations.py --release        # release all found
"""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from pharmacy_usage.constants import DEFAULT_STALE_RESERVATION_MINUTES  # noqa: E402
from pharmacy_usage.core.usage.service import build_usage_service  # noqa: E402
from pharmacy_usage.db.connection import db  # noqa: E402
from pharmacy_usage.utils.time_utils import utc_now  # noqa: E402


async def audit(older_than_minutes: int, release: bool, limit: int) -> int:
    service = build_usage_service()
    cutoff = utc_now() - timedelta(minutes=older_than_minutes)
    try:
        stale = await service.ledger_store.list_stale_reservations(cutoff, limit=limit)
        if not stale:
            logger.info(f"No reservations older than {older_than_minutes} minutes")
            return 0

        for ledger in stale:
            print(
                f"  {ledger.user_id:<40} pending={ledger.pending_messages:<4} "
                f"used={ledger.messages_used:<6} last_reserved_at={ledger.last_reserved_at.isoformat()}"
            )

            if not release:
                continue
            await service.release_stale_reservations(ledger.user_id, cutoff)

        logger.info(f"Found {len(stale)} ledger(s) with stale reservations")
        return 0
    except Exception as e:
        logger.error(f"Audit failed: {e}")
        return 1
    finally:
        await service.close()
        await db.close_all()


def main():
    parser = argparse.ArgumentParser(description="Audit pending AI message reservations")
    parser.add_argument(
        "--older-than",
        type=int,
        default=DEFAULT_STALE_RESERVATION_MINUTES,
        help="Age in minutes after which a reservation counts as abandoned",
    )
    parser.add_argument(
        "--release",
        action="store_true",
        help="Release the stale reservations that were found",
    )
    parser.add_argument("--limit", type=int, default=100, help="Maximum ledgers to process")
    args = parser.parse_args()

    sys.exit(asyncio.run(audit(args.older_than, args.release, args.limit)))


if __name__ == "__main__":
    main()
