#!/usr/bin/env python3
"""
Delete bill requests that expired more than the grace window ago.

Orders keep their amounts; their bill_request_id is cleared by the database.

Usage:
  python scripts/purge_expired_bills.py [--grace-hours HOURS]
  # Requires DATABASE_URL and SECRET_KEY in .env (or export)
"""
import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv

# Load .env from project root
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(_root, ".env"))

# Add project root to path
sys.path.insert(0, _root)

from app.config import settings
from app.core.logging import setup_logging
from app.database import AsyncSessionLocal, close_db
from app.services.bill_service import BillService


async def run(grace_hours: int) -> None:
    async with AsyncSessionLocal() as db:
        count = await BillService.purge_stale_bills(db, grace_hours=grace_hours)
    await close_db()
    print(f"Purged {count} bill(s) expired more than {grace_hours}h ago")


def main():
    parser = argparse.ArgumentParser(description="Purge long-expired bill requests")
    parser.add_argument("--grace-hours", type=int, default=settings.BILL_PURGE_GRACE_HOURS)
    args = parser.parse_args()

    setup_logging()
    asyncio.run(run(args.grace_hours))


if __name__ == "__main__":
    main()
