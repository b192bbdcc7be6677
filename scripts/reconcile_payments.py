#!/usr/bin/env python3
"""
Reconcile stale PENDING orders against the payment gateway.

Completes orders whose payment went through, fails orders whose payments all
failed, and reports gateway orders that have no ledger order behind them.
Run periodically (cron / scheduled task).

Usage:
  python scripts/reconcile_payments.py [--older-than MINUTES]
  # Requires DATABASE_URL, SECRET_KEY and RAZORPAY_* in .env (or export)
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
from app.services.payment_gateway import PaymentGateway
from app.services.reconciliation_service import ReconciliationService


async def run(older_than: int) -> int:
    gateway = PaymentGateway.from_settings()
    async with AsyncSessionLocal() as db:
        report = await ReconciliationService.sweep(db, gateway, older_than_minutes=older_than)
    await close_db()

    print(f"Checked {report.checked} stale order(s)")
    print(f"  completed:  {', '.join(report.completed) or '-'}")
    print(f"  failed:     {', '.join(report.failed) or '-'}")
    print(f"  unresolved: {', '.join(report.unresolved) or '-'}")
    if report.orphaned_gateway_orders:
        print(f"ORPHANED gateway orders: {', '.join(report.orphaned_gateway_orders)}")
        return 2
    return 0


def main():
    parser = argparse.ArgumentParser(description="Reconcile stale PENDING orders with the payment gateway")
    parser.add_argument(
        "--older-than",
        type=int,
        default=settings.RECONCILIATION_STALE_MINUTES,
        help="Only look at PENDING orders older than this many minutes",
    )
    args = parser.parse_args()

    if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
        print("ERROR: RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be set. Add to .env or export.")
        sys.exit(1)

    setup_logging()
    sys.exit(asyncio.run(run(args.older_than)))


if __name__ == "__main__":
    main()
