import argparse
import asyncio
from datetime import timedelta

from app.core.audit_log import AuditLogger
from app.db.database import async_session_local, close_db
from app.services.billing_gateway import BillingGateway
from app.services.paystack_client import PaystackClient
from app.workers.billing_reconciler import reconcile_pending_payments


async def main(minutes: int, limit: int):
    gateway = BillingGateway(async_session_local, PaystackClient(), AuditLogger(async_session_local))
    try:
        summary = await reconcile_pending_payments(
            async_session_local,
            gateway,
            older_than=timedelta(minutes=minutes),
            limit=limit,
        )
    finally:
        await close_db()

    print(f"Examined: {summary['examined']}")
    print(f"Settled:  {summary['settled']}")
    print(f"Pending:  {summary['pending']}")
    print(f"Errors:   {summary['errors']}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Re-verify stale pending payments")
    parser.add_argument("--minutes", type=int, default=30, help="minimum age of a pending payment")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()
    asyncio.run(main(args.minutes, args.limit))
