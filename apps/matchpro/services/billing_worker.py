"""
Billing worker: periodic monthly dues generation and vote expiry.

Background worker that polls every BILLING_WORKER_INTERVAL_SECONDS. On each
pass it closes open votes whose deadline passed and generates the current
month's dues (payments and ledger entries) for every team whose billing
day has been reached. Generation is idempotent, so repeated passes in the
same month create nothing new.
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select

from matchpro.database import db
from matchpro.database.models import Team
from matchpro.utils.datetime_utils import month_key, utcnow

logger = logging.getLogger(__name__)

# How often the worker runs (seconds)
POLL_INTERVAL_SECONDS = int(os.getenv("BILLING_WORKER_INTERVAL_SECONDS", "3600"))


def billing_day_reached(team: Team, now: datetime) -> bool:
    """Teams without a billing day are charged from the first of the month."""
    return team.billing_day is None or now.day >= team.billing_day


class BillingWorker:
    """Background service that generates monthly dues and closes expired votes."""

    def __init__(self):
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def start(self) -> None:
        """Start the background billing worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Billing worker started")

    def stop(self) -> None:
        """Stop the background billing worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Billing worker stopped")

    async def _poll_loop(self) -> None:
        """Main loop: run a pass, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in billing worker: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=POLL_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                pass

    async def run_once(self, now: Optional[datetime] = None) -> Dict:
        """
        Run one pass.

        Returns:
            Dict with the closed vote match ids and the number of payments
            and transactions created
        """
        now = now or utcnow()
        closed_votes = await self._close_expired_votes(now)
        payments, transactions = await self._generate_monthly_dues(now)
        return {
            "closed_votes": closed_votes,
            "payments_created": payments,
            "transactions_created": transactions,
        }

    async def _close_expired_votes(self, now: datetime) -> list:
        from matchpro.services import vote_service

        async with db.AsyncSessionLocal() as session:
            try:
                closed = await vote_service.close_expired_votes(session, now=now)
                await session.commit()
            except Exception as e:
                logger.error(f"Error closing expired votes: {e}", exc_info=True)
                await session.rollback()
                return []
        if closed:
            logger.info(f"Closed voting for {len(closed)} match(es) past their deadline")
        return closed

    async def _generate_monthly_dues(self, now: datetime):
        from matchpro.services import billing_service, transaction_service

        month = month_key(now)
        payments_created = 0
        transactions_created = 0

        async with db.AsyncSessionLocal() as session:
            result = await session.execute(select(Team).order_by(Team.id))
            teams = [t for t in result.scalars().all() if billing_day_reached(t, now)]
            team_ids = [t.id for t in teams]

        for team_id in team_ids:
            async with db.AsyncSessionLocal() as session:
                try:
                    payments = await billing_service.generate_monthly_payments(
                        session, team_id, month
                    )
                    transactions = await transaction_service.check_and_generate_monthly_transactions(
                        session, team_id, now=now
                    )
                    await session.commit()
                    payments_created += len(payments)
                    transactions_created += len(transactions)
                except Exception as e:
                    logger.error(
                        f"Error generating monthly dues for team {team_id}: {e}", exc_info=True
                    )
                    await session.rollback()
        return payments_created, transactions_created


# Global singleton
_billing_worker = BillingWorker()


def get_billing_worker() -> BillingWorker:
    """Get the global billing worker instance."""
    return _billing_worker
