#!/usr/bin/env python3
"""
Generate monthly dues (payments and ledger entries) by hand.

The billing worker does this on its own once a team's billing day is
reached; this script is for backfills or a team that needs its dues now.

Usage:
    python scripts/generate_monthly_dues.py --team-id 3 --month 2026-05
    python scripts/generate_monthly_dues.py --all
"""

import argparse
import asyncio
import os
import sys

# Add apps to path (so matchpro.* imports work)
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(project_root, "apps"))

from sqlalchemy import select  # noqa: E402

from matchpro.database import db  # noqa: E402
from matchpro.database.models import Team  # noqa: E402
from matchpro.services import billing_service, transaction_service  # noqa: E402
from matchpro.utils.datetime_utils import month_key, parse_month_key, utcnow  # noqa: E402


async def generate_for_team(team_id: int, month: str) -> bool:
    """Generate one team's dues for a month. Returns False on error."""
    year, month_number = parse_month_key(month)
    now = utcnow().replace(year=year, month=month_number, day=1)
    async with db.AsyncSessionLocal() as session:
        try:
            payments = await billing_service.generate_monthly_payments(session, team_id, month)
            transactions = await transaction_service.check_and_generate_monthly_transactions(
                session, team_id, now=now
            )
            await session.commit()
            print(
                f"✓ Team {team_id}: {len(payments)} payment(s), "
                f"{len(transactions)} ledger entr{'y' if len(transactions) == 1 else 'ies'} for {month}"
            )
            return True
        except Exception as e:
            await session.rollback()
            print(f"❌ Team {team_id}: {e}")
            return False


async def main():
    parser = argparse.ArgumentParser(description="Generate monthly dues for one or all teams")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--team-id", type=int, help="Team to bill")
    target.add_argument("--all", action="store_true", help="Bill every team")
    parser.add_argument(
        "--month", type=str, default=None, help="Month as YYYY-MM (default: current month)"
    )
    args = parser.parse_args()

    month = args.month or month_key(utcnow())
    try:
        parse_month_key(month)
    except ValueError as e:
        parser.error(str(e))

    if args.all:
        async with db.AsyncSessionLocal() as session:
            result = await session.execute(select(Team.id).order_by(Team.id))
            team_ids = list(result.scalars().all())
    else:
        team_ids = [args.team_id]

    print(f"Generating dues for {len(team_ids)} team(s), month {month}")
    failed = 0
    for team_id in team_ids:
        if not await generate_for_team(team_id, month):
            failed += 1

    await db.engine.dispose()
    if failed:
        print(f"❌ {failed} team(s) failed")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
