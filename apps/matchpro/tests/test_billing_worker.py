"""
Tests for the billing worker pass.

The worker opens its own sessions, so fixtures commit their data first.
"""

from datetime import datetime, timedelta

import pytest
import pytz

from matchpro.database.models import Team
from matchpro.services import (
    billing_service,
    match_service,
    stats_service,
    team_service,
    transaction_service,
    vote_service,
)
from matchpro.services.billing_worker import BillingWorker, billing_day_reached
from matchpro.utils.datetime_utils import month_key, utcnow


def test_billing_day_reached():
    now = datetime(2026, 5, 10, tzinfo=pytz.UTC)
    assert billing_day_reached(Team(billing_day=None), now)
    assert billing_day_reached(Team(billing_day=10), now)
    assert not billing_day_reached(Team(billing_day=15), now)


@pytest.mark.asyncio
async def test_run_once_generates_monthly_dues_once(db_session, team, squad):
    await team_service.update_billing_settings(
        db_session, team["id"], billing_mode="MONTHLY", monthly_amount=30.0
    )
    await db_session.commit()
    now = utcnow()
    worker = BillingWorker()

    first = await worker.run_once(now)

    assert first["closed_votes"] == []
    assert first["payments_created"] == 3  # the owner pays no monthly fee
    assert first["transactions_created"] == 4
    payments = await billing_service.list_monthly_payments(
        db_session, team["id"], month=month_key(now)
    )
    assert sorted(p["player_id"] for p in payments) == sorted(m["player"]["id"] for m in squad)
    ledger = await transaction_service.list_all_transactions(db_session, team["id"])
    assert len(ledger) == 4

    second = await worker.run_once(now)
    assert second["payments_created"] == 0
    assert second["transactions_created"] == 0


@pytest.mark.asyncio
async def test_run_once_waits_for_billing_day(db_session, team, squad):
    await team_service.update_billing_settings(
        db_session, team["id"], billing_mode="MONTHLY", monthly_amount=30.0, billing_day=20
    )
    await db_session.commit()

    result = await BillingWorker().run_once(datetime(2026, 5, 10, 9, 0, tzinfo=pytz.UTC))

    assert result["payments_created"] == 0
    assert result["transactions_created"] == 0


@pytest.mark.asyncio
async def test_run_once_closes_expired_votes(
    db_session, team, squad, recent_match, confirm_players
):
    await confirm_players(team["id"], recent_match["id"], [m["player"]["id"] for m in squad])
    await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 1, 0)
    await vote_service.open_voting(db_session, team["id"], recent_match["id"], duration_hours=1)
    await db_session.commit()

    result = await BillingWorker().run_once(utcnow() + timedelta(hours=2))

    assert result["closed_votes"] == [recent_match["id"]]
    db_session.expire_all()
    refreshed = await match_service.get_match(db_session, team["id"], recent_match["id"])
    assert refreshed["voting_status"] == "closed"
