"""
Tests for per-game and monthly payments.
"""

import pytest

from matchpro.services import billing_service, player_service, stats_service, team_service
from matchpro.services.errors import NotFoundError


async def _finished_match(db_session, team, match, player_ids, confirm_players):
    await confirm_players(team["id"], match["id"], player_ids)
    return await stats_service.finalize_match_stats(db_session, team["id"], match["id"], 1, 0)


@pytest.fixture
def month():
    return "2026-05"


def test_monthly_payment_id():
    assert billing_service.monthly_payment_id(12, "2024-05") == "12_2024_05"
    with pytest.raises(ValueError):
        billing_service.monthly_payment_id(12, "2024-13")


@pytest.mark.asyncio
async def test_game_payments_skip_staff_exempt_and_monthly_players(
    db_session, team, owner_id, squad, member_factory, recent_match, confirm_players
):
    coach = await member_factory(team, "Coach Cid", role="coach")
    ana, bruno, carla = (m["player"]["id"] for m in squad)
    await player_service.update_player(db_session, team["id"], bruno, {"payment_mode": "exempt"})
    await player_service.update_player(db_session, team["id"], carla, {"payment_mode": "monthly"})
    owner_player = await player_service.get_player_by_user(db_session, team["id"], owner_id)

    await _finished_match(
        db_session,
        team,
        recent_match,
        [ana, bruno, carla, coach["player"]["id"], owner_player["id"]],
        confirm_players,
    )

    payments = await billing_service.list_match_payments(db_session, team["id"], recent_match["id"])
    assert [p["player_id"] for p in payments] == [ana]
    assert payments[0]["id"] == str(ana)
    assert payments[0]["type"] == "PER_GAME"


@pytest.mark.asyncio
async def test_generate_game_payments_is_idempotent(
    db_session, team, squad, recent_match, confirm_players
):
    ids = [m["player"]["id"] for m in squad]
    await _finished_match(db_session, team, recent_match, ids, confirm_players)

    again = await billing_service.generate_game_payments(db_session, team["id"], recent_match["id"])

    assert again == []
    row = await player_service.get_player(db_session, team["id"], ids[0])
    assert row["financial_summary"]["total_pending"] == 10.0


@pytest.mark.asyncio
async def test_no_game_payments_for_monthly_teams(
    db_session, team, squad, recent_match, confirm_players
):
    await team_service.update_billing_settings(
        db_session, team["id"], billing_mode="MONTHLY", monthly_amount=30.0
    )
    await _finished_match(
        db_session, team, recent_match, [m["player"]["id"] for m in squad], confirm_players
    )

    assert await billing_service.list_match_payments(db_session, team["id"], recent_match["id"]) == []


@pytest.mark.asyncio
async def test_generate_monthly_payments(db_session, team, squad, month):
    await team_service.update_billing_settings(
        db_session, team["id"], billing_mode="MONTHLY", monthly_amount=30.0
    )
    ana, bruno, carla = (m["player"]["id"] for m in squad)
    await player_service.update_player(db_session, team["id"], carla, {"payment_mode": "per_game"})

    created = await billing_service.generate_monthly_payments(db_session, team["id"], month)

    assert sorted(p["id"] for p in created) == sorted(
        [f"{ana}_2026_05", f"{bruno}_2026_05"]
    )
    assert all(p["amount"] == 30.0 and p["month"] == month for p in created)
    assert await billing_service.generate_monthly_payments(db_session, team["id"], month) == []

    listed = await billing_service.list_monthly_payments(db_session, team["id"], month=month)
    assert len(listed) == 2
    row = await player_service.get_player(db_session, team["id"], ana)
    assert row["financial_summary"]["total_pending"] == 30.0

    with pytest.raises(ValueError):
        await billing_service.generate_monthly_payments(db_session, team["id"], "May 2026")


@pytest.mark.asyncio
async def test_monthly_payments_skipped_for_per_game_team(db_session, team, squad, month):
    assert await billing_service.generate_monthly_payments(db_session, team["id"], month) == []


@pytest.mark.asyncio
async def test_mark_payment_as_paid_moves_balance(
    db_session, team, owner_id, squad, recent_match, confirm_players
):
    ana = squad[0]["player"]["id"]
    await _finished_match(db_session, team, recent_match, [ana], confirm_players)

    paid = await billing_service.mark_payment_as_paid(
        db_session, team["id"], "PER_GAME", str(ana), match_id=recent_match["id"],
        confirmed_by=owner_id,
    )
    assert paid["status"] == "paid"
    assert paid["paid_at"] is not None
    assert paid["confirmed_by"] == owner_id

    row = await player_service.get_player(db_session, team["id"], ana)
    assert row["financial_summary"] == {"total_paid": 10.0, "total_pending": 0.0}

    # Paying twice changes nothing
    await billing_service.mark_payment_as_paid(
        db_session, team["id"], "PER_GAME", str(ana), match_id=recent_match["id"]
    )
    row = await player_service.get_player(db_session, team["id"], ana)
    assert row["financial_summary"]["total_paid"] == 10.0


@pytest.mark.asyncio
async def test_mark_payment_as_paid_errors(db_session, team, squad, month):
    with pytest.raises(ValueError, match="Match ID required"):
        await billing_service.mark_payment_as_paid(db_session, team["id"], "PER_GAME", "1")
    with pytest.raises(NotFoundError):
        await billing_service.mark_payment_as_paid(
            db_session, team["id"], "MONTHLY", f"{squad[0]['player']['id']}_2026_05"
        )
    with pytest.raises(ValueError):
        await billing_service.mark_payment_as_paid(db_session, team["id"], "YEARLY", "1")


@pytest.mark.asyncio
async def test_settle_player_payments(
    db_session, team, owner_id, squad, recent_match, confirm_players, month
):
    ana = squad[0]["player"]["id"]
    await team_service.update_billing_settings(
        db_session, team["id"], billing_mode="MONTHLY_PLUS_GAME", monthly_amount=30.0
    )
    await player_service.update_player(db_session, team["id"], ana, {"payment_mode": "per_game"})
    await _finished_match(db_session, team, recent_match, [ana], confirm_players)
    await player_service.update_player(db_session, team["id"], ana, {"payment_mode": "monthly"})
    await billing_service.generate_monthly_payments(db_session, team["id"], month)

    payments = await billing_service.list_player_payments(db_session, team["id"], ana)
    assert {p["type"] for p in payments} == {"PER_GAME", "MONTHLY"}

    settled = await billing_service.settle_player_payments(
        db_session, team["id"], ana, confirmed_by=owner_id
    )

    assert settled == {"player_id": ana, "settled_count": 2, "settled_amount": 40.0}
    row = await player_service.get_player(db_session, team["id"], ana)
    assert row["financial_summary"] == {"total_paid": 40.0, "total_pending": 0.0}
    assert all(
        p["status"] == "paid"
        for p in await billing_service.list_player_payments(db_session, team["id"], ana)
    )
