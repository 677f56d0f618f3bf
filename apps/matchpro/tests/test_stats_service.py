"""
Tests for match finalization, rollback and re-aggregation of player stats.
"""

import pytest
from sqlalchemy import insert

from matchpro.database.models import GamePayment, Match, Player
from matchpro.services import billing_service, match_service, player_service, stats_service


async def _play_match(db_session, team, squad, match, confirm_players):
    """Confirm the squad and save a sheet: Ana 2G 1A (8), Bruno 1A (6), Carla missed."""
    ana, bruno, carla = (m["player"]["id"] for m in squad)
    await confirm_players(team["id"], match["id"], [ana, bruno, carla])
    await match_service.save_match_summary(
        db_session,
        team["id"],
        match["id"],
        {
            str(ana): {"goals": 2, "assists": 1, "technical_rating": 8},
            str(bruno): {"assists": 1, "technical_rating": 6},
            str(carla): {"missed": True},
        },
        3,
        1,
        acting_user_id=team["owner_id"],
    )
    return ana, bruno, carla


@pytest.mark.asyncio
async def test_finalize_applies_stats_to_participants(
    db_session, team, squad, recent_match, confirm_players
):
    ana, bruno, carla = await _play_match(db_session, team, squad, recent_match, confirm_players)

    finished = await stats_service.finalize_match_stats(
        db_session, team["id"], recent_match["id"], 3, 1
    )

    assert finished["status"] == "finished"
    assert finished["finished_at"] is not None
    assert finished["awards"]["best_player_id"] == ana
    assert finished["awards"]["best_player_score"] == 8.0

    ana_row = await player_service.get_player(db_session, team["id"], ana)
    assert ana_row["goals"] == 2
    assert ana_row["assists"] == 1
    assert ana_row["matches_played"] == 1
    assert ana_row["goal_participations"] == 3
    assert ana_row["average_goals_per_match"] == 2.0
    assert ana_row["mvp_score"] == 5.0
    assert ana_row["average_technical_rating"] == 8.0
    assert ana_row["technical_rating_count"] == 1

    bruno_row = await player_service.get_player(db_session, team["id"], bruno)
    assert bruno_row["matches_played"] == 1
    assert bruno_row["average_technical_rating"] == 6.0

    carla_row = await player_service.get_player(db_session, team["id"], carla)
    assert carla_row["matches_played"] == 0

    row = await match_service.get_match_row(db_session, team["id"], recent_match["id"])
    assert set(row.applied_stats) == {str(ana), str(bruno)}


@pytest.mark.asyncio
async def test_finalize_generates_game_payments(
    db_session, team, squad, recent_match, confirm_players
):
    ana, bruno, carla = await _play_match(db_session, team, squad, recent_match, confirm_players)

    await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 3, 1)

    payments = await billing_service.list_match_payments(db_session, team["id"], recent_match["id"])
    assert [p["player_id"] for p in payments] == sorted([ana, bruno])
    assert all(p["amount"] == 10.0 and p["status"] == "pending" for p in payments)
    ana_row = await player_service.get_player(db_session, team["id"], ana)
    assert ana_row["financial_summary"] == {"total_paid": 0.0, "total_pending": 10.0}


@pytest.mark.asyncio
async def test_finalize_twice_or_canceled_is_rejected(
    db_session, team, squad, recent_match, upcoming_match, confirm_players
):
    await _play_match(db_session, team, squad, recent_match, confirm_players)
    await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 3, 1)

    with pytest.raises(ValueError, match="already finished"):
        await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 3, 1)

    await match_service.cancel_match(db_session, team["id"], upcoming_match["id"])
    with pytest.raises(ValueError):
        await stats_service.finalize_match_stats(db_session, team["id"], upcoming_match["id"], 0, 0)


@pytest.mark.asyncio
async def test_rollback_restores_previous_totals(
    db_session, team, squad, recent_match, confirm_players
):
    ana, bruno, _ = await _play_match(db_session, team, squad, recent_match, confirm_players)
    await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 3, 1)

    reopened = await stats_service.rollback_match_stats(db_session, team["id"], recent_match["id"])

    assert reopened["status"] == "scheduled"
    assert reopened["voting_status"] == "hidden"
    assert reopened["awards"] is None
    assert reopened["finished_at"] is None
    for pid in (ana, bruno):
        row = await player_service.get_player(db_session, team["id"], pid)
        assert row["goals"] == 0
        assert row["assists"] == 0
        assert row["matches_played"] == 0
        assert row["technical_rating_count"] == 0
        assert row["average_technical_rating"] == 0.0
        assert row["mvp_score"] == 0.0

    # Payments survive a reopen
    payments = await billing_service.list_match_payments(db_session, team["id"], recent_match["id"])
    assert len(payments) == 2

    with pytest.raises(ValueError, match="not finished"):
        await stats_service.rollback_match_stats(db_session, team["id"], recent_match["id"])


@pytest.mark.asyncio
async def test_refinalize_after_rollback_does_not_double_count(
    db_session, team, squad, recent_match, confirm_players
):
    ana, _, _ = await _play_match(db_session, team, squad, recent_match, confirm_players)
    await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 3, 1)
    await stats_service.rollback_match_stats(db_session, team["id"], recent_match["id"])
    await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 3, 1)

    row = await player_service.get_player(db_session, team["id"], ana)
    assert row["goals"] == 2
    assert row["matches_played"] == 1
    assert row["financial_summary"]["total_pending"] == 10.0


@pytest.mark.asyncio
async def test_editing_finished_match_reaggregates(
    db_session, team, squad, recent_match, confirm_players
):
    ana, bruno, carla = await _play_match(db_session, team, squad, recent_match, confirm_players)
    await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 3, 1)

    updated = await match_service.save_match_summary(
        db_session,
        team["id"],
        recent_match["id"],
        {
            str(ana): {"goals": 1, "assists": 1, "technical_rating": 8},
            str(bruno): {"goals": 1, "assists": 1, "technical_rating": 6},
            str(carla): {"missed": True},
        },
        2,
        1,
        acting_user_id=team["owner_id"],
    )

    assert updated["status"] == "finished"
    assert updated["score_home"] == 2
    ana_row = await player_service.get_player(db_session, team["id"], ana)
    assert ana_row["goals"] == 1
    assert ana_row["matches_played"] == 1
    bruno_row = await player_service.get_player(db_session, team["id"], bruno)
    assert bruno_row["goals"] == 1
    assert bruno_row["matches_played"] == 1
    assert bruno_row["technical_rating_count"] == 1


@pytest.mark.asyncio
async def test_finalize_survives_a_database_error_while_billing(
    db_session, team, squad, recent_match, confirm_players, monkeypatch
):
    ana, bruno, _ = await _play_match(db_session, team, squad, recent_match, confirm_players)

    async def duplicate_payment(session, team_id, match_id):
        # Insert behind the identity map's back, then flush a clashing row
        await session.execute(
            insert(GamePayment).values(match_id=match_id, player_id=ana, team_id=team_id, amount=10.0)
        )
        session.add(GamePayment(match_id=match_id, player_id=ana, team_id=team_id, amount=10.0))
        await session.flush()

    monkeypatch.setattr(billing_service, "generate_game_payments", duplicate_payment)

    finished = await stats_service.finalize_match_stats(
        db_session, team["id"], recent_match["id"], 3, 1
    )

    assert finished["status"] == "finished"
    row = await match_service.get_match_row(db_session, team["id"], recent_match["id"])
    assert set(row.applied_stats) == {str(ana), str(bruno)}
    ana_row = await player_service.get_player(db_session, team["id"], ana)
    assert ana_row["goals"] == 2
    assert ana_row["matches_played"] == 1
    # Everything the billing step wrote was rolled back
    assert await billing_service.list_match_payments(db_session, team["id"], recent_match["id"]) == []


@pytest.mark.asyncio
async def test_editing_finished_match_checks_goals_against_score(
    db_session, team, squad, recent_match, confirm_players
):
    ana, bruno, _ = await _play_match(db_session, team, squad, recent_match, confirm_players)
    await stats_service.finalize_match_stats(db_session, team["id"], recent_match["id"], 3, 1)

    with pytest.raises(ValueError, match="exceed the team score"):
        await stats_service.update_finished_match_stats(
            db_session,
            team["id"],
            recent_match["id"],
            {str(ana): {"goals": 2}, str(bruno): {"goals": 2}},
            3,
            1,
        )

    ana_row = await player_service.get_player(db_session, team["id"], ana)
    assert ana_row["goals"] == 2
    bruno_row = await player_service.get_player(db_session, team["id"], bruno)
    assert bruno_row["goals"] == 0


def _match(presence_ids, stats, voting_results=None):
    return Match(
        presence={str(pid): {"status": "confirmed"} for pid in presence_ids},
        stats=stats,
        voting_results=voting_results,
    )


def test_compute_awards_prefers_participations_then_lowest_id():
    match = _match(
        [1, 2, 3],
        {
            "1": {"technical_rating": 7},
            "2": {"technical_rating": 7, "goals": 1},
            "3": {"technical_rating": 7, "goals": 1},
        },
    )
    awards = stats_service.compute_awards(match)
    assert awards["best_player_id"] == 2
    assert awards["crowd_favorite_id"] is None
    assert awards["crowd_favorite_votes"] == 0


def test_compute_awards_blends_community_rating_and_crowd_votes():
    match = _match(
        [1, 2],
        {"1": {"technical_rating": 7}, "2": {"technical_rating": 8}},
        {"community_ratings": {"1": 10.0}, "crowd_votes": {"1": 2, "2": 2}},
    )
    awards = stats_service.compute_awards(match)
    assert awards["best_player_id"] == 1
    assert awards["best_player_score"] == 8.5
    assert awards["crowd_favorite_id"] == 1
    assert awards["crowd_favorite_votes"] == 2


def test_compute_awards_without_ratings():
    awards = stats_service.compute_awards(_match([1], {"1": {"goals": 3}}))
    assert awards["best_player_id"] is None
    assert awards["best_player_score"] == 0.0


def test_apply_delta_never_goes_negative():
    player = Player(
        goals=1,
        assists=0,
        matches_played=1,
        technical_rating_sum=5.0,
        technical_rating_count=1,
        community_rating_sum=0.0,
        community_rating_count=0,
        total_crowd_votes=0,
    )
    stats_service.apply_delta(
        player,
        {"goals": 3, "assists": 2, "matches": 1, "technical_rating": 5, "crowd_votes": 1},
        sign=-1,
    )
    assert player.goals == 0
    assert player.assists == 0
    assert player.matches_played == 0
    assert player.technical_rating_count == 0
    assert player.technical_rating_sum == 0.0
    assert player.total_crowd_votes == 0
    assert player.average_goals_per_match == 0.0
    assert player.mvp_score == 0.0
