"""
Tests for match scheduling, presence, live events and the stats sheet.
"""

from datetime import timedelta

import pytest

from matchpro.services import alert_service, match_service, member_service, player_service
from matchpro.services.errors import NotFoundError, PermissionDeniedError
from matchpro.utils.datetime_utils import utcnow


@pytest.mark.asyncio
async def test_create_and_list_matches_by_scope(db_session, team, upcoming_match, recent_match):
    far = await match_service.create_match(
        db_session, team["id"], date=utcnow() + timedelta(days=10)
    )

    upcoming = await match_service.list_matches(db_session, team["id"], scope="upcoming")
    past = await match_service.list_matches(db_session, team["id"], scope="past")
    everything = await match_service.list_matches(db_session, team["id"])

    assert [m["id"] for m in upcoming] == [upcoming_match["id"], far["id"]]
    assert [m["id"] for m in past] == [recent_match["id"]]
    assert len(everything) == 3
    assert far["opponent"] is None
    assert upcoming_match["status"] == "scheduled"
    assert upcoming_match["voting_status"] == "hidden"

    with pytest.raises(ValueError):
        await match_service.list_matches(db_session, team["id"], scope="soon")


@pytest.mark.asyncio
async def test_get_match_of_another_team_is_not_found(db_session, team, upcoming_match):
    with pytest.raises(NotFoundError):
        await match_service.get_match(db_session, team["id"] + 1, upcoming_match["id"])


@pytest.mark.asyncio
async def test_set_presence_records_answer(db_session, team, squad, upcoming_match):
    ana = squad[0]["player"]

    updated = await match_service.set_presence(
        db_session, team["id"], upcoming_match["id"], ana["id"], "maybe"
    )
    assert updated["presence"][str(ana["id"])] == {
        "status": "maybe",
        "name": "Ana",
        "is_ghost": False,
    }

    updated = await match_service.set_presence(
        db_session, team["id"], upcoming_match["id"], ana["id"], "confirmed"
    )
    assert updated["presence"][str(ana["id"])]["status"] == "confirmed"

    with pytest.raises(ValueError):
        await match_service.set_presence(
            db_session, team["id"], upcoming_match["id"], ana["id"], "late"
        )


@pytest.mark.asyncio
async def test_ghost_player_presence(db_session, team, upcoming_match):
    ghost = await player_service.add_player(db_session, team["id"], "Guest Gus")

    updated = await match_service.set_presence(
        db_session, team["id"], upcoming_match["id"], ghost["id"], "confirmed"
    )

    assert updated["presence"][str(ghost["id"])]["is_ghost"] is True


@pytest.mark.asyncio
async def test_presence_rejected_for_closed_match_or_inactive_player(
    db_session, team, owner_id, squad, upcoming_match
):
    await member_service.leave_team(db_session, team["id"], squad[0]["user_id"])
    with pytest.raises(ValueError):
        await match_service.set_presence(
            db_session, team["id"], upcoming_match["id"], squad[0]["player"]["id"], "confirmed"
        )

    await match_service.cancel_match(db_session, team["id"], upcoming_match["id"])
    with pytest.raises(ValueError):
        await match_service.set_presence(
            db_session, team["id"], upcoming_match["id"], squad[1]["player"]["id"], "confirmed"
        )


@pytest.mark.asyncio
async def test_answering_presence_resolves_presence_alert(db_session, team, squad, upcoming_match):
    member = squad[0]
    await alert_service.sync_alerts(db_session, member["user_id"], team["id"])
    pending = await alert_service.list_alerts(db_session, team["id"], member["user_id"])
    assert [a["id"] for a in pending] == [f"presence_{upcoming_match['id']}_{member['user_id']}"]

    await match_service.set_presence(
        db_session, team["id"], upcoming_match["id"], member["player"]["id"], "out"
    )

    assert await alert_service.list_alerts(db_session, team["id"], member["user_id"]) == []


@pytest.mark.asyncio
async def test_record_and_remove_events(db_session, team, squad, upcoming_match):
    match_id = upcoming_match["id"]
    ana = squad[0]["player"]["id"]
    bruno = squad[1]["player"]["id"]

    goal = await match_service.record_event(db_session, team["id"], match_id, ana, "goal")
    await match_service.record_event(db_session, team["id"], match_id, ana, "goal")
    await match_service.record_event(db_session, team["id"], match_id, bruno, "assist")

    assert goal["player_name"] == "Ana"
    match = await match_service.get_match(db_session, team["id"], match_id)
    assert match["status"] == "ongoing"
    assert match["stats"][str(ana)]["goals"] == 2
    assert match["stats"][str(bruno)]["assists"] == 1
    assert len(await match_service.list_events(db_session, team["id"], match_id)) == 3

    removed = await match_service.remove_last_event(db_session, team["id"], match_id, ana, "goal")
    assert removed["type"] == "goal"
    match = await match_service.get_match(db_session, team["id"], match_id)
    assert match["stats"][str(ana)]["goals"] == 1

    assert (
        await match_service.remove_last_event(db_session, team["id"], match_id, bruno, "goal")
        is None
    )
    with pytest.raises(ValueError):
        await match_service.record_event(db_session, team["id"], match_id, ana, "foul")


@pytest.mark.asyncio
async def test_update_score_and_details(db_session, team, upcoming_match):
    scored = await match_service.update_score(db_session, team["id"], upcoming_match["id"], 2, 1)
    assert (scored["score_home"], scored["score_away"]) == (2, 1)

    with pytest.raises(ValueError):
        await match_service.update_score(db_session, team["id"], upcoming_match["id"], -1, 0)

    edited = await match_service.update_match_details(
        db_session, team["id"], upcoming_match["id"], opponent="City", location="Arena"
    )
    assert edited["opponent"] == "City"
    assert edited["location"] == "Arena"


@pytest.mark.asyncio
async def test_save_summary_validates_sheet(db_session, team, squad, upcoming_match):
    match_id = upcoming_match["id"]
    ana = squad[0]["player"]["id"]
    carla = squad[2]["player"]["id"]
    await match_service.set_presence(db_session, team["id"], match_id, ana, "confirmed")

    with pytest.raises(ValueError):
        await match_service.save_match_summary(
            db_session, team["id"], match_id, {str(carla): {"goals": 1}}, 1, 0
        )
    with pytest.raises(ValueError):
        await match_service.save_match_summary(
            db_session, team["id"], match_id, {str(ana): {"technical_rating": 11}}, 1, 0
        )
    with pytest.raises(ValueError):
        await match_service.save_match_summary(
            db_session, team["id"], match_id, {str(ana): {"goals": -1}}, 1, 0
        )

    saved = await match_service.save_match_summary(
        db_session, team["id"], match_id, {str(ana): {"goals": 1, "technical_rating": 8}}, 1, 0,
        acting_user_id=42,
    )
    entry = saved["stats"][str(ana)]
    assert entry == {
        "goals": 1,
        "assists": 0,
        "technical_rating": 8,
        "rated_by": 42,
        "missed": False,
    }
    assert saved["score_home"] == 1


@pytest.mark.asyncio
async def test_technical_rating_is_locked_to_its_evaluator(db_session, team, squad, upcoming_match):
    match_id = upcoming_match["id"]
    ana = squad[0]["player"]["id"]
    await match_service.set_presence(db_session, team["id"], match_id, ana, "confirmed")
    await match_service.save_match_summary(
        db_session, team["id"], match_id, {str(ana): {"technical_rating": 7}}, 0, 0,
        acting_user_id=1,
    )

    with pytest.raises(PermissionDeniedError):
        await match_service.save_match_summary(
            db_session, team["id"], match_id, {str(ana): {"technical_rating": 9}}, 0, 0,
            acting_user_id=2,
        )

    # Another evaluator may resave the sheet as long as the rating is unchanged
    kept = await match_service.save_match_summary(
        db_session, team["id"], match_id, {str(ana): {"goals": 2, "technical_rating": 7}}, 2, 0,
        acting_user_id=2,
    )
    assert kept["stats"][str(ana)]["rated_by"] == 1

    changed = await match_service.save_match_summary(
        db_session, team["id"], match_id, {str(ana): {"technical_rating": 9}}, 2, 0,
        acting_user_id=1,
    )
    assert changed["stats"][str(ana)]["technical_rating"] == 9
    # Goals were not resubmitted and keep their stored value
    assert changed["stats"][str(ana)]["goals"] == 2


@pytest.mark.asyncio
async def test_partial_sheet_keeps_other_entries(db_session, team, squad, upcoming_match):
    match_id = upcoming_match["id"]
    ana, bruno = squad[0]["player"]["id"], squad[1]["player"]["id"]
    for pid in (ana, bruno):
        await match_service.set_presence(db_session, team["id"], match_id, pid, "confirmed")
    await match_service.record_event(db_session, team["id"], match_id, ana, "goal")
    await match_service.save_match_summary(
        db_session, team["id"], match_id, {str(ana): {"technical_rating": 7}}, 1, 0,
        acting_user_id=1,
    )

    saved = await match_service.save_match_summary(
        db_session, team["id"], match_id, {str(bruno): {"goals": 1}}, 2, 0,
        acting_user_id=2,
    )

    assert saved["stats"][str(ana)] == {
        "goals": 1,
        "assists": 0,
        "technical_rating": 7,
        "rated_by": 1,
        "missed": False,
    }
    assert saved["stats"][str(bruno)]["goals"] == 1

    # Leaving the rating out of an entry does not clear it
    edited = await match_service.save_match_summary(
        db_session, team["id"], match_id, {str(ana): {"assists": 1}}, 2, 0,
        acting_user_id=2,
    )
    assert edited["stats"][str(ana)]["technical_rating"] == 7
    assert edited["stats"][str(ana)]["assists"] == 1


@pytest.mark.asyncio
async def test_player_goals_cannot_exceed_team_score(db_session, team, squad, upcoming_match):
    match_id = upcoming_match["id"]
    ana, bruno = squad[0]["player"]["id"], squad[1]["player"]["id"]
    for pid in (ana, bruno):
        await match_service.set_presence(db_session, team["id"], match_id, pid, "confirmed")

    with pytest.raises(ValueError, match="exceed the team score"):
        await match_service.save_match_summary(
            db_session, team["id"], match_id, {str(ana): {"goals": 2}, str(bruno): {"goals": 1}}, 2, 0
        )

    await match_service.save_match_summary(
        db_session, team["id"], match_id, {str(ana): {"goals": 2}}, 2, 0
    )
    # Stored goals count towards the total of a partial save
    with pytest.raises(ValueError, match="exceed the team score"):
        await match_service.save_match_summary(
            db_session, team["id"], match_id, {str(bruno): {"goals": 1}}, 2, 0
        )

    stored = await match_service.get_match(db_session, team["id"], match_id)
    assert stored["stats"][str(ana)]["goals"] == 2
    assert str(bruno) not in stored["stats"]


@pytest.mark.asyncio
async def test_cancel_match(db_session, team, upcoming_match):
    canceled = await match_service.cancel_match(db_session, team["id"], upcoming_match["id"])
    assert canceled["status"] == "canceled"

    with pytest.raises(ValueError):
        await match_service.update_score(db_session, team["id"], upcoming_match["id"], 1, 0)
    with pytest.raises(ValueError):
        await match_service.update_match_details(
            db_session, team["id"], upcoming_match["id"], opponent="X"
        )


def test_participant_ids_excludes_missed_players():
    from matchpro.database.models import Match

    match = Match(
        presence={
            "3": {"status": "confirmed"},
            "1": {"status": "confirmed"},
            "2": {"status": "out"},
            "4": {"status": "maybe"},
        },
        stats={"3": {"missed": True}},
    )

    assert match_service.confirmed_player_ids(match) == [1, 3]
    assert match_service.participant_ids(match) == [1]
