"""
Tests for roster entries: ghost players, profile updates and listings.
"""

import pytest

from matchpro.services import member_service, player_service
from matchpro.services.errors import NotFoundError


@pytest.mark.asyncio
async def test_add_ghost_player(db_session, team):
    player = await player_service.add_player(
        db_session, team["id"], "  Zé Guest ", position="FWD", dominant_foot="left"
    )

    assert player["name"] == "Zé Guest"
    assert player["is_ghost"] is True
    assert player["user_id"] is None
    assert player["status"] == "active"
    assert player["position"] == "FWD"
    assert player["goals"] == 0
    assert player["financial_summary"] == {"total_paid": 0.0, "total_pending": 0.0}


@pytest.mark.asyncio
async def test_add_player_validates_profile(db_session, team):
    with pytest.raises(ValueError, match="name"):
        await player_service.add_player(db_session, team["id"], "   ")
    with pytest.raises(ValueError, match="position"):
        await player_service.add_player(db_session, team["id"], "Dani", position="STRIKER")
    with pytest.raises(ValueError, match="payment mode"):
        await player_service.add_player(db_session, team["id"], "Dani", payment_mode="weekly")


@pytest.mark.asyncio
async def test_update_player_profile_and_payment_mode(db_session, team):
    ghost = await player_service.add_player(db_session, team["id"], "Dani")

    updated = await player_service.update_player(
        db_session,
        team["id"],
        ghost["id"],
        {"nickname": "D", "payment_mode": "exempt", "is_athlete": False, "goals": 99},
    )
    assert updated["nickname"] == "D"
    assert updated["payment_mode"] == "exempt"
    assert updated["is_athlete"] is False
    # Stats are not editable through the profile
    assert updated["goals"] == 0

    reset = await player_service.update_player(
        db_session, team["id"], ghost["id"], {"payment_mode": None}
    )
    assert reset["payment_mode"] is None


@pytest.mark.asyncio
async def test_update_player_cannot_expel(db_session, team):
    ghost = await player_service.add_player(db_session, team["id"], "Dani")

    with pytest.raises(ValueError, match="kick"):
        await player_service.update_player(
            db_session, team["id"], ghost["id"], {"status": "expelled"}
        )


@pytest.mark.asyncio
async def test_player_lookup_is_scoped_to_team(db_session, team, owner_id):
    ghost = await player_service.add_player(db_session, team["id"], "Dani")

    with pytest.raises(NotFoundError):
        await player_service.get_player(db_session, team["id"] + 1000, ghost["id"])
    with pytest.raises(NotFoundError):
        await player_service.update_player(db_session, team["id"], 999999, {"nickname": "x"})

    fetched = await player_service.get_player(db_session, team["id"], ghost["id"])
    assert fetched["name"] == "Dani"


@pytest.mark.asyncio
async def test_get_player_by_user(db_session, team, squad):
    ana = squad[0]

    found = await player_service.get_player_by_user(db_session, team["id"], ana["user_id"])
    assert found["id"] == ana["player"]["id"]
    assert found["is_ghost"] is False

    assert await player_service.get_player_by_user(db_session, team["id"], 999999) is None


@pytest.mark.asyncio
async def test_list_players_filters_by_status(db_session, team, owner_id, squad):
    ghost = await player_service.add_player(db_session, team["id"], "Dani")
    carla = squad[2]
    await member_service.kick_member(
        db_session,
        team["id"],
        carla["player"]["id"],
        kicked_by={"id": owner_id, "name": "Owner Olly"},
    )

    everyone = await player_service.list_players(db_session, team["id"])
    ids = {p["id"] for p in everyone}
    assert {ghost["id"], carla["player"]["id"]} <= ids
    names = [p["name"] for p in everyone]
    assert names == sorted(names)

    active_ids = {p["id"] for p in await player_service.list_players(db_session, team["id"], "active")}
    assert ghost["id"] in active_ids
    assert carla["player"]["id"] not in active_ids

    expelled = await player_service.list_players(db_session, team["id"], "expelled")
    assert [p["id"] for p in expelled] == [carla["player"]["id"]]
