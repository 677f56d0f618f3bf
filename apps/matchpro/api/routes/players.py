"""Roster (player) route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.api.routes import to_http_exception
from matchpro.database.db import get_db_session
from matchpro.services import player_service
from matchpro.api.auth_dependencies import require_team_coach, require_team_member
from matchpro.models.schemas import PlayerCreate, PlayerResponse, PlayerUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/teams/{team_id}/players", response_model=List[PlayerResponse])
async def list_players(
    team_id: int,
    status: Optional[str] = Query(None, pattern="^(active|inactive|expelled)$"),
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """List the team roster, optionally filtered by status."""
    try:
        return await player_service.list_players(session, team_id, status=status)
    except Exception as e:
        raise to_http_exception(e, "listing players")


@router.get("/api/teams/{team_id}/players/me", response_model=PlayerResponse)
async def get_my_player(
    team_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the current user's roster entry."""
    try:
        player = await player_service.get_player_by_user(session, team_id, user["id"])
        if player is None:
            raise HTTPException(status_code=404, detail="You have no player profile in this team")
        return player
    except Exception as e:
        raise to_http_exception(e, "getting player profile")


@router.get("/api/teams/{team_id}/players/{player_id}", response_model=PlayerResponse)
async def get_player(
    team_id: int,
    player_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Get one roster entry."""
    try:
        return await player_service.get_player(session, team_id, player_id)
    except Exception as e:
        raise to_http_exception(e, "getting player")


@router.post("/api/teams/{team_id}/players", response_model=PlayerResponse)
async def add_player(
    team_id: int,
    payload: PlayerCreate,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a roster entry; omit user_id to add a ghost player."""
    try:
        return await player_service.add_player(session, team_id, **payload.model_dump())
    except Exception as e:
        raise to_http_exception(e, "adding player")


@router.patch("/api/teams/{team_id}/players/{player_id}", response_model=PlayerResponse)
async def update_player(
    team_id: int,
    player_id: int,
    payload: PlayerUpdate,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Update a roster entry.

    Changing the payment mode affects billing, so it requires the owner.
    """
    try:
        updates = payload.model_dump(exclude_unset=True)
        if "payment_mode" in updates and user["team_role"] != "owner":
            raise HTTPException(status_code=403, detail="Team owner access required")
        return await player_service.update_player(session, team_id, player_id, updates)
    except Exception as e:
        raise to_http_exception(e, "updating player")


@router.patch("/api/teams/{team_id}/players/me/profile", response_model=PlayerResponse)
async def update_my_profile(
    team_id: int,
    payload: PlayerUpdate,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Let a member edit their own name, nickname, photo, position and foot."""
    try:
        if user["player_id"] is None:
            raise HTTPException(status_code=404, detail="You have no player profile in this team")
        updates = payload.model_dump(
            exclude_unset=True, include={"name", "nickname", "photo_url", "position", "dominant_foot"}
        )
        return await player_service.update_player(session, team_id, user["player_id"], updates)
    except Exception as e:
        raise to_http_exception(e, "updating profile")
