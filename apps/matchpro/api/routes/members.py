"""Membership route handlers: kick, reintegrate, leave and history."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.api.routes import to_http_exception
from matchpro.database.db import get_db_session
from matchpro.services import member_service
from matchpro.api.auth_dependencies import require_team_member, require_team_owner
from matchpro.models.schemas import MemberHistoryResponse, PlayerResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def _performer(user: dict) -> dict:
    return {"id": user["id"], "name": user.get("display_name")}


@router.post(
    "/api/teams/{team_id}/members/{player_id}/kick", response_model=PlayerResponse
)
async def kick_member(
    team_id: int,
    player_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Expel a member (owner only)."""
    try:
        return await member_service.kick_member(session, team_id, player_id, _performer(user))
    except Exception as e:
        raise to_http_exception(e, "expelling member")


@router.post(
    "/api/teams/{team_id}/members/{player_id}/reintegrate", response_model=PlayerResponse
)
async def reintegrate_member(
    team_id: int,
    player_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Bring an expelled or inactive member back (owner only)."""
    try:
        return await member_service.reintegrate_member(
            session, team_id, player_id, _performer(user)
        )
    except Exception as e:
        raise to_http_exception(e, "reintegrating member")


@router.post("/api/teams/{team_id}/leave", response_model=PlayerResponse)
async def leave_team(
    team_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave the team."""
    try:
        return await member_service.leave_team(session, team_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "leaving team")


@router.get("/api/teams/{team_id}/members/history", response_model=List[MemberHistoryResponse])
async def get_history(
    team_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Membership audit log, newest first (owner only)."""
    try:
        return await member_service.get_history(session, team_id)
    except Exception as e:
        raise to_http_exception(e, "getting member history")


@router.get("/api/teams/{team_id}/members/active", response_model=List[PlayerResponse])
async def get_active_members(
    team_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Active roster entries."""
    try:
        return await member_service.get_active_members(session, team_id)
    except Exception as e:
        raise to_http_exception(e, "getting active members")
