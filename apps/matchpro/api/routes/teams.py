"""Team route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.api.routes import to_http_exception
from matchpro.database.db import get_db_session
from matchpro.services import team_service
from matchpro.api.auth_dependencies import require_user, require_team_member, require_team_owner
from matchpro.models.schemas import (
    BillingSettingsUpdate,
    JoinTeamRequest,
    JoinTeamResponse,
    MemberRoleUpdate,
    TeamCreate,
    TeamCreateResponse,
    TeamResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/teams", response_model=TeamCreateResponse)
async def create_team(
    payload: TeamCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a team owned by the current user."""
    try:
        return await team_service.create_team(
            session,
            owner_user_id=user["id"],
            name=payload.name,
            billing_mode=payload.billing_mode,
            per_game_amount=payload.per_game_amount,
            monthly_amount=payload.monthly_amount,
        )
    except Exception as e:
        raise to_http_exception(e, "creating team")


@router.get("/api/teams", response_model=List[TeamResponse])
async def list_my_teams(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List the teams the current user belongs to."""
    try:
        return await team_service.list_user_teams(session, user["id"])
    except Exception as e:
        raise to_http_exception(e, "listing teams")


@router.post("/api/teams/join", response_model=JoinTeamResponse)
async def join_team(
    payload: JoinTeamRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a team with its invite code."""
    try:
        return await team_service.join_team(
            session,
            user_id=user["id"],
            code=payload.code,
            nickname=payload.nickname,
            position=payload.position,
            dominant_foot=payload.dominant_foot,
        )
    except Exception as e:
        raise to_http_exception(e, "joining team")


@router.get("/api/teams/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a team with its role map."""
    try:
        team = await team_service.get_team(session, team_id)
        team["role"] = user["team_role"]
        return team
    except Exception as e:
        raise to_http_exception(e, "getting team")


@router.put("/api/teams/{team_id}/billing", response_model=TeamResponse)
async def update_billing(
    team_id: int,
    payload: BillingSettingsUpdate,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Update billing settings (owner only)."""
    try:
        return await team_service.update_billing_settings(
            session, team_id, **payload.model_dump(exclude_unset=True)
        )
    except Exception as e:
        raise to_http_exception(e, "updating billing settings")


@router.put("/api/teams/{team_id}/members/{user_id}/role")
async def set_member_role(
    team_id: int,
    user_id: int,
    payload: MemberRoleUpdate,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Change a member's role (owner only)."""
    try:
        return await team_service.set_member_role(session, team_id, user_id, payload.role)
    except Exception as e:
        raise to_http_exception(e, "setting member role")


@router.post("/api/teams/{team_id}/invite-code", response_model=TeamResponse)
async def regenerate_invite_code(
    team_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Replace the team invite code (owner only)."""
    try:
        return await team_service.regenerate_invite_code(session, team_id)
    except Exception as e:
        raise to_http_exception(e, "regenerating invite code")
