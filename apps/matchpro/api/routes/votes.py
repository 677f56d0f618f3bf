"""Post-match voting route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.api.routes import to_http_exception
from matchpro.database.db import get_db_session
from matchpro.services import vote_service
from matchpro.api.auth_dependencies import require_team_coach, require_team_member
from matchpro.models.schemas import MatchResponse, OpenVotingRequest, VoteRequest, VoteResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/teams/{team_id}/matches/{match_id}/voting/open", response_model=MatchResponse)
async def open_voting(
    team_id: int,
    match_id: int,
    payload: Optional[OpenVotingRequest] = None,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Open voting on a finished match."""
    try:
        return await vote_service.open_voting(
            session, team_id, match_id, duration_hours=payload.duration_hours if payload else None
        )
    except Exception as e:
        raise to_http_exception(e, "opening voting")


@router.post("/api/teams/{team_id}/matches/{match_id}/voting/close", response_model=MatchResponse)
async def close_voting(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Close voting and apply the results."""
    try:
        return await vote_service.close_voting(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "closing voting")


@router.post("/api/teams/{team_id}/matches/{match_id}/votes", response_model=VoteResponse)
async def submit_vote(
    team_id: int,
    match_id: int,
    payload: VoteRequest,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Submit (or replace) the current user's ballot."""
    try:
        if user["player_id"] is None:
            raise HTTPException(status_code=403, detail="You have no player profile in this team")
        return await vote_service.submit_vote(
            session,
            team_id,
            match_id,
            user_id=user["id"],
            voter_player_id=user["player_id"],
            ratings=payload.ratings,
            best_player_vote=payload.best_player_vote,
        )
    except Exception as e:
        raise to_http_exception(e, "submitting vote")


@router.get("/api/teams/{team_id}/matches/{match_id}/votes", response_model=List[VoteResponse])
async def get_votes(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """List all ballots of a match."""
    try:
        return await vote_service.get_votes(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "getting votes")


@router.get("/api/teams/{team_id}/matches/{match_id}/votes/me")
async def has_voted(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Tell whether the current user already voted."""
    try:
        voted = await vote_service.has_user_voted(session, team_id, match_id, user["id"])
        return {"has_voted": voted}
    except Exception as e:
        raise to_http_exception(e, "checking vote")
