"""Match route handlers: scheduling, presence, live events and summaries."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.api.routes import to_http_exception
from matchpro.database.db import get_db_session
from matchpro.services import match_service, stats_service, team_service
from matchpro.api.auth_dependencies import require_team_coach, require_team_member
from matchpro.database.models import MemberRole
from matchpro.models.schemas import (
    FinalizeMatchRequest,
    MatchCreate,
    MatchEventCreate,
    MatchEventResponse,
    MatchResponse,
    MatchSummaryRequest,
    MatchUpdate,
    PresenceUpdate,
    ScoreUpdate,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/teams/{team_id}/matches", response_model=List[MatchResponse])
async def list_matches(
    team_id: int,
    scope: Optional[str] = Query(None, pattern="^(upcoming|past)$"),
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """List matches; scope=upcoming (soonest first) or past (latest first)."""
    try:
        return await match_service.list_matches(session, team_id, scope=scope, limit=limit)
    except Exception as e:
        raise to_http_exception(e, "listing matches")


@router.post("/api/teams/{team_id}/matches", response_model=MatchResponse)
async def create_match(
    team_id: int,
    payload: MatchCreate,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Schedule a match."""
    try:
        return await match_service.create_match(
            session,
            team_id,
            date=payload.date,
            opponent=payload.opponent,
            location=payload.location,
            created_by=user["id"],
        )
    except Exception as e:
        raise to_http_exception(e, "creating match")


@router.get("/api/teams/{team_id}/matches/{match_id}", response_model=MatchResponse)
async def get_match(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Get one match."""
    try:
        return await match_service.get_match(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "getting match")


@router.patch("/api/teams/{team_id}/matches/{match_id}", response_model=MatchResponse)
async def update_match(
    team_id: int,
    match_id: int,
    payload: MatchUpdate,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Reschedule a match or change its opponent/location."""
    try:
        return await match_service.update_match_details(
            session, team_id, match_id, **payload.model_dump(exclude_unset=True)
        )
    except Exception as e:
        raise to_http_exception(e, "updating match")


@router.post("/api/teams/{team_id}/matches/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a match."""
    try:
        return await match_service.cancel_match(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "canceling match")


@router.put("/api/teams/{team_id}/matches/{match_id}/presence", response_model=MatchResponse)
async def set_presence(
    team_id: int,
    match_id: int,
    payload: PresenceUpdate,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Answer presence for a match.

    Members answer for themselves; coaches and owners may answer for any
    player (ghost players included).
    """
    try:
        player_id = payload.player_id or user["player_id"]
        if player_id is None:
            raise HTTPException(status_code=404, detail="You have no player profile in this team")
        if player_id != user["player_id"] and not team_service.has_role_at_least(
            user["team_role"], MemberRole.COACH.value
        ):
            raise HTTPException(status_code=403, detail="Team coach access required")
        return await match_service.set_presence(
            session, team_id, match_id, player_id, payload.status
        )
    except Exception as e:
        raise to_http_exception(e, "setting presence")


@router.get(
    "/api/teams/{team_id}/matches/{match_id}/events", response_model=List[MatchEventResponse]
)
async def list_events(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """List live events of a match."""
    try:
        return await match_service.list_events(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "listing match events")


@router.post(
    "/api/teams/{team_id}/matches/{match_id}/events", response_model=MatchEventResponse
)
async def record_event(
    team_id: int,
    match_id: int,
    payload: MatchEventCreate,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Log a live goal or assist."""
    try:
        return await match_service.record_event(
            session, team_id, match_id, payload.player_id, payload.type
        )
    except Exception as e:
        raise to_http_exception(e, "recording match event")


@router.delete("/api/teams/{team_id}/matches/{match_id}/events/last")
async def remove_last_event(
    team_id: int,
    match_id: int,
    player_id: int = Query(...),
    type: str = Query(..., pattern="^(goal|assist)$"),
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Undo a player's most recent goal or assist."""
    try:
        removed = await match_service.remove_last_event(session, team_id, match_id, player_id, type)
        if removed is None:
            raise HTTPException(status_code=404, detail=f"No {type} recorded for player {player_id}")
        return removed
    except Exception as e:
        raise to_http_exception(e, "removing match event")


@router.put("/api/teams/{team_id}/matches/{match_id}/score", response_model=MatchResponse)
async def update_score(
    team_id: int,
    match_id: int,
    payload: ScoreUpdate,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the scoreboard."""
    try:
        return await match_service.update_score(
            session, team_id, match_id, payload.score_home, payload.score_away
        )
    except Exception as e:
        raise to_http_exception(e, "updating score")


@router.put("/api/teams/{team_id}/matches/{match_id}/summary", response_model=MatchResponse)
async def save_match_summary(
    team_id: int,
    match_id: int,
    payload: MatchSummaryRequest,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Save the stats sheet; a finished match is re-aggregated."""
    try:
        stats = {
            key: entry.model_dump(exclude_unset=True) for key, entry in payload.stats.items()
        }
        return await match_service.save_match_summary(
            session,
            team_id,
            match_id,
            stats,
            payload.score_home,
            payload.score_away,
            acting_user_id=user["id"],
        )
    except Exception as e:
        raise to_http_exception(e, "saving match summary")


@router.post("/api/teams/{team_id}/matches/{match_id}/finalize", response_model=MatchResponse)
async def finalize_match(
    team_id: int,
    match_id: int,
    payload: FinalizeMatchRequest,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Finish a match and add its stats to the players."""
    try:
        return await stats_service.finalize_match_stats(
            session, team_id, match_id, payload.score_home, payload.score_away
        )
    except Exception as e:
        raise to_http_exception(e, "finalizing match")


@router.post("/api/teams/{team_id}/matches/{match_id}/reopen", response_model=MatchResponse)
async def reopen_match(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Reopen a finished match, subtracting its stats from the players."""
    try:
        return await stats_service.rollback_match_stats(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "reopening match")
