"""
Match service layer.

Scheduling, presence confirmation, live goal/assist logging, score updates
and the post-match summary (stats sheet). Aggregation into player totals
happens in stats_service when a match is finalized.
"""

import copy
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from matchpro.database.models import (
    Match,
    MatchEvent,
    MatchEventType,
    MatchStatus,
    PlayerStatus,
    PresenceStatus,
)
from matchpro.services import alert_service
from matchpro.services.errors import NotFoundError, PermissionDeniedError
from matchpro.services.player_service import get_player_row
from matchpro.utils.constants import MAX_RATING, MIN_RATING
from matchpro.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

VALID_PRESENCE = {s.value for s in PresenceStatus}
VALID_EVENT_TYPES = {t.value for t in MatchEventType}
CLOSED_STATUSES = {MatchStatus.FINISHED.value, MatchStatus.CANCELED.value}


def serialize_match(match: Match) -> Dict:
    """Convert a Match row into an API dict."""
    return {
        "id": match.id,
        "team_id": match.team_id,
        "date": as_utc(match.date).isoformat() if match.date else None,
        "opponent": match.opponent,
        "location": match.location,
        "status": match.status,
        "score_home": match.score_home,
        "score_away": match.score_away,
        "presence": match.presence or {},
        "stats": match.stats or {},
        "voting_status": match.voting_status,
        "voting_deadline": as_utc(match.voting_deadline).isoformat()
        if match.voting_deadline
        else None,
        "voting_results": match.voting_results,
        "awards": match.awards,
        "finished_at": as_utc(match.finished_at).isoformat() if match.finished_at else None,
    }


def _event_to_dict(event: MatchEvent) -> Dict:
    return {
        "id": event.id,
        "match_id": event.match_id,
        "type": event.type,
        "player_id": event.player_id,
        "player_name": event.player_name,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


def set_json(match: Match, attribute: str, value) -> None:
    """Assign a JSON column and mark it dirty (nested edits are not tracked)."""
    setattr(match, attribute, value)
    flag_modified(match, attribute)


def empty_stat_entry() -> Dict:
    return {
        "goals": 0,
        "assists": 0,
        "technical_rating": None,
        "rated_by": None,
        "missed": False,
    }


def normalize_stat_entry(player_key: str, entry: Dict) -> Dict:
    """
    Validate one stats sheet entry and fill in defaults.

    Raises:
        ValueError: On negative counts or a technical rating outside 1-10
    """
    normalized = empty_stat_entry()
    goals = entry.get("goals") or 0
    assists = entry.get("assists") or 0
    if int(goals) < 0 or int(assists) < 0:
        raise ValueError(f"Goals and assists cannot be negative (player {player_key})")
    normalized["goals"] = int(goals)
    normalized["assists"] = int(assists)

    rating = entry.get("technical_rating")
    if rating is not None:
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValueError(
                f"Invalid technical rating for player {player_key}. "
                f"Must be between {MIN_RATING} and {MAX_RATING}."
            )
        normalized["technical_rating"] = rating
        normalized["rated_by"] = entry.get("rated_by")
    normalized["missed"] = bool(entry.get("missed", False))
    return normalized


def confirmed_player_ids(match: Match) -> List[int]:
    """Player ids whose presence is confirmed, in ascending order."""
    presence = match.presence or {}
    return sorted(
        int(pid) for pid, entry in presence.items()
        if entry.get("status") == PresenceStatus.CONFIRMED.value
    )


def participant_ids(match: Match) -> List[int]:
    """Confirmed players that were not marked as missed on the stats sheet."""
    stats = match.stats or {}
    return [
        pid for pid in confirmed_player_ids(match)
        if not stats.get(str(pid), {}).get("missed", False)
    ]


async def get_match_row(
    session: AsyncSession, team_id: int, match_id: int, for_update: bool = False
) -> Match:
    """
    Load a match of a team.

    Raises:
        NotFoundError: If the match does not exist in the team
    """
    query = select(Match).where(Match.id == match_id, Match.team_id == team_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    match = result.scalar_one_or_none()
    if match is None:
        raise NotFoundError(f"Match {match_id} not found")
    return match


async def create_match(
    session: AsyncSession,
    team_id: int,
    date: datetime,
    opponent: Optional[str] = None,
    location: Optional[str] = None,
    created_by: Optional[int] = None,
) -> Dict:
    """Schedule a match (or a training session when opponent is None)."""
    if date is None:
        raise ValueError("date is required")
    match = Match(
        team_id=team_id,
        date=as_utc(date),
        opponent=opponent.strip() if opponent else None,
        location=location,
        status=MatchStatus.SCHEDULED.value,
        presence={},
        stats={},
        applied_stats={},
        created_by=created_by,
    )
    session.add(match)
    await session.flush()
    await session.refresh(match)
    logger.info(f"Scheduled match {match.id} for team {team_id}")
    return serialize_match(match)


async def get_match(session: AsyncSession, team_id: int, match_id: int) -> Dict:
    """Get one match."""
    return serialize_match(await get_match_row(session, team_id, match_id))


async def list_matches(
    session: AsyncSession,
    team_id: int,
    scope: Optional[str] = None,
    now: Optional[datetime] = None,
    limit: int = 50,
) -> List[Dict]:
    """
    List matches of a team.

    Args:
        scope: "upcoming" (date >= now, soonest first), "past" (date < now,
            most recent first) or None (all, most recent first)
    """
    now = now or utcnow()
    query = select(Match).where(Match.team_id == team_id)
    if scope == "upcoming":
        query = query.where(Match.date >= now).order_by(Match.date.asc())
    elif scope == "past":
        query = query.where(Match.date < now).order_by(Match.date.desc())
    elif scope is None:
        query = query.order_by(Match.date.desc())
    else:
        raise ValueError(f"Invalid scope '{scope}'")
    result = await session.execute(query.limit(limit))
    return [serialize_match(m) for m in result.scalars().all()]


async def update_match_details(
    session: AsyncSession,
    team_id: int,
    match_id: int,
    date: Optional[datetime] = None,
    opponent: Optional[str] = None,
    location: Optional[str] = None,
) -> Dict:
    """Reschedule a match or change its opponent/location."""
    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status in CLOSED_STATUSES:
        raise ValueError(f"Cannot edit a {match.status} match")
    if date is not None:
        match.date = as_utc(date)
    if opponent is not None:
        match.opponent = opponent.strip() or None
    if location is not None:
        match.location = location
    await session.flush()
    await session.refresh(match)
    return serialize_match(match)


async def cancel_match(session: AsyncSession, team_id: int, match_id: int) -> Dict:
    """Cancel a match that has not been finished."""
    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status == MatchStatus.FINISHED.value:
        raise ValueError("A finished match cannot be canceled; reopen it first")
    match.status = MatchStatus.CANCELED.value
    await session.flush()
    await session.refresh(match)
    logger.info(f"Canceled match {match_id} of team {team_id}")
    return serialize_match(match)


async def set_presence(
    session: AsyncSession, team_id: int, match_id: int, player_id: int, status: str
) -> Dict:
    """
    Record a player's presence answer for a match.

    Confirming or declining resolves the player's pending presence alert.

    Raises:
        ValueError: On an invalid status, a closed match or an inactive player
    """
    if status not in VALID_PRESENCE:
        raise ValueError(f"Invalid presence status '{status}'")

    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status in CLOSED_STATUSES:
        raise ValueError(f"Presence is closed for a {match.status} match")

    player = await get_player_row(session, team_id, player_id)
    if player.status != PlayerStatus.ACTIVE.value:
        raise ValueError(f"Player {player_id} is not active")

    presence = copy.deepcopy(match.presence or {})
    presence[str(player_id)] = {
        "status": status,
        "name": player.nickname or player.name,
        "is_ghost": player.is_ghost,
    }
    set_json(match, "presence", presence)
    await session.flush()

    if player.user_id is not None and status in (
        PresenceStatus.CONFIRMED.value,
        PresenceStatus.OUT.value,
    ):
        await alert_service.resolve_alert(
            session, team_id, f"presence_{match_id}_{player.user_id}", missing_ok=True
        )

    await session.refresh(match)
    return serialize_match(match)


async def record_event(
    session: AsyncSession, team_id: int, match_id: int, player_id: int, event_type: str
) -> Dict:
    """
    Log a live goal or assist and add it to the stats sheet.

    A scheduled match becomes ongoing on its first event.
    """
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(f"Invalid event type '{event_type}'")

    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status in CLOSED_STATUSES:
        raise ValueError(f"Cannot record events for a {match.status} match")

    player = await get_player_row(session, team_id, player_id)
    event = MatchEvent(
        match_id=match_id,
        type=event_type,
        player_id=player_id,
        player_name=player.nickname or player.name,
    )
    session.add(event)

    stats = copy.deepcopy(match.stats or {})
    entry = stats.setdefault(str(player_id), empty_stat_entry())
    field = "goals" if event_type == MatchEventType.GOAL.value else "assists"
    entry[field] = entry.get(field, 0) + 1
    set_json(match, "stats", stats)
    if match.status == MatchStatus.SCHEDULED.value:
        match.status = MatchStatus.ONGOING.value

    await session.flush()
    await session.refresh(event)
    return _event_to_dict(event)


async def remove_last_event(
    session: AsyncSession, team_id: int, match_id: int, player_id: int, event_type: str
) -> Optional[Dict]:
    """
    Undo the most recent event of a type for a player.

    Returns:
        The removed event, or None if the player has no such event
    """
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(f"Invalid event type '{event_type}'")

    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status in CLOSED_STATUSES:
        raise ValueError(f"Cannot remove events from a {match.status} match")

    result = await session.execute(
        select(MatchEvent)
        .where(
            MatchEvent.match_id == match_id,
            MatchEvent.player_id == player_id,
            MatchEvent.type == event_type,
        )
        .order_by(MatchEvent.created_at.desc(), MatchEvent.id.desc())
        .limit(1)
    )
    event = result.scalar_one_or_none()
    if event is None:
        return None

    removed = _event_to_dict(event)
    await session.delete(event)

    stats = copy.deepcopy(match.stats or {})
    entry = stats.get(str(player_id))
    if entry is not None:
        field = "goals" if event_type == MatchEventType.GOAL.value else "assists"
        entry[field] = max(0, entry.get(field, 0) - 1)
        set_json(match, "stats", stats)

    await session.flush()
    return removed


async def list_events(session: AsyncSession, team_id: int, match_id: int) -> List[Dict]:
    """List a match's events in the order they happened."""
    await get_match_row(session, team_id, match_id)
    result = await session.execute(
        select(MatchEvent)
        .where(MatchEvent.match_id == match_id)
        .order_by(MatchEvent.created_at.asc(), MatchEvent.id.asc())
    )
    return [_event_to_dict(e) for e in result.scalars().all()]


async def update_score(
    session: AsyncSession, team_id: int, match_id: int, score_home: int, score_away: int
) -> Dict:
    """Set the scoreboard of a match that is not canceled."""
    if score_home < 0 or score_away < 0:
        raise ValueError("Scores cannot be negative")
    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status == MatchStatus.CANCELED.value:
        raise ValueError("Cannot score a canceled match")
    match.score_home = score_home
    match.score_away = score_away
    await session.flush()
    await session.refresh(match)
    return serialize_match(match)


def check_goals_within_score(sheet: Dict, score_home: int) -> None:
    """Player goals on a sheet can never add up to more than the team scored."""
    total_goals = sum((entry or {}).get("goals") or 0 for entry in sheet.values())
    if total_goals > score_home:
        raise ValueError(
            f"Player goals ({total_goals}) exceed the team score ({score_home})"
        )


def merge_stats_sheet(match: Match, stats: Dict, acting_user_id: Optional[int]) -> Dict:
    """
    Overlay a submitted stats sheet on the stored one.

    Entries left out of the submission keep their stored values, so live
    goals and ratings from other evaluators survive a partial save. Only
    players on the presence list may appear. A technical rating given by
    one evaluator cannot be changed by another.

    Returns:
        The normalized sheet keyed by player id string
    """
    presence = match.presence or {}
    current = match.stats or {}
    merged = {
        key: copy.deepcopy(entry) for key, entry in current.items() if key in presence
    }
    for key, entry in (stats or {}).items():
        player_key = str(key)
        if player_key not in presence:
            raise ValueError(f"Player {player_key} is not on the presence list")

        # Fields left out of an entry keep their stored values
        previous = current.get(player_key) or {}
        normalized = normalize_stat_entry(player_key, {**previous, **(entry or {})})
        previous_rating = previous.get("technical_rating")
        previous_rater = previous.get("rated_by")
        if (
            previous_rating is not None
            and previous_rater is not None
            and previous_rater != acting_user_id
            and normalized["technical_rating"] != previous_rating
        ):
            raise PermissionDeniedError(
                f"Technical rating of player {player_key} was given by another evaluator"
            )
        if normalized["technical_rating"] is not None:
            if normalized["technical_rating"] == previous_rating and previous_rater is not None:
                normalized["rated_by"] = previous_rater
            else:
                normalized["rated_by"] = acting_user_id
        merged[player_key] = normalized
    return merged


async def save_match_summary(
    session: AsyncSession,
    team_id: int,
    match_id: int,
    stats: Dict,
    score_home: int,
    score_away: int,
    acting_user_id: Optional[int] = None,
) -> Dict:
    """
    Save the post-match summary (stats sheet and score).

    Finished matches are re-aggregated through
    stats_service.update_finished_match_stats.
    """
    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status == MatchStatus.CANCELED.value:
        raise ValueError("Cannot save a summary for a canceled match")
    if score_home < 0 or score_away < 0:
        raise ValueError("Scores cannot be negative")

    merged = merge_stats_sheet(match, stats, acting_user_id)
    check_goals_within_score(merged, score_home)

    if match.status == MatchStatus.FINISHED.value:
        from matchpro.services import stats_service

        return await stats_service.update_finished_match_stats(
            session, team_id, match_id, merged, score_home, score_away
        )

    set_json(match, "stats", merged)
    match.score_home = score_home
    match.score_away = score_away
    await session.flush()
    await session.refresh(match)
    return serialize_match(match)
