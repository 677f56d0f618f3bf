"""
Post-match voting.

Confirmed athletes rate the other participants (1-10) and pick a best
player. Closing the vote turns the ballots into community ratings and
crowd votes on the players' aggregates, recorded in the match's applied
deltas so a rollback can subtract them again.
"""

import copy
import logging
import os
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.database.models import Match, MatchStatus, MatchVote, PresenceStatus, VotingStatus
from matchpro.services import alert_service
from matchpro.services.errors import PermissionDeniedError
from matchpro.services.match_service import (
    get_match_row,
    participant_ids,
    serialize_match,
    set_json,
)
from matchpro.services.player_service import get_player_row
from matchpro.services.stats_service import apply_delta, compute_awards, lock_players
from matchpro.utils.constants import AVERAGE_DECIMALS, DEFAULT_VOTING_HOURS, MAX_RATING, MIN_RATING
from matchpro.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

VOTING_HOURS = int(os.getenv("DEFAULT_VOTING_HOURS", str(DEFAULT_VOTING_HOURS)))


def _vote_to_dict(vote: MatchVote) -> Dict:
    return {
        "id": vote.id,
        "match_id": vote.match_id,
        "user_id": vote.user_id,
        "voter_player_id": vote.voter_player_id,
        "ratings": vote.ratings or {},
        "best_player_vote": vote.best_player_vote,
    }


async def open_voting(
    session: AsyncSession, team_id: int, match_id: int, duration_hours: Optional[int] = None
) -> Dict:
    """
    Open voting on a finished match until now + duration_hours.

    Raises:
        ValueError: If the match is not finished or its vote was already closed
    """
    duration_hours = VOTING_HOURS if duration_hours is None else duration_hours
    if duration_hours <= 0:
        raise ValueError("Voting duration must be positive")

    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status != MatchStatus.FINISHED.value:
        raise ValueError("Voting can only be opened for a finished match")
    if match.voting_status == VotingStatus.CLOSED.value:
        raise ValueError("Voting for this match is already closed")

    match.voting_status = VotingStatus.OPEN.value
    match.voting_deadline = utcnow() + timedelta(hours=duration_hours)
    await session.flush()
    await session.refresh(match)
    logger.info(f"Opened voting for match {match_id} ({duration_hours}h)")
    return serialize_match(match)


def tally_votes(votes: List[MatchVote]) -> Dict:
    """
    Summarize ballots into voting results.

    Returns:
        Dict with community_ratings ({player_id: average}), crowd_votes
        ({player_id: count}), motm_id and total_votes
    """
    ratings = defaultdict(list)
    crowd = defaultdict(int)
    for vote in votes:
        for player_key, rating in (vote.ratings or {}).items():
            ratings[str(player_key)].append(rating)
        if vote.best_player_vote is not None:
            crowd[str(vote.best_player_vote)] += 1

    community = {
        key: round(sum(values) / len(values), AVERAGE_DECIMALS)
        for key, values in ratings.items()
        if values
    }
    motm_id = None
    if crowd:
        motm_key = min(crowd, key=lambda k: (-crowd[k], int(k)))
        motm_id = int(motm_key)
    return {
        "community_ratings": community,
        "crowd_votes": dict(crowd),
        "motm_id": motm_id,
        "total_votes": len(votes),
    }


async def close_voting(session: AsyncSession, team_id: int, match_id: int) -> Dict:
    """
    Close voting and apply its results to the players.

    Closing an already closed vote changes nothing.

    Raises:
        ValueError: If voting was never opened
    """
    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.voting_status == VotingStatus.CLOSED.value:
        return serialize_match(match)
    if match.voting_status != VotingStatus.OPEN.value:
        raise ValueError("Voting is not open for this match")

    votes_result = await session.execute(select(MatchVote).where(MatchVote.match_id == match_id))
    results = tally_votes(votes_result.scalars().all())
    community = results["community_ratings"]
    crowd = results["crowd_votes"]

    applied = copy.deepcopy(match.applied_stats or {})
    players = await lock_players(session, team_id, [int(k) for k in set(community) | set(crowd)])
    for player_id, player in players.items():
        key = str(player_id)
        delta = {
            "community_rating": community.get(key),
            "crowd_votes": crowd.get(key, 0),
        }
        apply_delta(player, delta)
        entry = applied.setdefault(
            key,
            {"goals": 0, "assists": 0, "matches": 0, "technical_rating": None},
        )
        entry.update(delta)

    set_json(match, "applied_stats", applied)
    set_json(match, "voting_results", results)
    match.voting_status = VotingStatus.CLOSED.value
    set_json(match, "awards", compute_awards(match))
    await session.flush()
    await session.refresh(match)
    logger.info(
        f"Closed voting for match {match_id}: {results['total_votes']} votes, "
        f"{len(players)} players updated"
    )
    return serialize_match(match)


async def submit_vote(
    session: AsyncSession,
    team_id: int,
    match_id: int,
    user_id: int,
    voter_player_id: int,
    ratings: Optional[Dict],
    best_player_vote: Optional[int] = None,
) -> Dict:
    """
    Record (or replace) a user's ballot for a match.

    Raises:
        ValueError: If voting is not open, the voter did not take part or the
            ballot is invalid
        PermissionDeniedError: If the voter player is not the user's own
    """
    match = await get_match_row(session, team_id, match_id)
    if match.voting_status != VotingStatus.OPEN.value:
        raise ValueError("Voting is closed or has not started")
    if match.voting_deadline and as_utc(match.voting_deadline) < utcnow():
        raise ValueError("Voting deadline has passed")

    voter = await get_player_row(session, team_id, voter_player_id)
    if voter.user_id != user_id:
        raise PermissionDeniedError("You can only vote as your own player")

    voter_key = str(voter_player_id)
    presence = (match.presence or {}).get(voter_key) or {}
    missed = ((match.stats or {}).get(voter_key) or {}).get("missed", False)
    if presence.get("status") != PresenceStatus.CONFIRMED.value or missed:
        raise ValueError("Only confirmed players of the match can vote")
    if not voter.is_athlete:
        raise ValueError("Only athletes can vote")

    ratings = {str(k): v for k, v in (ratings or {}).items()}
    if not ratings and best_player_vote is None:
        raise ValueError("A vote needs at least one rating or a best player vote")

    participants = {str(pid) for pid in participant_ids(match)}
    for player_key, rating in ratings.items():
        if player_key == voter_key or player_key not in participants:
            raise ValueError(f"Player {player_key} cannot be rated in this match")
        if rating is None or not MIN_RATING <= rating <= MAX_RATING:
            raise ValueError(
                f"Invalid rating for player {player_key}. "
                f"Must be between {MIN_RATING} and {MAX_RATING}."
            )

    if best_player_vote is not None:
        if str(best_player_vote) == voter_key:
            raise ValueError("You cannot vote for yourself as best player")
        if str(best_player_vote) not in participants:
            raise ValueError(f"Player {best_player_vote} did not take part in this match")

    result = await session.execute(
        select(MatchVote).where(MatchVote.match_id == match_id, MatchVote.user_id == user_id)
    )
    vote = result.scalar_one_or_none()
    if vote is None:
        vote = MatchVote(match_id=match_id, user_id=user_id)
        session.add(vote)
    vote.voter_player_id = voter_player_id
    vote.ratings = ratings
    vote.best_player_vote = best_player_vote
    await session.flush()

    await alert_service.resolve_alert(
        session, team_id, f"vote_{match_id}_{user_id}", missing_ok=True
    )
    logger.info(f"User {user_id} voted on match {match_id}")
    return _vote_to_dict(vote)


async def get_votes(session: AsyncSession, team_id: int, match_id: int) -> List[Dict]:
    """List all ballots of a match."""
    await get_match_row(session, team_id, match_id)
    result = await session.execute(
        select(MatchVote).where(MatchVote.match_id == match_id).order_by(MatchVote.id)
    )
    return [_vote_to_dict(v) for v in result.scalars().all()]


async def has_user_voted(session: AsyncSession, team_id: int, match_id: int, user_id: int) -> bool:
    await get_match_row(session, team_id, match_id)
    result = await session.execute(
        select(MatchVote.id).where(MatchVote.match_id == match_id, MatchVote.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def close_expired_votes(session: AsyncSession, now: Optional[datetime] = None) -> List[int]:
    """
    Close every open vote whose deadline has passed.

    Returns:
        Ids of the matches whose voting was closed
    """
    now = now or utcnow()
    result = await session.execute(
        select(Match.id, Match.team_id).where(
            Match.voting_status == VotingStatus.OPEN.value,
            Match.voting_deadline.is_not(None),
            Match.voting_deadline < now,
        )
    )
    closed = []
    for match_id, team_id in result.all():
        await close_voting(session, team_id, match_id)
        closed.append(match_id)
    return closed
