"""
Match statistics aggregation.

Finalizing a match adds its stats sheet to the running totals of every
participant and records the exact per-player deltas on the match
(applied_stats). Reopening a match subtracts those deltas again, so a
match is never counted twice and a rollback restores the previous totals.
"""

import copy
import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.database.models import Match, MatchStatus, MatchVote, Player, VotingStatus
from matchpro.services import billing_service
from matchpro.services.match_service import (
    check_goals_within_score,
    get_match_row,
    normalize_stat_entry,
    participant_ids,
    serialize_match,
    set_json,
)
from matchpro.utils.constants import AVERAGE_DECIMALS
from matchpro.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def recompute_derived(player: Player) -> None:
    """Recompute participations, averages and MVP score from the totals."""
    goals = player.goals or 0
    assists = player.assists or 0
    matches = player.matches_played or 0

    player.goal_participations = goals + assists
    if matches > 0:
        player.average_goals_per_match = round(goals / matches, AVERAGE_DECIMALS)
        player.average_assists_per_match = round(assists / matches, AVERAGE_DECIMALS)
    else:
        player.average_goals_per_match = 0.0
        player.average_assists_per_match = 0.0
    player.mvp_score = round(
        player.goal_participations + player.average_goals_per_match, AVERAGE_DECIMALS
    )

    if player.technical_rating_count:
        player.average_technical_rating = round(
            player.technical_rating_sum / player.technical_rating_count, AVERAGE_DECIMALS
        )
    else:
        player.technical_rating_sum = 0.0
        player.average_technical_rating = 0.0

    if player.community_rating_count:
        player.average_community_rating = round(
            player.community_rating_sum / player.community_rating_count, AVERAGE_DECIMALS
        )
    else:
        player.community_rating_sum = 0.0
        player.average_community_rating = 0.0


def apply_delta(player: Player, delta: Dict, sign: int = 1) -> None:
    """
    Add (sign=1) or subtract (sign=-1) one applied delta to a player.

    Counters never go below zero.
    """
    player.goals = max(0, (player.goals or 0) + sign * delta.get("goals", 0))
    player.assists = max(0, (player.assists or 0) + sign * delta.get("assists", 0))
    player.matches_played = max(0, (player.matches_played or 0) + sign * delta.get("matches", 0))

    technical = delta.get("technical_rating")
    if technical is not None:
        player.technical_rating_sum = max(0.0, (player.technical_rating_sum or 0.0) + sign * technical)
        player.technical_rating_count = max(0, (player.technical_rating_count or 0) + sign)

    community = delta.get("community_rating")
    if community is not None:
        player.community_rating_sum = max(0.0, (player.community_rating_sum or 0.0) + sign * community)
        player.community_rating_count = max(0, (player.community_rating_count or 0) + sign)

    player.total_crowd_votes = max(
        0, (player.total_crowd_votes or 0) + sign * delta.get("crowd_votes", 0)
    )
    recompute_derived(player)


def sheet_delta(entry: Optional[Dict]) -> Dict:
    """Build the applied delta of a participant from their stats sheet entry."""
    entry = entry or {}
    return {
        "goals": entry.get("goals", 0) or 0,
        "assists": entry.get("assists", 0) or 0,
        "matches": 1,
        "technical_rating": entry.get("technical_rating"),
        "community_rating": None,
        "crowd_votes": 0,
    }


async def lock_players(
    session: AsyncSession, team_id: int, player_ids: Iterable[int]
) -> Dict[int, Player]:
    """Load roster rows for update, in id order."""
    ids = sorted(set(player_ids))
    if not ids:
        return {}
    result = await session.execute(
        select(Player)
        .where(Player.team_id == team_id, Player.id.in_(ids))
        .order_by(Player.id)
        .with_for_update()
    )
    return {player.id: player for player in result.scalars().all()}


def compute_awards(match: Match) -> Dict:
    """
    Compute the best player and crowd favourite of a match.

    The best player has the highest composite score: the mean of their
    technical rating and community average when both exist, otherwise
    whichever exists. Ties go to more goals + assists, then the lowest id.
    The crowd favourite has the most best-player votes (ties: lowest id).
    """
    stats = match.stats or {}
    results = match.voting_results or {}
    community = results.get("community_ratings") or {}
    crowd = results.get("crowd_votes") or {}

    best_key = None
    best_player_id = None
    best_score = 0.0
    for pid in participant_ids(match):
        entry = stats.get(str(pid)) or {}
        scores = [
            s for s in (entry.get("technical_rating"), community.get(str(pid))) if s is not None
        ]
        if not scores:
            continue
        composite = sum(scores) / len(scores)
        participations = (entry.get("goals") or 0) + (entry.get("assists") or 0)
        key = (composite, participations, -pid)
        if best_key is None or key > best_key:
            best_key = key
            best_player_id = pid
            best_score = composite

    crowd_key = None
    crowd_favorite_id = None
    crowd_favorite_votes = 0
    for pid_key, count in crowd.items():
        if not count:
            continue
        key = (count, -int(pid_key))
        if crowd_key is None or key > crowd_key:
            crowd_key = key
            crowd_favorite_id = int(pid_key)
            crowd_favorite_votes = count

    return {
        "best_player_id": best_player_id,
        "best_player_score": round(best_score, AVERAGE_DECIMALS),
        "crowd_favorite_id": crowd_favorite_id,
        "crowd_favorite_votes": crowd_favorite_votes,
    }


async def finalize_match_stats(
    session: AsyncSession,
    team_id: int,
    match_id: int,
    score_home: int,
    score_away: int,
) -> Dict:
    """
    Finish a match and add its stats sheet to the players' totals.

    Game payments are generated afterwards; a billing failure is logged and
    does not undo the finalize.

    Raises:
        NotFoundError: If the match does not exist
        ValueError: If the match is already finished or canceled
    """
    if score_home < 0 or score_away < 0:
        raise ValueError("Scores cannot be negative")

    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status == MatchStatus.FINISHED.value:
        raise ValueError("Match already finished")
    if match.status == MatchStatus.CANCELED.value:
        raise ValueError("Cannot finalize a canceled match")

    stats = match.stats or {}
    participants = participant_ids(match)
    players = await lock_players(session, team_id, participants)

    applied = {}
    for pid in participants:
        player = players.get(pid)
        if player is None:
            logger.warning(f"Participant {pid} of match {match_id} has no roster entry, skipping")
            continue
        delta = sheet_delta(stats.get(str(pid)))
        apply_delta(player, delta)
        applied[str(pid)] = delta

    set_json(match, "applied_stats", applied)
    match.status = MatchStatus.FINISHED.value
    match.score_home = score_home
    match.score_away = score_away
    match.finished_at = utcnow()
    set_json(match, "awards", compute_awards(match))
    await session.flush()
    logger.info(f"Finalized match {match_id}: stats applied to {len(applied)} players")

    # Savepoint: a failed billing step must not poison the finalize transaction
    try:
        async with session.begin_nested():
            await billing_service.generate_game_payments(session, team_id, match_id)
    except Exception as e:
        logger.error(f"Error generating game payments for match {match_id}: {e}", exc_info=True)

    await session.refresh(match)
    return serialize_match(match)


async def rollback_match_stats(session: AsyncSession, team_id: int, match_id: int) -> Dict:
    """
    Reopen a finished match and subtract exactly what was applied.

    Voting results, votes and awards are cleared and voting is hidden.
    Payments are left in place.

    Raises:
        NotFoundError: If the match does not exist
        ValueError: If the match is not finished
    """
    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status != MatchStatus.FINISHED.value:
        raise ValueError("Match is not finished, cannot rollback")

    applied = match.applied_stats or {}
    players = await lock_players(session, team_id, (int(k) for k in applied))
    for key, delta in applied.items():
        player = players.get(int(key))
        if player is None:
            logger.warning(f"Player {key} of match {match_id} no longer exists, skipping rollback")
            continue
        apply_delta(player, delta, sign=-1)

    await session.execute(delete(MatchVote).where(MatchVote.match_id == match_id))
    set_json(match, "applied_stats", {})
    match.awards = None
    match.voting_results = None
    match.voting_status = VotingStatus.HIDDEN.value
    match.voting_deadline = None
    match.status = MatchStatus.SCHEDULED.value
    match.finished_at = None
    await session.flush()
    await session.refresh(match)
    logger.info(f"Rolled back stats of match {match_id} ({len(applied)} players)")
    return serialize_match(match)


async def update_finished_match_stats(
    session: AsyncSession,
    team_id: int,
    match_id: int,
    stats: Dict,
    score_home: int,
    score_away: int,
) -> Dict:
    """
    Replace the stats sheet of a finished match.

    The old deltas are reverted and the new sheet applied in the same
    transaction. Community ratings and crowd votes from a closed vote are
    carried over to the new deltas.
    """
    match = await get_match_row(session, team_id, match_id, for_update=True)
    if match.status != MatchStatus.FINISHED.value:
        raise ValueError("Match is not finished")

    new_sheet = {
        str(key): normalize_stat_entry(str(key), entry or {}) for key, entry in (stats or {}).items()
    }
    check_goals_within_score(new_sheet, score_home)
    old_applied = copy.deepcopy(match.applied_stats or {})
    set_json(match, "stats", new_sheet)
    participants = participant_ids(match)

    players = await lock_players(
        session, team_id, [int(k) for k in old_applied] + participants
    )
    for key, delta in old_applied.items():
        player = players.get(int(key))
        if player is not None:
            apply_delta(player, delta, sign=-1)

    new_applied = {}
    for pid in participants:
        if pid in players:
            new_applied[str(pid)] = sheet_delta(new_sheet.get(str(pid)))
    for key, delta in old_applied.items():
        if int(key) not in players:
            continue
        if delta.get("community_rating") is None and not delta.get("crowd_votes"):
            continue
        target = new_applied.setdefault(
            key,
            {
                "goals": 0,
                "assists": 0,
                "matches": 0,
                "technical_rating": None,
                "community_rating": None,
                "crowd_votes": 0,
            },
        )
        target["community_rating"] = delta.get("community_rating")
        target["crowd_votes"] = delta.get("crowd_votes") or 0

    for key, delta in new_applied.items():
        apply_delta(players[int(key)], delta)

    set_json(match, "applied_stats", new_applied)
    match.score_home = score_home
    match.score_away = score_away
    set_json(match, "awards", compute_awards(match))
    await session.flush()
    await session.refresh(match)
    logger.info(f"Updated stats of finished match {match_id}")
    return serialize_match(match)
