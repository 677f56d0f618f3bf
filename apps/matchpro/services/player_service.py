"""
Player (roster) service layer.

Handles roster entries of a team: registered players linked to a user,
"ghost" players without an account, profile updates and payment mode.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.database.models import Player, PlayerStatus, Position, PaymentMode
from matchpro.services.errors import NotFoundError

logger = logging.getLogger(__name__)

VALID_POSITIONS = {p.value for p in Position}
VALID_PAYMENT_MODES = {m.value for m in PaymentMode}
VALID_STATUSES = {s.value for s in PlayerStatus}

# Profile fields a roster manager may edit directly
EDITABLE_FIELDS = (
    "name",
    "nickname",
    "photo_url",
    "position",
    "dominant_foot",
    "status",
    "is_athlete",
    "payment_mode",
)


def serialize_player(player: Player) -> Dict:
    """Convert a Player row into an API dict."""
    return {
        "id": player.id,
        "team_id": player.team_id,
        "user_id": player.user_id,
        "name": player.name,
        "nickname": player.nickname,
        "photo_url": player.photo_url,
        "position": player.position,
        "dominant_foot": player.dominant_foot,
        "status": player.status,
        "is_athlete": player.is_athlete,
        "is_ghost": player.is_ghost,
        "payment_mode": player.payment_mode,
        "goals": player.goals,
        "assists": player.assists,
        "matches_played": player.matches_played,
        "goal_participations": player.goal_participations,
        "average_goals_per_match": player.average_goals_per_match,
        "average_assists_per_match": player.average_assists_per_match,
        "mvp_score": player.mvp_score,
        "average_technical_rating": player.average_technical_rating,
        "technical_rating_count": player.technical_rating_count,
        "average_community_rating": player.average_community_rating,
        "community_rating_count": player.community_rating_count,
        "total_crowd_votes": player.total_crowd_votes,
        "financial_summary": {
            "total_paid": player.total_paid,
            "total_pending": player.total_pending,
        },
    }


def _validate_profile(updates: Dict) -> None:
    if "name" in updates and not (updates["name"] or "").strip():
        raise ValueError("Player name is required")
    position = updates.get("position")
    if position is not None and position not in VALID_POSITIONS:
        raise ValueError(f"Invalid position '{position}'")
    payment_mode = updates.get("payment_mode")
    if payment_mode is not None and payment_mode not in VALID_PAYMENT_MODES:
        raise ValueError(f"Invalid payment mode '{payment_mode}'")
    status = updates.get("status")
    if status is not None and status not in VALID_STATUSES:
        raise ValueError(f"Invalid player status '{status}'")


async def get_player_row(
    session: AsyncSession, team_id: int, player_id: int, for_update: bool = False
) -> Player:
    """
    Load a roster row of a team.

    Raises:
        NotFoundError: If the player does not belong to the team
    """
    query = select(Player).where(Player.id == player_id, Player.team_id == team_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    player = result.scalar_one_or_none()
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")
    return player


async def get_player_row_by_user(
    session: AsyncSession, team_id: int, user_id: int
) -> Optional[Player]:
    """Find the roster row linked to a user in a team, if any."""
    result = await session.execute(
        select(Player)
        .where(Player.team_id == team_id, Player.user_id == user_id)
        .order_by(Player.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def add_player(
    session: AsyncSession,
    team_id: int,
    name: str,
    nickname: Optional[str] = None,
    position: Optional[str] = None,
    dominant_foot: Optional[str] = None,
    user_id: Optional[int] = None,
    is_athlete: bool = True,
    payment_mode: Optional[str] = None,
) -> Dict:
    """
    Add a player to a team roster.

    Players without a user_id are ghost players: they appear in presence
    lists and stats but cannot log in.
    """
    _validate_profile(
        {"name": name, "position": position, "payment_mode": payment_mode}
    )
    player = Player(
        team_id=team_id,
        user_id=user_id,
        name=name.strip(),
        nickname=nickname,
        position=position,
        dominant_foot=dominant_foot,
        status=PlayerStatus.ACTIVE.value,
        is_athlete=is_athlete,
        is_ghost=user_id is None,
        payment_mode=payment_mode,
    )
    session.add(player)
    await session.flush()
    await session.refresh(player)
    logger.info(f"Added player {player.id} ({player.name}) to team {team_id}")
    return serialize_player(player)


async def update_player(
    session: AsyncSession, team_id: int, player_id: int, updates: Dict
) -> Dict:
    """
    Update editable profile fields of a roster entry.

    Unknown keys are ignored; None values for payment_mode reset the player
    to the team billing mode.
    """
    _validate_profile(updates)
    if updates.get("status") == PlayerStatus.EXPELLED.value:
        raise ValueError("Players are expelled through the kick operation")
    player = await get_player_row(session, team_id, player_id, for_update=True)
    for field in EDITABLE_FIELDS:
        if field in updates:
            value = updates[field]
            if field == "name":
                value = value.strip()
            setattr(player, field, value)
    await session.flush()
    await session.refresh(player)
    return serialize_player(player)


async def get_player(session: AsyncSession, team_id: int, player_id: int) -> Dict:
    """Get one roster entry."""
    return serialize_player(await get_player_row(session, team_id, player_id))


async def get_player_by_user(
    session: AsyncSession, team_id: int, user_id: int
) -> Optional[Dict]:
    """Get the roster entry of a user in a team."""
    player = await get_player_row_by_user(session, team_id, user_id)
    return serialize_player(player) if player else None


async def list_players(
    session: AsyncSession, team_id: int, status: Optional[str] = None
) -> List[Dict]:
    """List a team roster ordered by name, optionally filtered by status."""
    query = select(Player).where(Player.team_id == team_id)
    if status:
        query = query.where(Player.status == status)
    result = await session.execute(query.order_by(Player.name, Player.id))
    return [serialize_player(p) for p in result.scalars().all()]
