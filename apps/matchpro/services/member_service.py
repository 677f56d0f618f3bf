"""
Member service: roster membership changes and their audit trail.

Every join, leave, kick and reintegration is appended to the member
history before the membership itself changes.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.database.models import (
    MemberAction,
    MemberHistory,
    MemberRole,
    Player,
    PlayerStatus,
    Team,
    TeamMember,
)
from matchpro.services.errors import NotFoundError, PermissionDeniedError
from matchpro.services.player_service import get_player_row, get_player_row_by_user, serialize_player

logger = logging.getLogger(__name__)


def _history_to_dict(entry: MemberHistory) -> Dict:
    return {
        "id": entry.id,
        "team_id": entry.team_id,
        "player_id": entry.player_id,
        "user_id": entry.user_id,
        "player_name": entry.player_name,
        "action": entry.action,
        "performed_by": entry.performed_by,
        "performed_by_name": entry.performed_by_name,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


async def _get_team(session: AsyncSession, team_id: int) -> Team:
    result = await session.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")
    return team


async def log_event(
    session: AsyncSession,
    team_id: int,
    action: str,
    player: Dict,
    performed_by: Optional[Dict] = None,
) -> Dict:
    """
    Append a member history entry.

    Args:
        session: Database session
        team_id: Team the event belongs to
        action: MemberAction value (JOIN, LEAVE, KICK, REINTEGRATE)
        player: Dict with "name" and optional "id" / "user_id"
        performed_by: Optional dict with "id" and "name" of the acting user

    Returns:
        Dict of the created history entry
    """
    if action not in {a.value for a in MemberAction}:
        raise ValueError(f"Invalid member action '{action}'")
    if not player.get("name"):
        raise ValueError("player name is required")

    entry = MemberHistory(
        team_id=team_id,
        player_id=player.get("id"),
        user_id=player.get("user_id"),
        player_name=player["name"],
        action=action,
        performed_by=performed_by.get("id") if performed_by else None,
        performed_by_name=performed_by.get("name") if performed_by else None,
    )
    session.add(entry)
    await session.flush()
    await session.refresh(entry)
    logger.info(f"Logged {action} for {player['name']} in team {team_id}")
    return _history_to_dict(entry)


async def kick_member(
    session: AsyncSession, team_id: int, player_id: int, kicked_by: Dict
) -> Dict:
    """
    Expel a member from the team.

    - Logs a KICK event first
    - Removes the user's team membership (access)
    - Marks the player as expelled, keeping stats and the user link so the
      user cannot join again with the invite code

    Raises:
        NotFoundError: If the player is not on the roster
        PermissionDeniedError: If the player is the team owner
        ValueError: If the player is already expelled
    """
    team = await _get_team(session, team_id)
    player = await get_player_row(session, team_id, player_id, for_update=True)
    if player.user_id is not None and player.user_id == team.owner_id:
        raise PermissionDeniedError("The team owner cannot be expelled")
    if player.status == PlayerStatus.EXPELLED.value:
        raise ValueError(f"Player {player_id} is already expelled")

    await log_event(
        session,
        team_id,
        MemberAction.KICK.value,
        {"id": player.id, "name": player.name, "user_id": player.user_id},
        kicked_by,
    )

    if player.user_id is not None:
        await session.execute(
            delete(TeamMember).where(
                TeamMember.team_id == team_id, TeamMember.user_id == player.user_id
            )
        )
    player.status = PlayerStatus.EXPELLED.value
    await session.flush()
    await session.refresh(player)
    return serialize_player(player)


async def reintegrate_member(
    session: AsyncSession, team_id: int, player_id: int, performed_by: Dict
) -> Dict:
    """
    Bring an expelled (or inactive) member back to the team as a player.

    Raises:
        NotFoundError: If the player is not on the roster
        ValueError: If the player is already active
    """
    await _get_team(session, team_id)
    player = await get_player_row(session, team_id, player_id, for_update=True)
    if player.status == PlayerStatus.ACTIVE.value:
        raise ValueError(f"Player {player_id} is already active")

    await log_event(
        session,
        team_id,
        MemberAction.REINTEGRATE.value,
        {"id": player.id, "name": player.name, "user_id": player.user_id},
        performed_by,
    )

    if player.user_id is not None:
        result = await session.execute(
            select(TeamMember).where(
                TeamMember.team_id == team_id, TeamMember.user_id == player.user_id
            )
        )
        if result.scalar_one_or_none() is None:
            session.add(
                TeamMember(
                    team_id=team_id, user_id=player.user_id, role=MemberRole.PLAYER.value
                )
            )
    player.status = PlayerStatus.ACTIVE.value
    await session.flush()
    await session.refresh(player)
    return serialize_player(player)


async def leave_team(session: AsyncSession, team_id: int, user_id: int) -> Dict:
    """
    Let a member leave the team voluntarily.

    The roster entry is kept as inactive so past stats and payments remain.

    Raises:
        PermissionDeniedError: If the user owns the team
        NotFoundError: If the user has no roster entry
    """
    team = await _get_team(session, team_id)
    if team.owner_id == user_id:
        raise PermissionDeniedError("The team owner cannot leave the team")

    player = await get_player_row_by_user(session, team_id, user_id)
    if player is None:
        raise NotFoundError(f"User {user_id} has no player profile in team {team_id}")

    await log_event(
        session,
        team_id,
        MemberAction.LEAVE.value,
        {"id": player.id, "name": player.name, "user_id": user_id},
        {"id": user_id, "name": player.name},
    )
    await session.execute(
        delete(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    player.status = PlayerStatus.INACTIVE.value
    await session.flush()
    await session.refresh(player)
    return serialize_player(player)


async def get_history(session: AsyncSession, team_id: int) -> List[Dict]:
    """Get the member history of a team, most recent first."""
    result = await session.execute(
        select(MemberHistory)
        .where(MemberHistory.team_id == team_id)
        .order_by(MemberHistory.created_at.desc(), MemberHistory.id.desc())
    )
    return [_history_to_dict(entry) for entry in result.scalars().all()]


async def get_active_members(session: AsyncSession, team_id: int) -> List[Dict]:
    """Get active roster entries of a team."""
    result = await session.execute(
        select(Player)
        .where(Player.team_id == team_id, Player.status == PlayerStatus.ACTIVE.value)
        .order_by(Player.name, Player.id)
    )
    return [serialize_player(p) for p in result.scalars().all()]
