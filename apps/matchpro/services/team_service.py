"""
Team service layer.

Handles team creation, invite codes, joining by code, member roles and
billing settings.
"""

import logging
import secrets
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.database.models import (
    BillingMode,
    MemberAction,
    MemberRole,
    Player,
    PlayerStatus,
    Team,
    TeamMember,
    User,
)
from matchpro.services import member_service, user_service
from matchpro.services.errors import NotFoundError, PermissionDeniedError
from matchpro.services.player_service import get_player_row_by_user, serialize_player
from matchpro.utils.constants import (
    INVITE_CODE_ALPHABET,
    INVITE_CODE_LENGTH,
    INVITE_CODE_MAX_ATTEMPTS,
    ROLE_RANK,
)

logger = logging.getLogger(__name__)

VALID_BILLING_MODES = {m.value for m in BillingMode}
VALID_ROLES = {r.value for r in MemberRole}


def _team_to_dict(team: Team, members: Optional[Dict[int, str]] = None) -> Dict:
    team_dict = {
        "id": team.id,
        "name": team.name,
        "owner_id": team.owner_id,
        "code": team.code,
        "badge_url": team.badge_url,
        "billing_mode": team.billing_mode,
        "per_game_amount": team.per_game_amount,
        "monthly_amount": team.monthly_amount,
        "billing_day": team.billing_day,
        "created_at": team.created_at.isoformat() if team.created_at else None,
    }
    if members is not None:
        team_dict["members"] = members
    return team_dict


def generate_invite_code() -> str:
    """Generate a random 6 character uppercase alphanumeric invite code."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


async def _unique_invite_code(session: AsyncSession) -> str:
    for _ in range(INVITE_CODE_MAX_ATTEMPTS):
        code = generate_invite_code()
        result = await session.execute(select(Team.id).where(Team.code == code))
        if result.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Could not generate a unique invite code")


async def get_team_row(session: AsyncSession, team_id: int, for_update: bool = False) -> Team:
    """
    Load a team row.

    Raises:
        NotFoundError: If the team does not exist
    """
    query = select(Team).where(Team.id == team_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")
    return team


async def get_member_roles(session: AsyncSession, team_id: int) -> Dict[int, str]:
    """Return the role map of a team: {user_id: role}."""
    result = await session.execute(
        select(TeamMember.user_id, TeamMember.role).where(TeamMember.team_id == team_id)
    )
    return {user_id: role for user_id, role in result.all()}


async def get_member_role(session: AsyncSession, team_id: int, user_id: int) -> Optional[str]:
    """Return the role of a user in a team, or None if not a member."""
    result = await session.execute(
        select(TeamMember.role).where(
            TeamMember.team_id == team_id, TeamMember.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


def has_role_at_least(role: Optional[str], minimum: str) -> bool:
    """Check a role against the owner > coach > staff > player order."""
    if role is None:
        return False
    return ROLE_RANK.get(role, 0) >= ROLE_RANK[minimum]


async def create_team(
    session: AsyncSession,
    owner_user_id: int,
    name: str,
    billing_mode: str = BillingMode.PER_GAME.value,
    per_game_amount: float = 0.0,
    monthly_amount: float = 0.0,
) -> Dict:
    """
    Create a team owned by a user.

    Creates the owner membership and the owner's player profile, and makes
    the new team the user's active team.

    Returns:
        Dict with the team and the owner's player profile
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Team name is required")
    if billing_mode not in VALID_BILLING_MODES:
        raise ValueError(f"Invalid billing mode '{billing_mode}'")
    if per_game_amount < 0 or monthly_amount < 0:
        raise ValueError("Billing amounts cannot be negative")

    owner = await user_service.get_user_by_id(session, owner_user_id)
    if owner is None:
        raise NotFoundError(f"User {owner_user_id} not found")

    team = Team(
        name=name,
        owner_id=owner_user_id,
        code=await _unique_invite_code(session),
        billing_mode=billing_mode,
        per_game_amount=per_game_amount,
        monthly_amount=monthly_amount,
    )
    session.add(team)
    await session.flush()

    session.add(TeamMember(team_id=team.id, user_id=owner_user_id, role=MemberRole.OWNER.value))
    player = Player(
        team_id=team.id,
        user_id=owner_user_id,
        name=owner["display_name"] or "Owner",
        nickname=owner["nickname"],
        position="MID",
        status=PlayerStatus.ACTIVE.value,
    )
    session.add(player)
    await session.flush()
    await user_service.set_last_active_team(session, owner_user_id, team.id)

    await session.refresh(team)
    await session.refresh(player)
    logger.info(f"Created team {team.id} ({team.name}) for user {owner_user_id}")
    return {
        "team": _team_to_dict(team, {owner_user_id: MemberRole.OWNER.value}),
        "player": serialize_player(player),
    }


async def get_team(session: AsyncSession, team_id: int) -> Dict:
    """Get a team with its role map."""
    team = await get_team_row(session, team_id)
    return _team_to_dict(team, await get_member_roles(session, team_id))


async def get_team_by_code(session: AsyncSession, code: str) -> Optional[Dict]:
    """Look up a team by invite code (case-insensitive)."""
    result = await session.execute(select(Team).where(Team.code == code.strip().upper()))
    team = result.scalar_one_or_none()
    return _team_to_dict(team) if team else None


async def list_user_teams(session: AsyncSession, user_id: int) -> List[Dict]:
    """List the teams a user belongs to, with the user's role in each."""
    result = await session.execute(
        select(Team, TeamMember.role)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id)
        .order_by(Team.name)
    )
    teams = []
    for team, role in result.all():
        team_dict = _team_to_dict(team)
        team_dict["role"] = role
        teams.append(team_dict)
    return teams


async def join_team(
    session: AsyncSession,
    user_id: int,
    code: str,
    nickname: Optional[str] = None,
    position: Optional[str] = None,
    dominant_foot: Optional[str] = None,
) -> Dict:
    """
    Join a team with its invite code.

    Idempotent: an existing member just gets their profile back. An
    existing roster entry of the user is reused instead of duplicated.

    Raises:
        NotFoundError: If the code does not match a team
        PermissionDeniedError: If the user was expelled from the team
    """
    result = await session.execute(select(Team).where(Team.code == (code or "").strip().upper()))
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError("Invalid invite code")

    user_result = await session.execute(select(User).where(User.id == user_id))
    user = user_result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    existing_player = await get_player_row_by_user(session, team.id, user_id)
    if existing_player is not None and existing_player.status == PlayerStatus.EXPELLED.value:
        raise PermissionDeniedError("You were removed from this team")

    role = await get_member_role(session, team.id, user_id)
    if role is not None and existing_player is not None:
        await user_service.set_last_active_team(session, user_id, team.id)
        return {"team": _team_to_dict(team), "player": serialize_player(existing_player), "role": role}

    if existing_player is None:
        player = Player(
            team_id=team.id,
            user_id=user_id,
            name=user.display_name,
            nickname=nickname or user.nickname,
            position=position,
            dominant_foot=dominant_foot,
            status=PlayerStatus.ACTIVE.value,
        )
        session.add(player)
        await session.flush()
    else:
        player = existing_player
        player.status = PlayerStatus.ACTIVE.value

    if role is None:
        role = MemberRole.PLAYER.value
        session.add(TeamMember(team_id=team.id, user_id=user_id, role=role))
        await member_service.log_event(
            session,
            team.id,
            MemberAction.JOIN.value,
            {"id": player.id, "name": player.name, "user_id": user_id},
            {"id": user_id, "name": user.display_name},
        )

    await user_service.set_last_active_team(session, user_id, team.id)
    await session.flush()
    await session.refresh(player)
    logger.info(f"User {user_id} joined team {team.id}")
    return {"team": _team_to_dict(team), "player": serialize_player(player), "role": role}


async def update_billing_settings(
    session: AsyncSession,
    team_id: int,
    billing_mode: Optional[str] = None,
    per_game_amount: Optional[float] = None,
    monthly_amount: Optional[float] = None,
    billing_day: Optional[int] = None,
) -> Dict:
    """Update a team's billing configuration. None leaves a field unchanged."""
    if billing_mode is not None and billing_mode not in VALID_BILLING_MODES:
        raise ValueError(f"Invalid billing mode '{billing_mode}'")
    if (per_game_amount is not None and per_game_amount < 0) or (
        monthly_amount is not None and monthly_amount < 0
    ):
        raise ValueError("Billing amounts cannot be negative")
    if billing_day is not None and not 1 <= billing_day <= 28:
        raise ValueError("billing_day must be between 1 and 28")

    team = await get_team_row(session, team_id, for_update=True)
    if billing_mode is not None:
        team.billing_mode = billing_mode
    if per_game_amount is not None:
        team.per_game_amount = per_game_amount
    if monthly_amount is not None:
        team.monthly_amount = monthly_amount
    if billing_day is not None:
        team.billing_day = billing_day
    await session.flush()
    await session.refresh(team)
    return _team_to_dict(team)


async def set_member_role(session: AsyncSession, team_id: int, user_id: int, role: str) -> Dict:
    """
    Change a member's role.

    Raises:
        ValueError: If the role is invalid or "owner"
        PermissionDeniedError: If the target is the owner
        NotFoundError: If the user is not a member
    """
    if role not in VALID_ROLES:
        raise ValueError(f"Invalid role '{role}'")
    if role == MemberRole.OWNER.value:
        raise ValueError("Ownership cannot be assigned")

    team = await get_team_row(session, team_id)
    if team.owner_id == user_id:
        raise PermissionDeniedError("The owner's role cannot be changed")

    result = await session.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise NotFoundError(f"User {user_id} is not a member of team {team_id}")
    membership.role = role
    await session.flush()
    logger.info(f"Set role of user {user_id} in team {team_id} to {role}")
    return {"team_id": team_id, "user_id": user_id, "role": role}


async def regenerate_invite_code(session: AsyncSession, team_id: int) -> Dict:
    """Replace a team's invite code; the old code stops working."""
    team = await get_team_row(session, team_id, for_update=True)
    team.code = await _unique_invite_code(session)
    await session.flush()
    await session.refresh(team)
    return _team_to_dict(team)
