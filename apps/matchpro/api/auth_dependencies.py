"""
Authentication dependencies for FastAPI routes.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from matchpro.services import auth_service, user_service, team_service, player_service
from matchpro.database.db import get_db_session
from matchpro.database.models import MemberRole

security = HTTPBearer()


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from JWT token.

    Args:
        session: Database session
        credentials: HTTP Bearer token credentials

    Returns:
        User dictionary

    Raises:
        HTTPException: If token is invalid or user not found
    """
    token = credentials.credentials

    payload = auth_service.verify_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any authenticated user."""
    return user


def make_require_team_role(minimum: str):
    """
    Require a team role of at least `minimum` for the team in the path.

    Returns the user dict extended with team_role and player_id (None when
    the member has no roster entry).
    """

    async def _dep(
        team_id: int,
        user: dict = Depends(get_current_user),
        session: AsyncSession = Depends(get_db_session),
    ) -> dict:
        role = await team_service.get_member_role(session, team_id, user["id"])
        if role is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Team membership required"
            )
        if not team_service.has_role_at_least(role, minimum):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail=f"Team {minimum} access required"
            )
        player = await player_service.get_player_row_by_user(session, team_id, user["id"])
        return {**user, "team_role": role, "player_id": player.id if player else None}

    return _dep


def make_require_team_member():
    """Require any membership in the team in the path."""
    return make_require_team_role(MemberRole.PLAYER.value)


require_team_member = make_require_team_member()
require_team_coach = make_require_team_role(MemberRole.COACH.value)
require_team_owner = make_require_team_role(MemberRole.OWNER.value)
