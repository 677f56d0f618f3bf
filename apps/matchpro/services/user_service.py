"""
User service layer for user account database operations.
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from matchpro.database.models import User
import logging

logger = logging.getLogger(__name__)


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "nickname": user.nickname,
        "photo_url": user.photo_url,
        "last_active_team_id": user.last_active_team_id,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def create_user(
    session: AsyncSession,
    email: str,
    password_hash: str,
    display_name: str,
    nickname: Optional[str] = None,
) -> int:
    """
    Create a new user account.

    Args:
        session: Database session
        email: Login email (stored lowercase)
        password_hash: Required hashed password
        display_name: Name shown on rosters
        nickname: Optional nickname

    Returns:
        User ID of the created user

    Raises:
        ValueError: If the email is already registered
    """
    email = email.strip().lower()
    result = await session.execute(select(User.id).where(User.email == email))
    if result.scalar_one_or_none():
        raise ValueError(f"Email {email} is already registered")

    new_user = User(
        email=email,
        password_hash=password_hash,
        display_name=display_name.strip(),
        nickname=nickname,
    )
    session.add(new_user)
    await session.flush()
    logger.info(f"Created user {new_user.id}")
    return new_user.id


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """Get user by ID."""
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        return None
    return _user_to_dict(user)


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """
    Get user by email, including the password hash for credential checks.
    """
    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    user = result.scalar_one_or_none()
    if user is None:
        return None
    user_dict = _user_to_dict(user)
    user_dict["password_hash"] = user.password_hash
    return user_dict


async def set_last_active_team(session: AsyncSession, user_id: int, team_id: int) -> None:
    """Remember the team the user last worked in."""
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        return
    user.last_active_team_id = team_id
    await session.flush()
