"""
Authentication helpers: password hashing and JWT access tokens.
"""

import os
import logging
from datetime import timedelta
from typing import Optional, Dict

import bcrypt
import jwt

from matchpro.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

DEV_ENVIRONMENTS = {"", "dev", "development", "local", "test"}
DEV_JWT_SECRET_KEY = "dev-secret-change-me"


def load_jwt_secret() -> str:
    """
    Read the token signing key from JWT_SECRET_KEY.

    Development and test environments fall back to a fixed key with a
    warning; any other ENV refuses to start without one.
    """
    secret = os.getenv("JWT_SECRET_KEY")
    if secret:
        return secret
    env = os.getenv("ENV", "").lower()
    if env not in DEV_ENVIRONMENTS:
        raise RuntimeError(f"JWT_SECRET_KEY is not set (ENV={env}). Set JWT_SECRET_KEY.")
    logger.warning("JWT_SECRET_KEY is not set, using the insecure development key")
    return DEV_JWT_SECRET_KEY


JWT_SECRET_KEY = load_jwt_secret()
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed hash
        return False


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to embed (must include user_id)
        expires_delta: Optional lifetime override

    Returns:
        Encoded JWT string
    """
    to_encode = dict(data)
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Decode and validate a JWT access token.

    Returns:
        Token payload, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError:
        return None
