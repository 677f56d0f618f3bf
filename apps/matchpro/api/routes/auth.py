"""Authentication route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.api.routes import limiter, INVALID_CREDENTIALS_RESPONSE, to_http_exception
from matchpro.database.db import get_db_session
from matchpro.services import auth_service, user_service
from matchpro.api.auth_dependencies import get_current_user
from matchpro.models.schemas import AuthResponse, LoginRequest, RegisterRequest, UserResponse

logger = logging.getLogger(__name__)
router = APIRouter()

MIN_PASSWORD_LENGTH = 8


@router.post("/api/auth/register", response_model=AuthResponse)
@limiter.limit("10/minute")
async def register(
    request: Request, payload: RegisterRequest, session: AsyncSession = Depends(get_db_session)
):
    """Create an account and return an access token."""
    try:
        if len(payload.password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(
                status_code=400,
                detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            )
        if not payload.display_name.strip():
            raise HTTPException(status_code=400, detail="Display name is required")

        user_id = await user_service.create_user(
            session,
            email=payload.email,
            password_hash=auth_service.hash_password(payload.password),
            display_name=payload.display_name,
            nickname=payload.nickname,
        )
        access_token = auth_service.create_access_token(data={"user_id": user_id})
        return AuthResponse(access_token=access_token, user_id=user_id)
    except Exception as e:
        raise to_http_exception(e, "during registration")


@router.post("/api/auth/login", response_model=AuthResponse)
@limiter.limit("10/minute")
async def login(
    request: Request, payload: LoginRequest, session: AsyncSession = Depends(get_db_session)
):
    """Login with email and password."""
    try:
        user = await user_service.get_user_by_email(session, payload.email)
        if not user:
            raise INVALID_CREDENTIALS_RESPONSE
        if not auth_service.verify_password(payload.password, user["password_hash"]):
            raise INVALID_CREDENTIALS_RESPONSE

        access_token = auth_service.create_access_token(data={"user_id": user["id"]})
        return AuthResponse(access_token=access_token, user_id=user["id"])
    except Exception as e:
        raise to_http_exception(e, "during login")


@router.get("/api/auth/me", response_model=UserResponse)
async def get_me(user: dict = Depends(get_current_user)):
    """Get the authenticated user."""
    return user
