"""
Authentication API routes.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status, Header, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.connection import get_db
from infrastructure.database.models.analysis import UsageLog
from infrastructure.database.models.base import utc_now
from infrastructure.database.models.integration import ApiKey
from infrastructure.database.models.user import SubscriptionTier, User, UserStatus
from infrastructure.config.settings import settings
from core.security.api_keys import hash_api_key, looks_like_api_key
from core.security.password import password_hasher
from core.security.tokens import TokenService
from api.middleware.rate_limit import get_rate_limit, limiter
from api.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

# Initialize token service
token_service = TokenService(
    secret_key=settings.jwt_secret_key,
    algorithm=settings.jwt_algorithm,
    access_token_expire_minutes=settings.jwt_access_token_expire_minutes,
    refresh_token_expire_days=settings.jwt_refresh_token_expire_days,
)

# Verified against when the email is unknown so timing does not reveal accounts
_DUMMY_HASH = "$2b$12$WmDNGEj9s7YLV5sV/N7aBOpWL0.T5.R5ZQOeKHNlLB.d7WN4HFXIC"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _user_from_api_key(db: AsyncSession, raw_key: str) -> User:
    result = await db.execute(select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key)))
    api_key = result.scalar_one_or_none()
    if api_key is None:
        raise _unauthorized("Invalid API key")

    user = await db.get(User, api_key.user_id)
    if user is None:
        raise _unauthorized("User not found")

    # Usage tracking is best-effort and never blocks the request
    try:
        api_key.last_used_at = utc_now()
        db.add(UsageLog(user_id=user.id, action="api_call", resource_used="api_key",
                        log_metadata={"api_key_id": api_key.id}))
        await db.commit()
    except SQLAlchemyError as e:
        logger.warning("Failed to record API key usage for %s: %s", api_key.id, e)
        await db.rollback()
        await db.refresh(user)
    return user


async def get_current_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency to get the current authenticated user.

    Accepts a Bearer JWT access token, a Bearer API key (``rr_live_...``), or
    the ``access_token`` cookie set for browser sessions.
    """
    token = None
    if authorization and authorization.startswith("Bearer "):
        parts = authorization.split(" ", 1)
        token = parts[1].strip() if len(parts) > 1 and parts[1].strip() else None

    if not token:
        token = request.cookies.get("access_token")

    if not token:
        raise _unauthorized("Not authenticated")

    if looks_like_api_key(token):
        user = await _user_from_api_key(db, token)
    else:
        payload = token_service.verify_access_token(token)
        if not payload:
            raise _unauthorized("Invalid or expired token")
        user = await db.get(User, payload.sub)
        if not user:
            raise _unauthorized("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is not active",
        )

    return user


def _token_response(user: User) -> dict:
    access_token, refresh_token = token_service.create_token_pair(user.id, user.email)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": token_service.access_token_expire_seconds,
    }


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("register"))
async def register(
    request: Request,
    register_data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Register a new account on the starter tier.
    """
    email = register_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists",
        )

    user = User(
        email=email,
        name=register_data.name,
        password_hash=password_hasher.hash(register_data.password),
        status=UserStatus.ACTIVE.value,
        subscription_tier=SubscriptionTier.STARTER.value,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("Registered user %s", user.id, extra={"account_id": user.id})
    return {**_token_response(user), "user": UserResponse.model_validate(user)}


@router.post("/login", response_model=TokenResponse)
@limiter.limit(get_rate_limit("login"))
async def login(
    request: Request,
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Authenticate user and return access tokens.
    """
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    password_ok = password_hasher.verify(
        login_data.password,
        user.password_hash if user and user.password_hash else _DUMMY_HASH,
    )
    if not user or not password_ok:
        raise _unauthorized("Incorrect email or password")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is not active",
        )

    return _token_response(user)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    """Return the authenticated account."""
    return current_user
