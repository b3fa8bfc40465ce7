"""
FastAPI Dependencies for Authentication, Authorization, and Service Wiring.

Every request gets its own async SQLAlchemy session; stores, the recorder and the
hydrator are bound to it here so route handlers stay thin.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import AuthService, AuthToken
from src.config.settings import get_settings
from src.core.clock import Clock, SystemClock
from src.core.user_context import Role, UserContext
from src.infra.database import get_session_factory
from src.lib.exceptions import NotFoundError
from src.lib.security import hash_uid
from src.models.user import User
from src.services.block_overrides import BlockCustomizer, BlockOverrideStore
from src.services.completion_recorder import CompletionRecorder
from src.services.day_store import DayRecordStore
from src.services.hydration import DayHydrator
from src.services.redis_service import RedisService, get_redis_service
from src.services.template_store import TemplateStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# Singleton instance (created on first request, after validate_secrets() ran)
_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    """Get the AuthService singleton."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service


# =============================================================================
# Authentication
# =============================================================================


async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthToken:
    """
    Dependency to get the current user's authenticated token.

    Raises HTTPException if token is missing or invalid.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    auth_token = get_auth_service().decode_token(credentials.credentials)
    if auth_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_token


async def get_current_user_id(
    token: AuthToken = Depends(get_current_user_token),
) -> int:
    """Dependency to get the current user's authenticated ID."""
    return token.user_id


async def require_admin(
    user_id: int = Depends(get_current_user_id),
) -> int:
    """
    Dependency that requires the admin role.

    Admins are the user ids listed in AMP_ADMIN_USER_IDS.

    Raises HTTPException 403 if user is not an admin.
    """
    if not get_settings().is_admin(user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required.",
        )
    return user_id


# =============================================================================
# Persistence and Services
# =============================================================================


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Yield a session for the duration of one request."""
    async with get_session_factory()() as session:
        yield session


def get_clock() -> Clock:
    return SystemClock()


def get_cache() -> RedisService:
    return get_redis_service()


def get_day_store(session: AsyncSession = Depends(get_db_session)) -> DayRecordStore:
    return DayRecordStore(session)


def get_template_store(session: AsyncSession = Depends(get_db_session)) -> TemplateStore:
    return TemplateStore(session)


def get_override_store(session: AsyncSession = Depends(get_db_session)) -> BlockOverrideStore:
    return BlockOverrideStore(session)


def get_recorder(
    day_store: DayRecordStore = Depends(get_day_store),
    clock: Clock = Depends(get_clock),
    cache: RedisService = Depends(get_cache),
) -> CompletionRecorder:
    return CompletionRecorder(day_store, clock=clock, redis_service=cache)


def get_customizer(
    override_store: BlockOverrideStore = Depends(get_override_store),
    cache: RedisService = Depends(get_cache),
) -> BlockCustomizer:
    return BlockCustomizer(override_store, redis_service=cache)


def get_hydrator(
    template_store: TemplateStore = Depends(get_template_store),
    day_store: DayRecordStore = Depends(get_day_store),
    override_store: BlockOverrideStore = Depends(get_override_store),
) -> DayHydrator:
    return DayHydrator(template_store, day_store, override_store)


# =============================================================================
# User Context
# =============================================================================


async def get_user_context(
    caller_id: int = Depends(get_current_user_id),
    user_id: int | None = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_db_session),
) -> UserContext:
    """
    Resolve whose day records the request reads or writes.

    Callers act on their own records. Admins may target another user with
    ``?user_id=``; for anyone else that parameter is rejected with 403.

    Raises:
        HTTPException: 403 when a non-admin targets another user
        NotFoundError: If the target user does not exist
    """
    settings = get_settings()
    caller_is_admin = settings.is_admin(caller_id)
    target_id = caller_id
    if user_id is not None and user_id != caller_id:
        if not caller_is_admin:
            logger.warning(
                "Rejected cross-user access by user_hash=%s", hash_uid(caller_id)
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin access required.",
            )
        target_id = user_id

    user = await session.get(User, target_id)
    if user is None:
        raise NotFoundError(f"User {target_id} not found")

    is_admin = settings.is_admin(user.id) or user.role == Role.ADMIN.value
    return UserContext(
        user_id=user.id,
        role=Role.ADMIN if is_admin else Role.PUBLIC,
        timezone=user.timezone,
        acting_user_id=caller_id if target_id != caller_id else None,
    )


__all__ = [
    "bearer_scheme",
    "get_auth_service",
    "get_current_user_token",
    "get_current_user_id",
    "require_admin",
    "get_db_session",
    "get_clock",
    "get_cache",
    "get_day_store",
    "get_template_store",
    "get_override_store",
    "get_recorder",
    "get_customizer",
    "get_hydrator",
    "get_user_context",
]
