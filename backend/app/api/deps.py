from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import TokenClaims, decode_user_jwt, get_token_claims, is_valid_admin_token
from backend.app.core.database import async_session
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import bind_request_context, get_logger
from backend.app.models.user import UserProfile
from backend.app.services.affiliates import AffiliateService
from backend.app.services.cache import CacheService
from backend.app.services.users import UserService

logger = get_logger(__name__)


# One database session per request
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


async def get_cache() -> AsyncGenerator[CacheService, None]:
    redis = await CacheService.get_redis()
    yield CacheService(redis)


async def _profile_for(claims: TokenClaims, session: AsyncSession) -> UserProfile:
    user = await UserService(session).get_or_create_profile(claims.auth_id, claims.name, claims.phone)
    bind_request_context(user_id=user.id)
    return user


async def get_current_user(
    claims: TokenClaims = Depends(get_token_claims),
    session: AsyncSession = Depends(get_session),
) -> UserProfile:
    """Profile of the token's owner; created on first sight."""
    return await _profile_for(claims, session)


async def require_admin(
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> str:
    """
    Admin gate: either the service token or a signed-in admin user.

    Returns a short actor label used as `processed_by` on payouts.
    """
    if is_valid_admin_token(x_admin_token):
        bind_request_context(actor="service")
        return "admin:service"
    if authorization:
        parts = authorization.split()
        claims = decode_user_jwt(parts[1]) if len(parts) == 2 and parts[0].lower() == "bearer" else None
        if claims is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        user = await _profile_for(claims, session)
        if UserService.is_admin(user):
            return f"admin:{user.id}"
        logger.warning("Admin access denied", user_id=user.id)
        raise HTTPException(status_code=403, detail="Admin access required")
    raise HTTPException(status_code=401, detail="Invalid or missing admin credentials")


async def get_affiliate_code(
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> str:
    """Affiliate code of the current user; 403 for non-affiliates."""
    try:
        code = await AffiliateService(session).get_code_for_user(user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    bind_request_context(affiliate_code=code)
    return code


async def handle_service_error(session: AsyncSession, e: ServiceError, event: str, **context):
    """Roll back, log and convert a service exception to an HTTP error."""
    await session.rollback()
    logger.warning(event, error=e.message, status_code=e.status_code, **context)
    raise HTTPException(status_code=e.status_code, detail=e.message)
