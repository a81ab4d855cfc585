"""FastAPI authentication dependencies for route protection."""

import hmac
import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.config import settings
from app.database import get_db
from app.models.user import User

logger = logging.getLogger(__name__)

# Optional bearer returns None if no token provided; callers decide whether that is fatal
_bearer_scheme_optional = HTTPBearer(auto_error=False)

OPERATOR_TOKEN_HEADER = "X-Admin-Sync-Token"


@dataclass(frozen=True)
class AdminContext:
    """Who is performing an admin action, and from where."""

    actor: str
    admin_user_id: uuid.UUID | None
    ip_address: str | None
    user_agent: str | None


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _user_from_token(db: AsyncSession, token: str) -> User:
    """Validate an access token and load its user, raising 401 on any problem."""
    try:
        payload = decode_token(token)
    except JWTError:
        raise _credentials_exception() from None

    # Only accept access tokens, not refresh tokens
    if payload.get("type") != "access":
        raise _credentials_exception("Invalid token type")

    sub: str | None = payload.get("sub")
    if sub is None:
        raise _credentials_exception()

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise _credentials_exception() from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise _credentials_exception()

    if not user.is_active:
        raise _credentials_exception("User account is inactive")

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme_optional),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired, wrong type, or user not found.
    """
    if credentials is None:
        raise _credentials_exception("Not authenticated")
    return await _user_from_token(db, credentials.credentials)


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Return the current user only if their account is active."""
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme_optional),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Optionally authenticate a user from a Bearer token.

    Returns ``None`` instead of raising when no (valid) token is provided.
    Useful for public endpoints that show extra info for logged-in users.
    """
    if credentials is None:
        return None
    try:
        return await _user_from_token(db, credentials.credentials)
    except HTTPException:
        return None


def _request_provenance(request: Request) -> tuple[str | None, str | None]:
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return ip, request.headers.get("user-agent")


async def require_admin(
    request: Request,
    user: User = Depends(get_current_active_user),
) -> AdminContext:
    """Allow only users with the admin role.

    Raises:
        HTTPException 403: If the user is authenticated but not an admin.
    """
    if not user.is_admin:
        logger.warning("User %s attempted an admin action on %s", user.id, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    ip, user_agent = _request_provenance(request)
    return AdminContext(actor=user.email, admin_user_id=user.id, ip_address=ip, user_agent=user_agent)


async def require_admin_or_operator(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme_optional),
    db: AsyncSession = Depends(get_db),
) -> AdminContext:
    """Admin session, or the pre-shared operator token for repairs without a session."""
    operator_token = request.headers.get(OPERATOR_TOKEN_HEADER)
    if operator_token:
        if settings.admin_sync_token and hmac.compare_digest(
            operator_token.encode(), settings.admin_sync_token.encode()
        ):
            ip, user_agent = _request_provenance(request)
            return AdminContext(actor="operator-token", admin_user_id=None, ip_address=ip, user_agent=user_agent)
        logger.warning("Rejected admin operator token from %s", _request_provenance(request)[0])
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid operator token",
        )

    user = await get_current_user(credentials, db)
    return await require_admin(request, await get_current_active_user(user))
