"""
Supabase access-token verification and caller resolution.

Supabase signs user access tokens with the project's JWT secret (HS256). We
only need three facts about a caller: id (the `sub` claim), email, and role.
The role is always read from our own users table; role claims inside the token
are ignored.
"""
from typing import Optional

import jwt
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import Role, has_admin_privilege
from backend.app.core.exceptions import ForbiddenError, UnauthorizedError
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.models.user import User

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"


class CurrentUser(BaseModel):
    """Resolved caller identity."""
    id: str
    email: Optional[str] = None
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return has_admin_privilege(self.role)


class TokenClaims(BaseModel):
    sub: str
    email: Optional[str] = None


def decode_access_token(token: str) -> Optional[TokenClaims]:
    """
    Verify a Supabase access token and return its claims.

    Returns None when the token is malformed, expired, signed with another
    secret or issued for another audience.
    """
    settings = get_settings()
    if not settings.SUPABASE_JWT_SECRET:
        logger.error("SUPABASE_JWT_SECRET not configured, rejecting token")
        return None
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
        return TokenClaims(sub=str(payload["sub"]), email=payload.get("email"))
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        logger.info("Access token rejected", reason=type(e).__name__)
        return None


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


async def resolve_caller(session: AsyncSession, claims: TokenClaims) -> CurrentUser:
    """
    Build the caller from verified claims plus the stored role.

    A verified identity without a local profile row is a plain USER.
    """
    user = await session.get(User, claims.sub)
    if user is None:
        return CurrentUser(id=claims.sub, email=claims.email, role=Role.USER)
    try:
        role = Role(user.role)
    except ValueError:
        logger.warning("Unknown role on user, treating as USER", user_id=user.id, role=user.role)
        role = Role.USER
    return CurrentUser(id=user.id, email=user.email or claims.email, role=role)


def require_identity(caller: Optional[CurrentUser]) -> CurrentUser:
    if caller is None:
        raise UnauthorizedError()
    return caller


def require_admin_privilege(caller: Optional[CurrentUser]) -> CurrentUser:
    caller = require_identity(caller)
    if not caller.is_admin:
        raise ForbiddenError()
    return caller


def require_owner(caller: Optional[CurrentUser], owner_id: Optional[str], message: str = "Forbidden") -> CurrentUser:
    caller = require_identity(caller)
    if owner_id is None or caller.id != owner_id:
        raise ForbiddenError(message)
    return caller
