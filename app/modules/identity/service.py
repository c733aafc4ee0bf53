"""Identity provider adapter.

Users, passwords and token issuance live in the account service. This module
only verifies the bearer token and turns its claims into an :class:`Identity`
that the scheduling modules trust for ownership checks.
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials

from app.core.enums import RoleEnum
from app.core.security import bearer_scheme, decode_token
from app.modules.identity.schemas import Identity
from app.shared.exceptions import ForbiddenException, UnauthenticatedException


def identity_from_claims(claims: dict[str, Any]) -> Identity:
    """Build caller identity from verified token claims."""
    if claims.get("type", "access") != "access":
        raise UnauthenticatedException("Invalid access token")

    subject = claims.get("sub", claims.get("userId"))
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise UnauthenticatedException("Token subject is missing") from exc

    try:
        role = RoleEnum(str(claims.get("role", "")).lower())
    except ValueError as exc:
        raise UnauthenticatedException("Token role is not recognized") from exc

    return Identity(id=user_id, role=role)


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """Resolve the authenticated caller from the bearer token."""
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedException("Access token required")
    return identity_from_claims(decode_token(credentials.credentials))


def require_roles(*roles: RoleEnum):
    """Dependency factory for role-based access."""

    async def _checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in roles:
            raise ForbiddenException("Operation not permitted for your role")
        return identity

    return _checker
