"""FastAPI auth dependencies.

Used as Depends() in route handlers to extract and validate the current
identity from the Bearer token, and to enforce role requirements.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException

from maintrack.auth.jwt import TokenError, verify_token
from maintrack.db.models import Role


class CurrentIdentity:
    """The authenticated user making the request.

    Services trust these values: user_id becomes the actor of audit
    entries and role drives the technician assignment check.
    """

    def __init__(self, user_id: uuid.UUID, role: Role):
        self.user_id = user_id
        self.role = role

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no auth)."""
    if authorization and authorization.startswith("Bearer "):
        return _authenticate_jwt(authorization[7:])
    return None


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    if not identity:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def require_roles(*roles: Role):
    """Build a dependency that admits only the given roles (403 otherwise)."""

    async def _check(
        identity: CurrentIdentity = Depends(get_current_user),
    ) -> CurrentIdentity:
        if not identity.has_role(*roles):
            raise HTTPException(
                status_code=403,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return identity

    return _check


def _authenticate_jwt(token: str) -> CurrentIdentity:
    """Authenticate via JWT token."""
    try:
        payload = verify_token(token)
        return CurrentIdentity(
            user_id=uuid.UUID(payload["sub"]),
            role=Role(payload["role"]),
        )
    except (TokenError, ValueError) as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
