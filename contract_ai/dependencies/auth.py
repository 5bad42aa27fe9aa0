"""
Authentication dependencies for FastAPI routes.

Resolves the user from the ``Authorization: Bearer <token>`` session token
and the caller's membership for organization-scoped routes.  Organizations
the caller does not belong to are reported as 404.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from contract_ai.database import get_db
from contract_ai.models.database_models import MemberRole, OrganizationMember, User
from contract_ai.services.auth import InvalidTokenError, decode_session_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_EDITOR_ROLES = {MemberRole.OWNER, MemberRole.ADMIN, MemberRole.MEMBER}
_ADMIN_ROLES = {MemberRole.OWNER, MemberRole.ADMIN}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Return the signed-in user. Raises 401 if the token is missing or invalid."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated.")

    try:
        claims = decode_session_token(credentials.credentials)
    except InvalidTokenError as exc:
        raise _unauthorized(str(exc)) from exc

    result = await db.execute(select(User).where(User.id == claims["sub"]))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Session token for unknown user %s", claims["sub"])
        raise _unauthorized("User no longer exists.")

    return user


async def get_authorized_membership(
    org_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrganizationMember:
    """
    Verify that the current user belongs to the organization.
    Returns the membership (organization loaded) or raises 404.
    """
    result = await db.execute(
        select(OrganizationMember)
        .options(selectinload(OrganizationMember.organization))
        .where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user.id,
        )
    )
    membership = result.scalar_one_or_none()

    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Organization {org_id} not found.",
        )

    return membership


async def require_editor(
    membership: OrganizationMember = Depends(get_authorized_membership),
) -> OrganizationMember:
    """Members with a role that may change organization data (not VIEWER)."""
    if membership.role not in _EDITOR_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Viewers cannot modify organization data.",
        )
    return membership


async def require_admin(
    membership: OrganizationMember = Depends(get_authorized_membership),
) -> OrganizationMember:
    """OWNER or ADMIN only."""
    if membership.role not in _ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only organization owners and admins can do this.",
        )
    return membership
