"""
Organization (tenant) endpoints.

Route summary
-------------
POST /api/organizations                    — create organization (caller is OWNER)
GET  /api/organizations                    — organizations the caller belongs to
GET  /api/organizations/{org_id}           — organization detail
GET  /api/organizations/{org_id}/members   — list members
POST /api/organizations/{org_id}/members   — add member by email (OWNER/ADMIN)
"""
import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from contract_ai.database import get_db
from contract_ai.dependencies.auth import (
    get_authorized_membership,
    get_current_user,
    require_admin,
)
from contract_ai.models.database_models import (
    MemberRole,
    OrganizationMember,
    User,
)
from contract_ai.models.schemas import (
    MemberAddRequest,
    MemberResponse,
    OrganizationCreateRequest,
    OrganizationResponse,
)
from contract_ai.services.audit import record_audit_event
from contract_ai.services.auth import get_user_by_email
from contract_ai.services.organizations import create_organization
from contract_ai.utils.helpers import slugify

logger = logging.getLogger(__name__)

router = APIRouter()


async def _member_counts(db: AsyncSession, org_ids: List[str]) -> Dict[str, int]:
    if not org_ids:
        return {}
    result = await db.execute(
        select(OrganizationMember.organization_id, func.count(OrganizationMember.id))
        .where(OrganizationMember.organization_id.in_(org_ids))
        .group_by(OrganizationMember.organization_id)
    )
    return {org_id: count for org_id, count in result.all()}


def _organization_response(membership: OrganizationMember, member_count: int) -> OrganizationResponse:
    org = membership.organization
    return OrganizationResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        role=membership.role.value,
        member_count=member_count,
        created_at=org.created_at,
    )


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_org(
    body: OrganizationCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrganizationResponse:
    """Create an organization owned by the caller."""
    organization = await create_organization(
        db,
        name=body.name,
        slug=slugify(body.slug or body.name),
        owner=user,
    )
    await record_audit_event(
        db,
        action="organization_created",
        entity_type="organization",
        entity_id=organization.id,
        user_id=user.id,
        organization_id=organization.id,
        metadata={"name": organization.name, "slug": organization.slug},
    )
    return OrganizationResponse(
        id=organization.id,
        name=organization.name,
        slug=organization.slug,
        role=MemberRole.OWNER.value,
        member_count=1,
        created_at=organization.created_at,
    )


@router.get("", response_model=List[OrganizationResponse])
async def list_orgs(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[OrganizationResponse]:
    """Return every organization the caller is a member of."""
    result = await db.execute(
        select(OrganizationMember)
        .options(selectinload(OrganizationMember.organization))
        .where(OrganizationMember.user_id == user.id)
        .order_by(OrganizationMember.created_at)
    )
    memberships = result.scalars().all()
    counts = await _member_counts(db, [m.organization_id for m in memberships])
    return [_organization_response(m, counts.get(m.organization_id, 0)) for m in memberships]


@router.get("/{org_id}", response_model=OrganizationResponse)
async def get_org(
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> OrganizationResponse:
    counts = await _member_counts(db, [membership.organization_id])
    return _organization_response(membership, counts.get(membership.organization_id, 0))


@router.get("/{org_id}/members", response_model=List[MemberResponse])
async def list_members(
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> List[MemberResponse]:
    result = await db.execute(
        select(OrganizationMember)
        .options(selectinload(OrganizationMember.user))
        .where(OrganizationMember.organization_id == membership.organization_id)
        .order_by(OrganizationMember.created_at)
    )
    return [
        MemberResponse(
            user_id=m.user_id,
            email=m.user.email,
            name=m.user.name,
            role=m.role.value,
            created_at=m.created_at,
        )
        for m in result.scalars().all()
    ]


@router.post("/{org_id}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    body: MemberAddRequest,
    membership: OrganizationMember = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MemberResponse:
    """Add an existing user to the organization. Only OWNERs can grant OWNER."""
    if body.role.value == MemberRole.OWNER.value and membership.role != MemberRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only owners can add another owner.",
        )

    invitee = await get_user_by_email(db, body.email)
    if invitee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No user with email {body.email}.",
        )

    existing = await db.execute(
        select(OrganizationMember.id).where(
            OrganizationMember.organization_id == membership.organization_id,
            OrganizationMember.user_id == invitee.id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already a member of this organization.",
        )

    new_member = OrganizationMember(
        organization_id=membership.organization_id,
        user_id=invitee.id,
        role=MemberRole(body.role.value),
    )
    db.add(new_member)
    await db.flush()

    await record_audit_event(
        db,
        action="member_added",
        entity_type="organization_member",
        entity_id=new_member.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"email": invitee.email, "role": new_member.role.value},
    )
    logger.info(
        "Added user=%s to organization=%s as %s",
        invitee.id,
        membership.organization_id,
        new_member.role.value,
    )

    return MemberResponse(
        user_id=invitee.id,
        email=invitee.email,
        name=invitee.name,
        role=new_member.role.value,
        created_at=new_member.created_at,
    )
