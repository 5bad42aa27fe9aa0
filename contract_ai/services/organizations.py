"""
Organization bootstrap helpers: unique slugs and personal organizations.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contract_ai.models.database_models import (
    MemberRole,
    Organization,
    OrganizationMember,
    User,
)
from contract_ai.utils.helpers import slugify_email

logger = logging.getLogger(__name__)


async def unique_slug(db: AsyncSession, base_slug: str) -> str:
    """Return *base_slug*, or the first free ``base_slug-2``, ``-3``, ..."""
    slug = base_slug
    suffix = 2
    while True:
        result = await db.execute(select(Organization.id).where(Organization.slug == slug))
        if result.scalar_one_or_none() is None:
            return slug
        slug = f"{base_slug}-{suffix}"
        suffix += 1


async def create_organization(
    db: AsyncSession,
    name: str,
    slug: str,
    owner: User,
) -> Organization:
    """Create an organization with *owner* as its OWNER member."""
    organization = Organization(
        name=name,
        slug=await unique_slug(db, slug),
        members=[OrganizationMember(user_id=owner.id, role=MemberRole.OWNER)],
    )
    db.add(organization)
    await db.flush()
    logger.info("Created organization id=%s slug=%r owner=%s", organization.id, organization.slug, owner.id)
    return organization


async def create_personal_organization(db: AsyncSession, user: User) -> Organization:
    """``"<name or email>'s Organization"`` with a slug from the email local part."""
    return await create_organization(
        db,
        name=f"{user.name or user.email}'s Organization",
        slug=slugify_email(user.email) or "organization",
        owner=user,
    )
