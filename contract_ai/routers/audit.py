"""
Audit log listing for an organization (OWNER/ADMIN only).
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contract_ai.database import get_db
from contract_ai.dependencies.auth import require_admin
from contract_ai.models.database_models import AuditLog, OrganizationMember
from contract_ai.models.schemas import AuditLogResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[AuditLogResponse])
async def list_audit_logs(
    action: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    membership: OrganizationMember = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[AuditLogResponse]:
    """Newest first, optionally filtered by ``action``."""
    query = (
        select(AuditLog)
        .where(AuditLog.organization_id == membership.organization_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id)
        .offset(skip)
        .limit(limit)
    )
    if action:
        query = query.where(AuditLog.action == action)

    result = await db.execute(query)
    return [AuditLogResponse.model_validate(entry) for entry in result.scalars().all()]
