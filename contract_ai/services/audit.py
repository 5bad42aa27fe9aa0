"""
Audit log writer.

Events are added to the caller's session and committed with the rest of
the request's unit of work.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from contract_ai.models.database_models import AuditLog

logger = logging.getLogger(__name__)


async def record_audit_event(
    db: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        organization_id=organization_id,
        metadata_json=metadata or {},
    )
    db.add(entry)
    await db.flush()
    logger.debug("Audit: %s %s=%s by user=%s", action, entity_type, entity_id, user_id)
    return entry
