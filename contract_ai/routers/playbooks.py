"""
Playbook and rule management, scoped to an organization.

Route summary
-------------
POST   /api/organizations/{org_id}/playbooks                            — create (with rules)
GET    /api/organizations/{org_id}/playbooks                            — list
GET    /api/organizations/{org_id}/playbooks/{playbook_id}              — detail
PATCH  /api/organizations/{org_id}/playbooks/{playbook_id}              — update
DELETE /api/organizations/{org_id}/playbooks/{playbook_id}              — delete (rules cascade)
POST   /api/organizations/{org_id}/playbooks/{playbook_id}/rules        — add rule
PATCH  /api/organizations/{org_id}/playbooks/{playbook_id}/rules/{id}   — update rule
DELETE /api/organizations/{org_id}/playbooks/{playbook_id}/rules/{id}   — delete rule
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from contract_ai.database import get_db
from contract_ai.dependencies.auth import get_authorized_membership, require_editor
from contract_ai.models.database_models import (
    OrganizationMember,
    Playbook,
    Rule,
    Severity,
)
from contract_ai.models.schemas import (
    PlaybookCreateRequest,
    PlaybookResponse,
    PlaybookUpdateRequest,
    RuleCreateRequest,
    RuleResponse,
    RuleUpdateRequest,
)
from contract_ai.services.audit import record_audit_event

logger = logging.getLogger(__name__)

router = APIRouter()

_NULLABLE_PLAYBOOK_FIELDS = {"description", "contract_type"}


# ─── Helpers ──────────────────────────────────────────────────────────────────

async def get_org_playbook(db: AsyncSession, org_id: str, playbook_id: str) -> Playbook:
    """Load a playbook with its rules, or raise 404 if it is not in *org_id*."""
    result = await db.execute(
        select(Playbook)
        .options(selectinload(Playbook.rules))
        .where(Playbook.id == playbook_id, Playbook.organization_id == org_id)
    )
    playbook = result.scalar_one_or_none()
    if playbook is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Playbook {playbook_id} not found.",
        )
    return playbook


def _build_rule(body: RuleCreateRequest) -> Rule:
    return Rule(
        name=body.name,
        type=body.type,
        severity=Severity(body.severity.value),
        ai_prompt=body.ai_prompt,
        preferred_language=body.preferred_language,
        is_active=body.is_active,
        order_index=body.order_index,
    )


def _find_rule(playbook: Playbook, rule_id: str) -> Rule:
    for rule in playbook.rules:
        if rule.id == rule_id:
            return rule
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Rule {rule_id} not found.",
    )


# ═══════════════════════════════════════════════════════════════════════════════
# PLAYBOOKS
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("", response_model=PlaybookResponse, status_code=status.HTTP_201_CREATED)
async def create_playbook(
    body: PlaybookCreateRequest,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> PlaybookResponse:
    rules = sorted((_build_rule(r) for r in body.rules), key=lambda r: r.order_index)
    playbook = Playbook(
        organization_id=membership.organization_id,
        name=body.name,
        description=body.description,
        contract_type=body.contract_type,
        created_by=membership.user_id,
        rules=rules,
    )
    db.add(playbook)
    await db.flush()

    await record_audit_event(
        db,
        action="playbook_created",
        entity_type="playbook",
        entity_id=playbook.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"name": playbook.name, "rule_count": len(rules)},
    )
    logger.info("Created playbook id=%s with %d rules", playbook.id, len(rules))
    return PlaybookResponse.model_validate(playbook)


@router.get("", response_model=List[PlaybookResponse])
async def list_playbooks(
    active_only: bool = False,
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> List[PlaybookResponse]:
    query = (
        select(Playbook)
        .options(selectinload(Playbook.rules))
        .where(Playbook.organization_id == membership.organization_id)
        .order_by(Playbook.created_at.desc())
    )
    if active_only:
        query = query.where(Playbook.is_active.is_(True))
    result = await db.execute(query)
    return [PlaybookResponse.model_validate(p) for p in result.scalars().all()]


@router.get("/{playbook_id}", response_model=PlaybookResponse)
async def get_playbook(
    playbook_id: str,
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> PlaybookResponse:
    playbook = await get_org_playbook(db, membership.organization_id, playbook_id)
    return PlaybookResponse.model_validate(playbook)


@router.patch("/{playbook_id}", response_model=PlaybookResponse)
async def update_playbook(
    playbook_id: str,
    body: PlaybookUpdateRequest,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> PlaybookResponse:
    playbook = await get_org_playbook(db, membership.organization_id, playbook_id)

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field not in _NULLABLE_PLAYBOOK_FIELDS:
            continue
        setattr(playbook, field, value)
    await db.flush()

    await record_audit_event(
        db,
        action="playbook_updated",
        entity_type="playbook",
        entity_id=playbook.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"fields": sorted(changes)},
    )
    return PlaybookResponse.model_validate(playbook)


@router.delete("/{playbook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_playbook(
    playbook_id: str,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> None:
    playbook = await get_org_playbook(db, membership.organization_id, playbook_id)
    name = playbook.name
    await db.delete(playbook)
    await db.flush()

    await record_audit_event(
        db,
        action="playbook_deleted",
        entity_type="playbook",
        entity_id=playbook_id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"name": name},
    )
    logger.info("Deleted playbook id=%s", playbook_id)


# ═══════════════════════════════════════════════════════════════════════════════
# RULES
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("/{playbook_id}/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    playbook_id: str,
    body: RuleCreateRequest,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> RuleResponse:
    playbook = await get_org_playbook(db, membership.organization_id, playbook_id)
    rule = _build_rule(body)
    playbook.rules.append(rule)
    await db.flush()

    await record_audit_event(
        db,
        action="rule_created",
        entity_type="rule",
        entity_id=rule.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"playbook_id": playbook.id, "name": rule.name},
    )
    return RuleResponse.model_validate(rule)


@router.patch("/{playbook_id}/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    playbook_id: str,
    rule_id: str,
    body: RuleUpdateRequest,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> RuleResponse:
    playbook = await get_org_playbook(db, membership.organization_id, playbook_id)
    rule = _find_rule(playbook, rule_id)

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field != "preferred_language":
            continue
        if field == "severity":
            value = Severity(value)
        setattr(rule, field, value)
    await db.flush()

    await record_audit_event(
        db,
        action="rule_updated",
        entity_type="rule",
        entity_id=rule.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"playbook_id": playbook.id, "fields": sorted(changes)},
    )
    return RuleResponse.model_validate(rule)


@router.delete("/{playbook_id}/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    playbook_id: str,
    rule_id: str,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> None:
    playbook = await get_org_playbook(db, membership.organization_id, playbook_id)
    rule = _find_rule(playbook, rule_id)
    playbook.rules.remove(rule)
    await db.flush()

    await record_audit_event(
        db,
        action="rule_deleted",
        entity_type="rule",
        entity_id=rule_id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"playbook_id": playbook.id},
    )
