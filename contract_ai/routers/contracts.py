"""
Contract endpoints: upload, AI review, suggestion review and export.

Route summary
-------------
POST   /api/organizations/{org_id}/contracts/upload                        — upload + process
GET    /api/organizations/{org_id}/contracts                               — list contracts
POST   /api/organizations/{org_id}/contracts/analyze-batch                 — review many contracts
GET    /api/organizations/{org_id}/contracts/{contract_id}                 — detail (text + editor state)
DELETE /api/organizations/{org_id}/contracts/{contract_id}                 — delete (file removed)
PUT    /api/organizations/{org_id}/contracts/{contract_id}/lexical-state   — save the edited document
GET    /api/organizations/{org_id}/contracts/{contract_id}/metadata        — parties, dates, key terms
POST   /api/organizations/{org_id}/contracts/{contract_id}/analyze         — review against a playbook
GET    /api/organizations/{org_id}/contracts/{contract_id}/analyses        — list analyses
GET    /api/organizations/{org_id}/contracts/{contract_id}/analyses/{id}   — analysis with changes
PATCH  /api/organizations/{org_id}/contracts/{contract_id}/analyses/{id}/changes/{change_id}
                                                                           — accept / reject suggestion
GET    /api/organizations/{org_id}/contracts/{contract_id}/export          — download .docx
"""
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from contract_ai.config import settings
from contract_ai.database import get_db
from contract_ai.dependencies.auth import get_authorized_membership, require_editor
from contract_ai.models.database_models import (
    Analysis,
    AnalysisStatus,
    ChangeStatus,
    ChangeType,
    Contract,
    ContractStatus,
    OrganizationMember,
    Severity,
    SuggestedChange,
)
from contract_ai.models.schemas import (
    AnalysisResponse,
    AnalyzeRequest,
    BatchAnalysisItem,
    BatchAnalysisResponse,
    BatchAnalyzeRequest,
    ChangeStatusUpdateRequest,
    ContractDetailResponse,
    ContractMetadataResponse,
    ContractResponse,
    ContractUploadResponse,
    LexicalStateUpdateRequest,
    SuggestedChangeResponse,
)
from contract_ai.routers.playbooks import get_org_playbook
from contract_ai.services.ai_analysis import (
    AIAnalysisError,
    AIAnalysisService,
    ContractAnalysis,
)
from contract_ai.services.audit import record_audit_event
from contract_ai.services.document_processor import LEGACY_WORD_MESSAGE, MIME_TYPES, DocumentProcessor

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_CHUNK_SIZE = 1024 * 1024
# Contract.title and Contract.original_name column width
MAX_NAME_LENGTH = 255


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _safe_remove(path: str) -> None:
    try:
        if path and os.path.exists(path):
            os.remove(path)
    except OSError as exc:
        logger.warning("Could not remove file %r: %s", path, exc)


def get_ai_service() -> AIAnalysisService:
    """AIAnalysisService dependency; 503 when no Anthropic key is configured."""
    try:
        return AIAnalysisService()
    except AIAnalysisError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


async def _get_org_contract(
    db: AsyncSession,
    org_id: str,
    contract_id: str,
    with_analyses: bool = False,
) -> Contract:
    query = select(Contract).where(
        Contract.id == contract_id,
        Contract.organization_id == org_id,
    )
    if with_analyses:
        query = query.options(selectinload(Contract.analyses).selectinload(Analysis.changes))
    result = await db.execute(query)
    contract = result.scalar_one_or_none()
    if contract is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Contract {contract_id} not found.",
        )
    return contract


async def _get_contract_analysis(db: AsyncSession, contract_id: str, analysis_id: str) -> Analysis:
    result = await db.execute(
        select(Analysis)
        .options(selectinload(Analysis.changes))
        .where(Analysis.id == analysis_id, Analysis.contract_id == contract_id)
    )
    analysis = result.scalar_one_or_none()
    if analysis is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Analysis {analysis_id} not found.",
        )
    return analysis


async def _analysis_counts(db: AsyncSession, contract_ids: List[str]) -> Dict[str, int]:
    if not contract_ids:
        return {}
    result = await db.execute(
        select(Analysis.contract_id, func.count(Analysis.id))
        .where(Analysis.contract_id.in_(contract_ids))
        .group_by(Analysis.contract_id)
    )
    return {contract_id: count for contract_id, count in result.all()}


def _contract_fields(contract: Contract, analysis_count: int) -> dict:
    return dict(
        id=contract.id,
        organization_id=contract.organization_id,
        title=contract.title,
        original_name=contract.original_name,
        mime_type=contract.mime_type,
        file_size=contract.file_size,
        checksum=contract.checksum,
        status=contract.status.value,
        metadata_json=contract.metadata_json,
        created_at=contract.created_at,
        updated_at=contract.updated_at,
        analysis_count=analysis_count,
    )


def _analysis_response(analysis: Analysis) -> AnalysisResponse:
    return AnalysisResponse(
        id=analysis.id,
        contract_id=analysis.contract_id,
        playbook_id=analysis.playbook_id,
        status=analysis.status.value,
        summary=analysis.summary,
        risk_score=analysis.risk_score,
        compliance_score=analysis.compliance_score,
        missing_clauses=analysis.missing_clauses or [],
        risks=analysis.risks or [],
        key_terms=analysis.key_terms or [],
        error=analysis.error,
        created_at=analysis.created_at,
        changes=[SuggestedChangeResponse.model_validate(c) for c in analysis.changes],
    )


def _completed_analysis(
    contract: Contract,
    playbook_id: str,
    result: ContractAnalysis,
    user_id: str,
) -> Analysis:
    """Build a COMPLETED Analysis row with its positioned changes."""
    changes = []
    for change in result.changes:
        position = change.position
        changes.append(SuggestedChange(
            type=ChangeType(change.type),
            original_text=change.original_text,
            suggested_text=change.suggested_text,
            reason=change.reason,
            severity=Severity(change.severity),
            rule_id=change.rule_id,
            confidence=change.confidence,
            start_offset=position.start if position else 0,
            end_offset=position.end if position else 0,
            line=position.line if position else None,
            column=position.column if position else None,
            paragraph=position.paragraph if position else None,
            match_type=position.match_type if position else None,
            status=ChangeStatus.PENDING,
        ))
    changes.sort(key=lambda c: c.start_offset)

    return Analysis(
        contract_id=contract.id,
        playbook_id=playbook_id,
        status=AnalysisStatus.COMPLETED,
        summary=result.summary,
        risk_score=result.risk_score,
        compliance_score=result.compliance_score,
        missing_clauses=result.missing_clauses,
        risks=[r.as_dict() for r in result.risks],
        key_terms=[t.as_dict() for t in result.key_terms],
        created_by=user_id,
        changes=changes,
    )


def _failed_analysis(contract: Contract, playbook_id: str, error: str, user_id: str) -> Analysis:
    return Analysis(
        contract_id=contract.id,
        playbook_id=playbook_id,
        status=AnalysisStatus.FAILED,
        error=error,
        created_by=user_id,
        changes=[],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# UPLOAD / CRUD
# ═══════════════════════════════════════════════════════════════════════════════

@router.post(
    "/upload",
    response_model=ContractUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_contract(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None, max_length=MAX_NAME_LENGTH),
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> ContractUploadResponse:
    """Upload a Word, PDF or text contract and extract its text and editor state."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Upload must include a filename.")
    if len(file.filename) > MAX_NAME_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"File name exceeds {MAX_NAME_LENGTH} characters.",
        )

    file_ext = Path(file.filename).suffix.lower()
    if file_ext == ".doc":
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=LEGACY_WORD_MESSAGE)
    if file_ext not in settings.SUPPORTED_FILE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{file_ext}'. Accepted: {', '.join(settings.SUPPORTED_FILE_TYPES)}",
        )

    processor = DocumentProcessor()
    validation = processor.validate_file(file.filename, file.size or 0, file.content_type)
    if not validation.valid:
        code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE if validation.reason == "size" else 400
        raise HTTPException(status_code=code, detail=validation.error)

    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}{file_ext}"
    file_path = os.path.join(settings.UPLOAD_DIR, stored_name)
    buffer = bytearray()

    try:
        async with aiofiles.open(file_path, "wb") as out:
            while True:
                chunk = await file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                buffer.extend(chunk)
                if len(buffer) > settings.MAX_FILE_SIZE:
                    await out.close()
                    _safe_remove(file_path)
                    raise HTTPException(
                        status_code=413,
                        detail=f"File exceeds {settings.MAX_FILE_SIZE // (1024 * 1024)} MB limit.",
                    )
                await out.write(chunk)

        try:
            processed = await processor.process_upload(bytes(buffer), file.filename)
        except (RuntimeError, ValueError) as exc:
            _safe_remove(file_path)
            raise HTTPException(status_code=422, detail=str(exc))

        if not processed.content.strip():
            _safe_remove(file_path)
            raise HTTPException(status_code=422, detail="Document contains no extractable text.")

        metadata = processed.metadata
        contract = Contract(
            organization_id=membership.organization_id,
            uploaded_by=membership.user_id,
            title=(title or "").strip() or Path(file.filename).stem,
            original_name=file.filename,
            file_path=file_path,
            mime_type=metadata.mime_type,
            file_size=metadata.file_size,
            checksum=metadata.checksum,
            content_text=processed.content,
            lexical_state=processed.lexical_state,
            metadata_json=metadata.to_dict(),
            status=ContractStatus.UPLOADED,
        )
        db.add(contract)
        await db.flush()

        await record_audit_event(
            db,
            action="contract_uploaded",
            entity_type="contract",
            entity_id=contract.id,
            user_id=membership.user_id,
            organization_id=membership.organization_id,
            metadata={
                "original_name": file.filename,
                "file_size": metadata.file_size,
                "word_count": metadata.word_count,
            },
        )
        logger.info(
            "Organization %s: uploaded %r as contract id=%s (%d words)",
            membership.organization_id,
            file.filename,
            contract.id,
            metadata.word_count,
        )

        message = "Contract uploaded successfully"
        if metadata.processing_errors:
            message += f" with {len(metadata.processing_errors)} conversion warnings"

        return ContractUploadResponse(
            id=contract.id,
            title=contract.title,
            original_name=contract.original_name,
            mime_type=contract.mime_type,
            file_size=contract.file_size,
            checksum=contract.checksum,
            word_count=metadata.word_count,
            page_count=metadata.page_count,
            processing_errors=metadata.processing_errors,
            status=contract.status.value,
            message=message,
        )

    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Contract upload error for %r", file.filename)
        _safe_remove(file_path)
        raise HTTPException(status_code=500, detail=f"Error processing contract: {exc}")


@router.get("", response_model=List[ContractResponse])
async def list_contracts(
    skip: int = 0,
    limit: int = 100,
    contract_status: Optional[str] = None,
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> List[ContractResponse]:
    """List the organization's contracts, newest first."""
    query = (
        select(Contract)
        .where(Contract.organization_id == membership.organization_id)
        .order_by(Contract.created_at.desc())
        .offset(skip)
        .limit(min(limit, 500))
    )
    if contract_status:
        try:
            query = query.where(Contract.status == ContractStatus(contract_status.upper()))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status '{contract_status}'.")

    result = await db.execute(query)
    contracts = result.scalars().all()
    counts = await _analysis_counts(db, [c.id for c in contracts])
    return [ContractResponse(**_contract_fields(c, counts.get(c.id, 0))) for c in contracts]


@router.get("/{contract_id}", response_model=ContractDetailResponse)
async def get_contract(
    contract_id: str,
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> ContractDetailResponse:
    contract = await _get_org_contract(db, membership.organization_id, contract_id)
    counts = await _analysis_counts(db, [contract.id])
    return ContractDetailResponse(
        **_contract_fields(contract, counts.get(contract.id, 0)),
        content_text=contract.content_text,
        lexical_state=contract.lexical_state,
    )


@router.delete(
    "/{contract_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
async def delete_contract(
    contract_id: str,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Delete a contract, its analyses and the stored file."""
    contract = await _get_org_contract(db, membership.organization_id, contract_id, with_analyses=True)
    file_path = contract.file_path
    original_name = contract.original_name

    await db.delete(contract)
    await db.flush()

    await record_audit_event(
        db,
        action="contract_deleted",
        entity_type="contract",
        entity_id=contract_id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"original_name": original_name},
    )
    # The stored file goes only once the row is gone for good
    await db.commit()
    _safe_remove(file_path)
    logger.info("Deleted contract id=%s", contract_id)


@router.put("/{contract_id}/lexical-state", response_model=ContractDetailResponse)
async def update_lexical_state(
    contract_id: str,
    body: LexicalStateUpdateRequest,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> ContractDetailResponse:
    """
    Store the reviewed document from the editor.

    The text is re-derived from the new state, so later analyses and the
    export both see the accepted edits.
    """
    contract = await _get_org_contract(db, membership.organization_id, contract_id)
    lexical_state = body.model_dump()

    contract.lexical_state = lexical_state
    contract.content_text = DocumentProcessor().lexical_to_text(lexical_state)
    await db.flush()

    await record_audit_event(
        db,
        action="contract_updated",
        entity_type="contract",
        entity_id=contract.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"blocks": len(body.root.children)},
    )

    counts = await _analysis_counts(db, [contract.id])
    return ContractDetailResponse(
        **_contract_fields(contract, counts.get(contract.id, 0)),
        content_text=contract.content_text,
        lexical_state=contract.lexical_state,
    )


@router.get("/{contract_id}/metadata", response_model=ContractMetadataResponse)
async def get_contract_metadata(
    contract_id: str,
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> ContractMetadataResponse:
    """Heuristic parties, dates, type and key terms from the contract text."""
    contract = await _get_org_contract(db, membership.organization_id, contract_id)
    extracted = DocumentProcessor().extract_contract_metadata(contract.content_text or "")
    return ContractMetadataResponse(
        parties=extracted.parties,
        effective_date=extracted.effective_date,
        expiration_date=extracted.expiration_date,
        contract_type=extracted.contract_type,
        key_terms=extracted.key_terms,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# AI ANALYSIS
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("/analyze-batch", response_model=BatchAnalysisResponse)
async def analyze_contracts_batch(
    body: BatchAnalyzeRequest,
    membership: OrganizationMember = Depends(require_editor),
    ai_service: AIAnalysisService = Depends(get_ai_service),
    db: AsyncSession = Depends(get_db),
) -> BatchAnalysisResponse:
    """
    Review several contracts with one playbook, sequentially.

    A contract that is missing, has no text or fails AI review is reported
    in its result item; the rest of the batch still runs.
    """
    playbook = await get_org_playbook(db, membership.organization_id, body.playbook_id)

    requested = list(dict.fromkeys(body.contract_ids))
    result = await db.execute(
        select(Contract).where(
            Contract.id.in_(requested),
            Contract.organization_id == membership.organization_id,
        )
    )
    contracts = {c.id: c for c in result.scalars().all()}

    items: Dict[str, BatchAnalysisItem] = {}
    to_analyze = []
    for contract_id in requested:
        contract = contracts.get(contract_id)
        if contract is None:
            items[contract_id] = BatchAnalysisItem(contract_id=contract_id, error="Contract not found")
        elif not (contract.content_text or "").strip():
            items[contract_id] = BatchAnalysisItem(contract_id=contract_id, error="Contract has no text")
        else:
            contract.status = ContractStatus.ANALYZING
            to_analyze.append({"id": contract.id, "content": contract.content_text})
    await db.flush()

    try:
        outcomes = await ai_service.analyze_multiple_contracts(to_analyze, playbook.id, db)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    for outcome in outcomes:
        contract = contracts[outcome["contract_id"]]
        if outcome["analysis"] is not None:
            analysis = _completed_analysis(contract, playbook.id, outcome["analysis"], membership.user_id)
            contract.status = ContractStatus.ANALYZED
        else:
            analysis = _failed_analysis(contract, playbook.id, outcome["error"], membership.user_id)
            contract.status = ContractStatus.FAILED
        db.add(analysis)
        await db.flush()
        items[contract.id] = BatchAnalysisItem(
            contract_id=contract.id,
            analysis_id=analysis.id,
            changes_found=len(analysis.changes),
            error=outcome["error"],
        )

    results = [items[cid] for cid in requested]
    succeeded = sum(1 for item in results if item.error is None)

    await record_audit_event(
        db,
        action="contracts_batch_analyzed",
        entity_type="playbook",
        entity_id=playbook.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"contract_ids": requested, "succeeded": succeeded},
    )
    logger.info(
        "Batch analysis with playbook %s: %d succeeded, %d failed",
        playbook.id,
        succeeded,
        len(results) - succeeded,
    )

    return BatchAnalysisResponse(
        playbook_id=playbook.id,
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )


@router.post("/{contract_id}/analyze", response_model=AnalysisResponse, status_code=status.HTTP_201_CREATED)
async def analyze_contract(
    contract_id: str,
    body: AnalyzeRequest,
    membership: OrganizationMember = Depends(require_editor),
    ai_service: AIAnalysisService = Depends(get_ai_service),
    db: AsyncSession = Depends(get_db),
) -> AnalysisResponse:
    """Review one contract against a playbook and store the suggestions."""
    contract = await _get_org_contract(db, membership.organization_id, contract_id)
    playbook = await get_org_playbook(db, membership.organization_id, body.playbook_id)

    if not (contract.content_text or "").strip():
        raise HTTPException(status_code=422, detail="Contract has no extractable text to analyze.")

    contract.status = ContractStatus.ANALYZING
    await db.flush()

    try:
        result = await ai_service.analyze_contract(contract.content_text, playbook)
    except AIAnalysisError as exc:
        contract.status = ContractStatus.FAILED
        db.add(_failed_analysis(contract, playbook.id, str(exc), membership.user_id))
        await record_audit_event(
            db,
            action="contract_analysis_failed",
            entity_type="contract",
            entity_id=contract.id,
            user_id=membership.user_id,
            organization_id=membership.organization_id,
            metadata={"playbook_id": playbook.id, "error": str(exc)},
        )
        # Keep the failure record; the HTTPException below rolls back otherwise
        await db.commit()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    analysis = _completed_analysis(contract, playbook.id, result, membership.user_id)
    db.add(analysis)
    contract.status = ContractStatus.ANALYZED
    await db.flush()

    await record_audit_event(
        db,
        action="contract_analyzed",
        entity_type="contract",
        entity_id=contract.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={
            "analysis_id": analysis.id,
            "playbook_id": playbook.id,
            "changes": len(analysis.changes),
            "risk_score": analysis.risk_score,
        },
    )
    return _analysis_response(analysis)


@router.get("/{contract_id}/analyses", response_model=List[AnalysisResponse])
async def list_analyses(
    contract_id: str,
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> List[AnalysisResponse]:
    contract = await _get_org_contract(db, membership.organization_id, contract_id)
    result = await db.execute(
        select(Analysis)
        .options(selectinload(Analysis.changes))
        .where(Analysis.contract_id == contract.id)
        .order_by(Analysis.created_at.desc())
    )
    return [_analysis_response(a) for a in result.scalars().all()]


@router.get("/{contract_id}/analyses/{analysis_id}", response_model=AnalysisResponse)
async def get_analysis(
    contract_id: str,
    analysis_id: str,
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> AnalysisResponse:
    contract = await _get_org_contract(db, membership.organization_id, contract_id)
    analysis = await _get_contract_analysis(db, contract.id, analysis_id)
    return _analysis_response(analysis)


@router.patch(
    "/{contract_id}/analyses/{analysis_id}/changes/{change_id}",
    response_model=SuggestedChangeResponse,
)
async def update_change_status(
    contract_id: str,
    analysis_id: str,
    change_id: str,
    body: ChangeStatusUpdateRequest,
    membership: OrganizationMember = Depends(require_editor),
    db: AsyncSession = Depends(get_db),
) -> SuggestedChangeResponse:
    """Accept, reject or reopen a suggested change."""
    contract = await _get_org_contract(db, membership.organization_id, contract_id)
    analysis = await _get_contract_analysis(db, contract.id, analysis_id)

    change = next((c for c in analysis.changes if c.id == change_id), None)
    if change is None:
        raise HTTPException(status_code=404, detail=f"Change {change_id} not found.")

    change.status = ChangeStatus(body.status.value)
    await db.flush()

    action = {
        ChangeStatus.ACCEPTED: "change_accepted",
        ChangeStatus.REJECTED: "change_rejected",
        ChangeStatus.PENDING: "change_reopened",
    }[change.status]
    await record_audit_event(
        db,
        action=action,
        entity_type="suggested_change",
        entity_id=change.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        metadata={"contract_id": contract.id, "analysis_id": analysis.id},
    )
    return SuggestedChangeResponse.model_validate(change)


# ═══════════════════════════════════════════════════════════════════════════════
# EXPORT
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/{contract_id}/export")
async def export_contract(
    contract_id: str,
    membership: OrganizationMember = Depends(get_authorized_membership),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Download the contract's editor state as a Word document."""
    contract = await _get_org_contract(db, membership.organization_id, contract_id)
    processor = DocumentProcessor()

    lexical_state = contract.lexical_state or processor.text_to_lexical(contract.content_text or "")
    payload = processor.export_to_word(lexical_state)

    await record_audit_event(
        db,
        action="contract_exported",
        entity_type="contract",
        entity_id=contract.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
    )

    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", Path(contract.original_name).stem).strip("_") or "contract"
    filename = f"{stem}-reviewed.docx"
    return Response(
        content=payload,
        media_type=MIME_TYPES["docx"],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
