"""Database and schema models for Contract AI."""
from contract_ai.models.database_models import (
    User,
    Organization,
    OrganizationMember,
    Playbook,
    Rule,
    Contract,
    Analysis,
    SuggestedChange,
    AuditLog,
    MemberRole,
    Severity,
    ChangeType,
    ChangeStatus,
    ContractStatus,
    AnalysisStatus,
)
from contract_ai.models.schemas import (
    PlaybookCreateRequest,
    PlaybookResponse,
    RuleResponse,
    ContractUploadResponse,
    ContractResponse,
    AnalysisResponse,
    SuggestedChangeResponse,
    AuditLogResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "User",
    "Organization",
    "OrganizationMember",
    "Playbook",
    "Rule",
    "Contract",
    "Analysis",
    "SuggestedChange",
    "AuditLog",
    "MemberRole",
    "Severity",
    "ChangeType",
    "ChangeStatus",
    "ContractStatus",
    "AnalysisStatus",
    # Pydantic schemas
    "PlaybookCreateRequest",
    "PlaybookResponse",
    "RuleResponse",
    "ContractUploadResponse",
    "ContractResponse",
    "AnalysisResponse",
    "SuggestedChangeResponse",
    "AuditLogResponse",
    "HealthCheckResponse",
]
