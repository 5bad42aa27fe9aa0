"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


# Enums (matching database enums)
class MemberRoleSchema(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class SeveritySchema(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


class ChangeTypeSchema(str, Enum):
    REPLACEMENT = "REPLACEMENT"
    INSERTION = "INSERTION"
    DELETION = "DELETION"
    HIGHLIGHT = "HIGHLIGHT"


class ChangeStatusSchema(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


# Auth Schemas
class RegisterRequest(BaseModel):
    """Schema for credentials sign-up."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=255)


class SignInRequest(BaseModel):
    """Credentials sign-in. Empty values are rejected with 401, not 422."""

    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """Signed session token plus the user it belongs to."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


# Organization Schemas
class OrganizationCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    role: Optional[MemberRoleSchema] = None  # caller's role
    member_count: int = 0
    created_at: datetime


class MemberAddRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    role: MemberRoleSchema = MemberRoleSchema.MEMBER


class MemberResponse(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    role: MemberRoleSchema
    created_at: datetime


# Playbook Schemas
class RuleCreateRequest(BaseModel):
    """Schema for adding a rule to a playbook."""

    name: str = Field(..., min_length=1, max_length=255)
    type: str = Field(..., min_length=1, max_length=100)
    severity: SeveritySchema = SeveritySchema.MEDIUM
    ai_prompt: str = Field(..., min_length=1)
    preferred_language: Optional[str] = None
    is_active: bool = True
    order_index: int = 0


class RuleUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = Field(None, min_length=1, max_length=100)
    severity: Optional[SeveritySchema] = None
    ai_prompt: Optional[str] = Field(None, min_length=1)
    preferred_language: Optional[str] = None
    is_active: Optional[bool] = None
    order_index: Optional[int] = None


class RuleResponse(BaseModel):
    id: str
    playbook_id: str
    name: str
    type: str
    severity: SeveritySchema
    ai_prompt: str
    preferred_language: Optional[str] = None
    is_active: bool
    order_index: int

    model_config = ConfigDict(from_attributes=True)


class PlaybookCreateRequest(BaseModel):
    """Schema for creating a playbook, optionally with its rules."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    contract_type: Optional[str] = Field(None, max_length=100)
    rules: List[RuleCreateRequest] = []


class PlaybookUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    contract_type: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None


class PlaybookResponse(BaseModel):
    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    contract_type: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    rules: List[RuleResponse] = []

    model_config = ConfigDict(from_attributes=True)


# Contract Schemas
class ContractUploadResponse(BaseModel):
    """Schema for contract upload response."""

    id: str
    title: str
    original_name: str
    mime_type: str
    file_size: int
    checksum: str
    word_count: int
    page_count: Optional[int] = None
    processing_errors: List[str] = []
    status: str = "UPLOADED"
    message: str = "Contract uploaded successfully"


class ContractResponse(BaseModel):
    """Schema for contract details."""

    id: str
    organization_id: str
    title: str
    original_name: str
    mime_type: str
    file_size: int
    checksum: str
    status: str
    metadata_json: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime
    analysis_count: int = 0


class ContractDetailResponse(ContractResponse):
    """Contract plus its text and editor state."""

    content_text: Optional[str] = None
    lexical_state: Optional[Dict[str, Any]] = None


class LexicalRoot(BaseModel):
    children: List[Dict[str, Any]]

    model_config = ConfigDict(extra="allow")


class LexicalStateUpdateRequest(BaseModel):
    """The editor's serialized Lexical state, stored as sent."""

    root: LexicalRoot

    model_config = ConfigDict(extra="allow")


class ContractMetadataResponse(BaseModel):
    """Regex-extracted facts about a contract."""

    parties: List[str] = []
    effective_date: Optional[str] = None
    expiration_date: Optional[str] = None
    contract_type: Optional[str] = None
    key_terms: List[str] = []


# Analysis Schemas
class AnalyzeRequest(BaseModel):
    playbook_id: str


class BatchAnalyzeRequest(BaseModel):
    playbook_id: str
    contract_ids: List[str] = Field(..., min_length=1, max_length=50)


class SuggestedChangeResponse(BaseModel):
    id: str
    type: ChangeTypeSchema
    original_text: Optional[str] = None
    suggested_text: Optional[str] = None
    reason: str
    severity: SeveritySchema
    rule_id: Optional[str] = None
    confidence: Optional[float] = None
    start_offset: int
    end_offset: int
    line: Optional[int] = None
    column: Optional[int] = None
    paragraph: Optional[int] = None
    match_type: Optional[str] = None
    status: ChangeStatusSchema

    model_config = ConfigDict(from_attributes=True)


class ChangeStatusUpdateRequest(BaseModel):
    status: ChangeStatusSchema


class AnalysisResponse(BaseModel):
    id: str
    contract_id: str
    playbook_id: Optional[str] = None
    status: str
    summary: Optional[str] = None
    risk_score: Optional[float] = None
    compliance_score: Optional[float] = None
    missing_clauses: List[str] = []
    risks: List[Dict[str, Any]] = []
    key_terms: List[Dict[str, Any]] = []
    error: Optional[str] = None
    created_at: datetime
    changes: List[SuggestedChangeResponse] = []


class BatchAnalysisItem(BaseModel):
    contract_id: str
    analysis_id: Optional[str] = None
    changes_found: int = 0
    error: Optional[str] = None


class BatchAnalysisResponse(BaseModel):
    playbook_id: str
    succeeded: int
    failed: int
    results: List[BatchAnalysisItem]


# Audit Schemas
class AuditLogResponse(BaseModel):
    id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    metadata_json: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    database: str
    ai: str
    timestamp: datetime
