"""
SQLAlchemy ORM models for the Contract AI database.
Organizations own playbooks and contracts; analyses hold AI suggestions.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Float,
    Boolean,
    Enum as SQLEnum,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime, timezone
import enum
import uuid

from contract_ai.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums
class MemberRole(str, enum.Enum):
    """Roles a user can hold inside an organization."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class Severity(str, enum.Enum):
    """Severity of a playbook rule or a suggested change."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


class ChangeType(str, enum.Enum):
    """Kinds of edit the AI can suggest."""

    REPLACEMENT = "REPLACEMENT"
    INSERTION = "INSERTION"
    DELETION = "DELETION"
    HIGHLIGHT = "HIGHLIGHT"


class ChangeStatus(str, enum.Enum):
    """Review state of a suggested change."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class ContractStatus(str, enum.Enum):
    """Lifecycle of an uploaded contract."""

    UPLOADED = "UPLOADED"
    ANALYZING = "ANALYZING"
    ANALYZED = "ANALYZED"
    FAILED = "FAILED"


class AnalysisStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Models
class User(Base):
    """User account. ``hashed_password`` is empty for OAuth-only users."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    image = Column(String(512), nullable=True)
    hashed_password = Column(String(255), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    memberships = relationship(
        "OrganizationMember", back_populates="user", cascade="all, delete-orphan"
    )


class Organization(Base):
    """Tenant that owns playbooks, contracts and audit history."""

    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    members = relationship(
        "OrganizationMember", back_populates="organization", cascade="all, delete-orphan"
    )
    playbooks = relationship("Playbook", back_populates="organization", cascade="all, delete-orphan")
    contracts = relationship("Contract", back_populates="organization", cascade="all, delete-orphan")


class OrganizationMember(Base):
    """Membership of a user in an organization with a role."""

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_org_member"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SQLEnum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    organization = relationship("Organization", back_populates="members")
    user = relationship("User", back_populates="memberships")


class Playbook(Base):
    """Named set of review rules for a contract type."""

    __tablename__ = "playbooks"

    id = Column(String(36), primary_key=True, default=_new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    contract_type = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    organization = relationship("Organization", back_populates="playbooks")
    rules = relationship(
        "Rule",
        back_populates="playbook",
        cascade="all, delete-orphan",
        order_by="Rule.order_index",
    )


class Rule(Base):
    """Single review instruction inside a playbook."""

    __tablename__ = "rules"

    id = Column(String(36), primary_key=True, default=_new_id)
    playbook_id = Column(
        String(36), ForeignKey("playbooks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)  # e.g. "Liability", "Termination"
    severity = Column(SQLEnum(Severity), nullable=False, default=Severity.MEDIUM)
    ai_prompt = Column(Text, nullable=False)
    preferred_language = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    order_index = Column(Integer, default=0, nullable=False)

    # Relationships
    playbook = relationship("Playbook", back_populates="rules")


class Contract(Base):
    """Uploaded contract with extracted text and editor state."""

    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=_new_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    uploaded_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)
    mime_type = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    checksum = Column(String(64), nullable=False, index=True)  # sha256 hex
    content_text = Column(Text, nullable=True)
    lexical_state = Column(JSON, nullable=True)
    metadata_json = Column(JSON, nullable=True)  # word count, page count, errors
    status = Column(SQLEnum(ContractStatus), nullable=False, default=ContractStatus.UPLOADED)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    organization = relationship("Organization", back_populates="contracts")
    analyses = relationship("Analysis", back_populates="contract", cascade="all, delete-orphan")


class Analysis(Base):
    """One AI review of a contract against a playbook."""

    __tablename__ = "analyses"

    id = Column(String(36), primary_key=True, default=_new_id)
    contract_id = Column(
        String(36), ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    playbook_id = Column(
        String(36), ForeignKey("playbooks.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status = Column(SQLEnum(AnalysisStatus), nullable=False, default=AnalysisStatus.COMPLETED)
    summary = Column(Text, nullable=True)
    risk_score = Column(Float, nullable=True)  # 0-10
    compliance_score = Column(Float, nullable=True)  # 0-10
    missing_clauses = Column(JSON, nullable=True)
    risks = Column(JSON, nullable=True)
    key_terms = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    contract = relationship("Contract", back_populates="analyses")
    changes = relationship(
        "SuggestedChange",
        back_populates="analysis",
        cascade="all, delete-orphan",
        order_by="SuggestedChange.start_offset",
    )


class SuggestedChange(Base):
    """AI-suggested edit positioned inside the contract text."""

    __tablename__ = "suggested_changes"

    id = Column(String(36), primary_key=True, default=_new_id)
    analysis_id = Column(
        String(36), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(SQLEnum(ChangeType), nullable=False)
    original_text = Column(Text, nullable=True)
    suggested_text = Column(Text, nullable=True)
    reason = Column(Text, nullable=False, default="")
    severity = Column(SQLEnum(Severity), nullable=False, default=Severity.MEDIUM)
    rule_id = Column(String(255), nullable=True)  # as reported by the model, not enforced
    confidence = Column(Float, nullable=True)

    # Position in Contract.content_text (0/0 when the text was not located)
    start_offset = Column(Integer, nullable=False, default=0)
    end_offset = Column(Integer, nullable=False, default=0)
    line = Column(Integer, nullable=True)
    column = Column(Integer, nullable=True)
    paragraph = Column(Integer, nullable=True)
    match_type = Column(String(20), nullable=True)  # exact / fuzzy / none

    status = Column(SQLEnum(ChangeStatus), nullable=False, default=ChangeStatus.PENDING)

    # Relationships
    analysis = relationship("Analysis", back_populates="changes")


class AuditLog(Base):
    """Append-only record of user actions."""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True
    )
