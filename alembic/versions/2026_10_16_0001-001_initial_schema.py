"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-16

All 9 tables as defined in contract_ai/models/database_models.py:
users, organizations, organization_members, playbooks, rules, contracts,
analyses, suggested_changes, audit_logs.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── Enum types ────────────────────────────────────────────────────────
    member_role = sa.Enum("OWNER", "ADMIN", "MEMBER", "VIEWER", name="memberrole")
    severity = sa.Enum("CRITICAL", "HIGH", "MEDIUM", "LOW", "INFO", name="severity")
    change_type = sa.Enum("REPLACEMENT", "INSERTION", "DELETION", "HIGHLIGHT", name="changetype")
    change_status = sa.Enum("PENDING", "ACCEPTED", "REJECTED", name="changestatus")
    contract_status = sa.Enum("UPLOADED", "ANALYZING", "ANALYZED", "FAILED", name="contractstatus")
    analysis_status = sa.Enum("COMPLETED", "FAILED", name="analysisstatus")
    for enum_type in (member_role, severity, change_type, change_status, contract_status, analysis_status):
        enum_type.create(op.get_bind(), checkfirst=True)

    # ── users ─────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("image", sa.String(512), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── organizations ─────────────────────────────────────────────────────
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "organization_members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("role", sa.Enum(name="memberrole", create_type=False), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_org_member"),
    )

    # ── playbooks / rules ─────────────────────────────────────────────────
    op.create_table(
        "playbooks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("contract_type", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("playbook_id", sa.String(36), sa.ForeignKey("playbooks.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("severity", sa.Enum(name="severity", create_type=False), nullable=False),
        sa.Column("ai_prompt", sa.Text, nullable=False),
        sa.Column("preferred_language", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("order_index", sa.Integer, nullable=False, server_default="0"),
    )

    # ── contracts ─────────────────────────────────────────────────────────
    op.create_table(
        "contracts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("uploaded_by", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(512), nullable=False),
        sa.Column("mime_type", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=False),
        sa.Column("checksum", sa.String(64), nullable=False, index=True),
        sa.Column("content_text", sa.Text, nullable=True),
        sa.Column("lexical_state", sa.JSON, nullable=True),
        sa.Column("metadata_json", sa.JSON, nullable=True),
        sa.Column("status", sa.Enum(name="contractstatus", create_type=False), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── analyses / suggested_changes ──────────────────────────────────────
    op.create_table(
        "analyses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("contract_id", sa.String(36), sa.ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("playbook_id", sa.String(36), sa.ForeignKey("playbooks.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("status", sa.Enum(name="analysisstatus", create_type=False), nullable=False),
        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("risk_score", sa.Float, nullable=True),
        sa.Column("compliance_score", sa.Float, nullable=True),
        sa.Column("missing_clauses", sa.JSON, nullable=True),
        sa.Column("risks", sa.JSON, nullable=True),
        sa.Column("key_terms", sa.JSON, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "suggested_changes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("analysis_id", sa.String(36), sa.ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("type", sa.Enum(name="changetype", create_type=False), nullable=False),
        sa.Column("original_text", sa.Text, nullable=True),
        sa.Column("suggested_text", sa.Text, nullable=True),
        sa.Column("reason", sa.Text, nullable=False, server_default=""),
        sa.Column("severity", sa.Enum(name="severity", create_type=False), nullable=False),
        sa.Column("rule_id", sa.String(255), nullable=True),
        sa.Column("confidence", sa.Float, nullable=True),
        sa.Column("start_offset", sa.Integer, nullable=False, server_default="0"),
        sa.Column("end_offset", sa.Integer, nullable=False, server_default="0"),
        sa.Column("line", sa.Integer, nullable=True),
        sa.Column("column", sa.Integer, nullable=True),
        sa.Column("paragraph", sa.Integer, nullable=True),
        sa.Column("match_type", sa.String(20), nullable=True),
        sa.Column("status", sa.Enum(name="changestatus", create_type=False), nullable=False),
    )

    # ── audit_logs ────────────────────────────────────────────────────────
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(100), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("metadata_json", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )


def downgrade() -> None:
    for table in (
        "audit_logs",
        "suggested_changes",
        "analyses",
        "contracts",
        "rules",
        "playbooks",
        "organization_members",
        "organizations",
        "users",
    ):
        op.drop_table(table)

    for name in ("analysisstatus", "contractstatus", "changestatus", "changetype", "severity", "memberrole"):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
