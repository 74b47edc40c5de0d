"""approval workflow tables, loans, profiles and kyc documents

Revision ID: 20261001_approval_workflow
Revises:
Create Date: 2026-10-01
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261001_approval_workflow"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone_number", sa.String(50), nullable=True),
        sa.Column("employment_status", sa.String(50), nullable=True),
        sa.Column("monthly_income", sa.Numeric(14, 2), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    op.create_table(
        "user_roles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        sa.CheckConstraint("role IN ('admin', 'loan_officer', 'client')", name="ck_user_roles_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    op.create_table(
        "approval_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("request_type", sa.String(30), nullable=False),
        sa.Column("request_data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(10), nullable=False, server_default="normal"),
        sa.Column("assigned_to", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("risk_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("auto_approve_eligible", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("compliance_flags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("reference_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reference_table", sa.String(50), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewer_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "request_type IN ('loan_application', 'kyc_document', 'profile_update', 'payment', 'document_upload')",
            name="ck_approval_requests_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'under_review', 'approved', 'rejected', 'requires_info')",
            name="ck_approval_requests_status",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'normal', 'high', 'urgent')",
            name="ck_approval_requests_priority",
        ),
        sa.CheckConstraint(
            "(status IN ('approved', 'rejected')) = (reviewed_at IS NOT NULL AND reviewer_id IS NOT NULL)",
            name="ck_approval_requests_review_stamp",
        ),
        sa.CheckConstraint(
            "reference_id IS NULL OR status = 'approved'",
            name="ck_approval_requests_reference_approved",
        ),
    )
    op.create_index("ix_approval_requests_user_id", "approval_requests", ["user_id"])
    op.create_index("ix_approval_requests_assigned_to", "approval_requests", ["assigned_to"])
    op.create_index("ix_approval_requests_status_created", "approval_requests", ["status", "created_at"])
    op.create_index("ix_approval_requests_type_status", "approval_requests", ["request_type", "status"])

    op.create_table(
        "approval_workflow_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("approval_request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("previous_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=False),
        sa.Column("changed_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["approval_request_id"], ["approval_requests.id"], ondelete="RESTRICT"),
    )
    op.create_index(
        "ix_approval_workflow_history_approval_request_id",
        "approval_workflow_history",
        ["approval_request_id"],
    )

    op.create_table(
        "approval_notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("approval_request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("notification_type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.CheckConstraint(
            "notification_type IN ('new_request', 'status_update', 'assignment', 'reminder')",
            name="ck_approval_notifications_type",
        ),
        sa.CheckConstraint("is_read OR read_at IS NULL", name="ck_approval_notifications_read_at"),
        sa.ForeignKeyConstraint(["approval_request_id"], ["approval_requests.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_approval_notifications_approval_request_id",
        "approval_notifications",
        ["approval_request_id"],
    )
    op.create_index(
        "ix_approval_notifications_recipient_sent",
        "approval_notifications",
        ["recipient_id", "sent_at"],
    )

    op.create_table(
        "loans",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approval_request_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("interest_rate", sa.Numeric(6, 2), nullable=False),
        sa.Column("monthly_payment", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_repayment", sa.Numeric(14, 2), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="approved"),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_loans_amount_positive"),
        sa.CheckConstraint("term_months >= 1", name="ck_loans_term_positive"),
        sa.CheckConstraint("interest_rate >= 0", name="ck_loans_rate_nonneg"),
        sa.CheckConstraint("monthly_payment >= 0", name="ck_loans_payment_nonneg"),
        sa.CheckConstraint("total_repayment >= 0", name="ck_loans_total_nonneg"),
        sa.UniqueConstraint("approval_request_id", name="uq_loans_approval_request_id"),
        sa.ForeignKeyConstraint(["approval_request_id"], ["approval_requests.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_loans_user_id", "loans", ["user_id"])

    op.create_table(
        "kyc_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("file_path", sa.String(1024), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_kyc_documents_status",
        ),
    )
    op.create_index("ix_kyc_documents_user_id", "kyc_documents", ["user_id"])
    op.create_index("ix_kyc_documents_user_type", "kyc_documents", ["user_id", "document_type"])


def downgrade() -> None:
    op.drop_index("ix_kyc_documents_user_type", table_name="kyc_documents")
    op.drop_index("ix_kyc_documents_user_id", table_name="kyc_documents")
    op.drop_table("kyc_documents")

    op.drop_index("ix_loans_user_id", table_name="loans")
    op.drop_table("loans")

    op.drop_index("ix_approval_notifications_recipient_sent", table_name="approval_notifications")
    op.drop_index("ix_approval_notifications_approval_request_id", table_name="approval_notifications")
    op.drop_table("approval_notifications")

    op.drop_index(
        "ix_approval_workflow_history_approval_request_id", table_name="approval_workflow_history"
    )
    op.drop_table("approval_workflow_history")

    op.drop_index("ix_approval_requests_type_status", table_name="approval_requests")
    op.drop_index("ix_approval_requests_status_created", table_name="approval_requests")
    op.drop_index("ix_approval_requests_assigned_to", table_name="approval_requests")
    op.drop_index("ix_approval_requests_user_id", table_name="approval_requests")
    op.drop_table("approval_requests")

    op.drop_index("ix_user_roles_user_id", table_name="user_roles")
    op.drop_table("user_roles")

    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
