"""loan_applications_unified view

Revision ID: 20261002_unified_view
Revises: 20261001_approval_workflow
Create Date: 2026-10-02
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261002_unified_view"
down_revision = "20261001_approval_workflow"
branch_labels = None
depends_on = None


def upgrade() -> None:
    conn = op.get_bind()
    # A loan application appears once: as its request until a loan exists
    # for it, then as that loan.
    conn.execute(
        sa.text(
            """
            CREATE OR REPLACE VIEW loan_applications_unified AS
            SELECT
                ar.id AS id,
                'approval'::text AS source,
                ar.user_id AS user_id,
                ar.id AS approval_request_id,
                ar.status AS status,
                ar.priority AS priority,
                NULLIF(ar.request_data->>'amount', '')::numeric(14, 2) AS amount,
                COALESCE(
                    NULLIF(ar.request_data->>'term_months', ''),
                    NULLIF(ar.request_data->>'term', '')
                )::integer AS term_months,
                ar.request_data->>'purpose' AS purpose,
                p.first_name AS applicant_first_name,
                p.last_name AS applicant_last_name,
                COALESCE(p.email, ar.request_data->>'email') AS applicant_email,
                ar.created_at AS created_at,
                COALESCE(p.employment_status, ar.request_data->>'employment_status') AS employment_status,
                COALESCE(
                    p.monthly_income,
                    NULLIF(ar.request_data->>'monthly_income', '')::numeric(14, 2)
                ) AS monthly_income
            FROM approval_requests ar
            LEFT JOIN profiles p ON p.id = ar.user_id
            WHERE ar.request_type = 'loan_application'
              AND ar.reference_id IS NULL
              AND NOT EXISTS (SELECT 1 FROM loans l WHERE l.approval_request_id = ar.id)
            UNION ALL
            SELECT
                l.id AS id,
                'loan'::text AS source,
                l.user_id AS user_id,
                l.approval_request_id AS approval_request_id,
                l.status AS status,
                NULL::varchar AS priority,
                l.amount AS amount,
                l.term_months AS term_months,
                l.purpose AS purpose,
                p.first_name AS applicant_first_name,
                p.last_name AS applicant_last_name,
                p.email AS applicant_email,
                l.created_at AS created_at,
                p.employment_status AS employment_status,
                p.monthly_income AS monthly_income
            FROM loans l
            LEFT JOIN profiles p ON p.id = l.user_id
            """
        )
    )


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(sa.text("DROP VIEW IF EXISTS loan_applications_unified"))
