"""Forms, response record families, bulk import jobs and the job queue.

Revision ID: 0001_forms_records_imports
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic
revision = "0001_forms_records_imports"
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _record_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("form_id", sa.Uuid(), nullable=True),
        sa.Column("form_title", sa.String(200), nullable=True),
        sa.Column("form_slug", sa.String(120), nullable=True),
        sa.Column("responses", JSON, nullable=False),
        sa.Column("source", sa.String(100), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("import_job_id", sa.Uuid(), nullable=True),
    ]


def _record_constraints(table: str) -> list:
    return [
        sa.PrimaryKeyConstraint("id", name=f"pk_{table}"),
        sa.ForeignKeyConstraint(
            ["form_id"], ["forms.id"], ondelete="SET NULL", name=f"fk_{table}_form_id_forms"
        ),
        sa.ForeignKeyConstraint(
            ["import_job_id"],
            ["bulk_import_jobs.id"],
            ondelete="SET NULL",
            name=f"fk_{table}_import_job_id_bulk_import_jobs",
        ),
    ]


def _hierarchy_columns() -> list[sa.Column]:
    return [
        sa.Column("khanda", sa.String(150), nullable=False),
        sa.Column("valaya", sa.String(150), nullable=False),
        sa.Column("milan_ghat", sa.String(150), nullable=False),
    ]


def _contact_columns() -> list[sa.Column]:
    return [
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=False),
    ]


def upgrade() -> None:
    # ==========================================================================
    # Forms
    # ==========================================================================
    op.create_table(
        "forms",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("internal_name", sa.String(200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sections", JSON, nullable=False),
        sa.Column("theme", JSON, nullable=False),
        sa.Column("settings", JSON, nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'draft'"), nullable=False),
        sa.Column("custom_slug", sa.String(120), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_forms"),
    )
    op.create_index("idx_forms_status", "forms", ["status"])
    op.create_index("idx_forms_custom_slug", "forms", ["custom_slug"])

    # ==========================================================================
    # Bulk import jobs
    # ==========================================================================
    op.create_table(
        "bulk_import_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(1024), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("target_collection", sa.String(20), nullable=True),
        sa.Column("import_mode", sa.String(20), nullable=False),
        sa.Column("source_tag", sa.String(100), nullable=False),
        sa.Column("form_id", sa.Uuid(), nullable=True),
        sa.Column("hierarchy_defaults", JSON, nullable=False),
        sa.Column("enable_ai_mapping", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'processing'"), nullable=False),
        sa.Column("total_records", sa.Integer(), nullable=False),
        sa.Column("processed_records", sa.Integer(), nullable=False),
        sa.Column("successful_records", sa.Integer(), nullable=False),
        sa.Column("failed_records", sa.Integer(), nullable=False),
        sa.Column("errors", JSON, nullable=False),
        sa.Column("ai_analysis", JSON, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_bulk_import_jobs"),
        sa.ForeignKeyConstraint(
            ["form_id"], ["forms.id"], ondelete="SET NULL", name="fk_bulk_import_jobs_form_id_forms"
        ),
    )
    op.create_index("idx_bulk_import_jobs_status", "bulk_import_jobs", ["status"])
    op.create_index("idx_bulk_import_jobs_source", "bulk_import_jobs", ["source_tag"])

    # ==========================================================================
    # Record families
    # ==========================================================================
    op.create_table(
        "lead_records",
        *_record_columns(),
        *_contact_columns(),
        sa.Column("lead_score", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'new'"), nullable=False),
        *_hierarchy_columns(),
        *_record_constraints("lead_records"),
    )
    op.create_index("idx_lead_records_form", "lead_records", ["form_id"])
    op.create_index("idx_lead_records_source", "lead_records", ["source"])
    op.create_index("idx_lead_records_status", "lead_records", ["status"])

    op.create_table(
        "volunteer_records",
        *_record_columns(),
        *_contact_columns(),
        *_hierarchy_columns(),
        *_record_constraints("volunteer_records"),
    )
    op.create_index("idx_volunteer_records_form", "volunteer_records", ["form_id"])
    op.create_index("idx_volunteer_records_source", "volunteer_records", ["source"])

    op.create_table(
        "generic_records",
        *_record_columns(),
        sa.Column("form_type", sa.String(50), nullable=False),
        *_record_constraints("generic_records"),
    )
    op.create_index("idx_generic_records_form", "generic_records", ["form_id"])
    op.create_index("idx_generic_records_source", "generic_records", ["source"])

    # ==========================================================================
    # Job queue
    # ==========================================================================
    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("payload", JSON, nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("max_attempts", sa.Integer(), server_default=sa.text("3"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_jobs"),
    )
    op.create_index("idx_jobs_pending", "jobs", ["status", "run_at"])


def downgrade() -> None:
    op.drop_table("jobs")
    op.drop_table("generic_records")
    op.drop_table("volunteer_records")
    op.drop_table("lead_records")
    op.drop_table("bulk_import_jobs")
    op.drop_table("forms")
