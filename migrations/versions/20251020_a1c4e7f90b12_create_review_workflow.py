"""Create users, job categories, applications and the document review ledger.

Revision ID: a1c4e7f90b12
Revises:
Create Date: 2025-10-20 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c4e7f90b12"
down_revision = None
branch_labels = None
depends_on = None


APPLICATION_STATUSES = (
    "Draft",
    "Pending Payment",
    "Submitted",
    "For Payment Validation",
    "Payment Rejected",
    "For Orientation",
    "Under Review",
    "Documents Need Revision",
    "Referred for Medical Management",
    "Approved",
    "Permanently Rejected",
)


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="applicant"),
        sa.Column("managed_categories", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)

    op.create_table(
        "job_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("require_orientation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "document_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "job_category_documents",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_category_id", sa.Integer(), nullable=False),
        sa.Column("document_type_id", sa.Integer(), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(["job_category_id"], ["job_categories.id"]),
        sa.ForeignKeyConstraint(["document_type_id"], ["document_types.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "job_category_id", "document_type_id", name="uq_job_category_document"
        ),
    )
    op.create_index(
        "ix_job_category_documents_job_category_id",
        "job_category_documents",
        ["job_category_id"],
    )

    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("job_category_id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*APPLICATION_STATUSES, name="application_status"),
            nullable=False,
        ),
        sa.Column("payment_deadline", sa.DateTime(), nullable=True),
        sa.Column("admin_remarks", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["job_category_id"], ["job_categories.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_applications_user_id", "applications", ["user_id"])
    op.create_index("ix_applications_job_category_id", "applications", ["job_category_id"])

    op.create_table(
        "document_uploads",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("document_type_id", sa.Integer(), nullable=False),
        sa.Column("storage_ref", sa.String(length=512), nullable=False),
        sa.Column("original_filename", sa.String(length=255), nullable=False),
        sa.Column("file_type", sa.String(length=128), nullable=False),
        sa.Column(
            "review_status",
            sa.Enum(
                "Pending",
                "Verified",
                "Rejected",
                "Referred",
                "Classified",
                name="document_review_status",
            ),
            nullable=False,
            server_default="Pending",
        ),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("reviewer_id", sa.Integer(), nullable=True),
        sa.Column("admin_remarks", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("classification", sa.JSON(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.ForeignKeyConstraint(["document_type_id"], ["document_types.id"]),
        sa.ForeignKeyConstraint(["reviewer_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_document_uploads_application_id", "document_uploads", ["application_id"]
    )

    op.create_table(
        "review_issues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("document_type_id", sa.Integer(), nullable=False),
        sa.Column("document_upload_id", sa.Integer(), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("rejection", "medical_referral", name="review_issue_kind"),
            nullable=False,
        ),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("specific_issues", sa.JSON(), nullable=False),
        sa.Column("doctor_name", sa.String(length=255), nullable=True),
        sa.Column("clinic_address", sa.String(length=512), nullable=True),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("was_replaced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("replacement_upload_id", sa.Integer(), nullable=True),
        sa.Column("replaced_at", sa.DateTime(), nullable=True),
        sa.Column(
            "notification_sent", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("notification_sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.ForeignKeyConstraint(["document_type_id"], ["document_types.id"]),
        sa.ForeignKeyConstraint(["document_upload_id"], ["document_uploads.id"]),
        sa.ForeignKeyConstraint(["replacement_upload_id"], ["document_uploads.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "application_id",
            "document_type_id",
            "attempt_number",
            name="uq_review_issue_attempt",
        ),
    )
    op.create_index("ix_review_issues_application_id", "review_issues", ["application_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=True),
        sa.Column("notification_type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("action_url", sa.String(length=512), nullable=True),
        sa.Column("job_category_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.ForeignKeyConstraint(["job_category_id"], ["job_categories.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_application_id", "notifications", ["application_id"])


def downgrade():
    op.drop_index("ix_notifications_application_id", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_review_issues_application_id", table_name="review_issues")
    op.drop_table("review_issues")
    op.drop_index("ix_document_uploads_application_id", table_name="document_uploads")
    op.drop_table("document_uploads")
    op.drop_index("ix_applications_job_category_id", table_name="applications")
    op.drop_index("ix_applications_user_id", table_name="applications")
    op.drop_table("applications")
    op.drop_index(
        "ix_job_category_documents_job_category_id", table_name="job_category_documents"
    )
    op.drop_table("job_category_documents")
    op.drop_table("document_types")
    op.drop_table("job_categories")
    op.drop_index("ix_users_external_id", table_name="users")
    op.drop_table("users")
    sa.Enum(name="review_issue_kind").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="document_review_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="application_status").drop(op.get_bind(), checkfirst=True)
