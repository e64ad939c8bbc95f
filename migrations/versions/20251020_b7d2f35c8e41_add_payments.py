"""Add payments, payment rejections and the payment audit log.

Revision ID: b7d2f35c8e41
Revises: a1c4e7f90b12
Create Date: 2025-10-20 00:30:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b7d2f35c8e41"
down_revision = "a1c4e7f90b12"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("service_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("net_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "method",
            sa.Enum(
                "Gcash",
                "Maya",
                "BaranggayHall",
                "CityHall",
                "OnlineCheckout",
                name="payment_method",
            ),
            nullable=False,
        ),
        sa.Column("reference_number", sa.String(length=128), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "Pending",
                "Processing",
                "Complete",
                "Failed",
                "Cancelled",
                "Expired",
                "Refunded",
                name="payment_status",
            ),
            nullable=False,
        ),
        sa.Column("gateway_payment_id", sa.String(length=255), nullable=True),
        sa.Column("gateway_checkout_id", sa.String(length=255), nullable=True),
        sa.Column("checkout_url", sa.String(length=1024), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("superseded_by_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("net_amount = amount + service_fee", name="ck_payments_net_amount"),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.ForeignKeyConstraint(["superseded_by_id"], ["payments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("gateway_payment_id"),
        sa.UniqueConstraint("gateway_checkout_id"),
    )
    op.create_index("ix_payments_application_id", "payments", ["application_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "payment_rejections",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("specific_issues", sa.JSON(), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("was_replaced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("replacement_payment_id", sa.Integer(), nullable=True),
        sa.Column("replaced_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_by", sa.Integer(), nullable=False),
        sa.Column("rejected_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.ForeignKeyConstraint(["replacement_payment_id"], ["payments.id"]),
        sa.ForeignKeyConstraint(["rejected_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_payment_rejections_application_id", "payment_rejections", ["application_id"]
    )
    op.create_index("ix_payment_rejections_payment_id", "payment_rejections", ["payment_id"])

    op.create_table(
        "payment_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("gateway_payment_id", sa.String(length=255), nullable=True),
        sa.Column("gateway_checkout_id", sa.String(length=255), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payment_logs_payment_id", "payment_logs", ["payment_id"])


def downgrade():
    op.drop_index("ix_payment_logs_payment_id", table_name="payment_logs")
    op.drop_table("payment_logs")
    op.drop_index("ix_payment_rejections_payment_id", table_name="payment_rejections")
    op.drop_index("ix_payment_rejections_application_id", table_name="payment_rejections")
    op.drop_table("payment_rejections")
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_application_id", table_name="payments")
    op.drop_table("payments")
    sa.Enum(name="payment_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="payment_method").drop(op.get_bind(), checkfirst=True)
