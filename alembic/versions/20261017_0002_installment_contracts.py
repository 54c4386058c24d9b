"""installment contracts and payments

Revision ID: 20261017_0002
Revises: 20261017_0001
Create Date: 2026-10-17 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_0002"
down_revision: Union[str, Sequence[str], None] = "20261017_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    contract_status_enum = sa.Enum("ACTIVE", "COMPLETED", "OVERDUE", "CANCELLED", name="contractstatus")
    payment_method_enum = sa.Enum("CASH", "CARD", "TRANSFER", name="paymentmethod")

    bind = op.get_bind()
    contract_status_enum.create(bind, checkfirst=True)
    payment_method_enum.create(bind, checkfirst=True)

    op.create_table(
        "installment_contracts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_ref", sa.String(length=64), nullable=False),
        sa.Column("product_ref", sa.String(length=64), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("down_payment", sa.Numeric(14, 2), nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=False),
        sa.Column("paid_months", sa.Integer(), nullable=False),
        sa.Column("monthly_payment", sa.Numeric(14, 2), nullable=False),
        sa.Column("final_payment", sa.Numeric(14, 2), nullable=False),
        sa.Column("remaining_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("next_payment_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", contract_status_enum, nullable=False),
        sa.Column("cancel_reason", sa.String(length=255), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("total_amount > 0", name="ck_installment_contracts_total_positive"),
        sa.CheckConstraint(
            "down_payment >= 0 AND down_payment <= total_amount",
            name="ck_installment_contracts_down_payment_bounds",
        ),
        sa.CheckConstraint(
            "duration_months >= 1 AND duration_months <= 24",
            name="ck_installment_contracts_duration_bounds",
        ),
        sa.CheckConstraint(
            "paid_months >= 0 AND paid_months <= duration_months",
            name="ck_installment_contracts_paid_months_bounds",
        ),
        sa.CheckConstraint("remaining_amount >= 0", name="ck_installment_contracts_remaining_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_installment_contracts_id"), "installment_contracts", ["id"], unique=False)
    op.create_index(
        op.f("ix_installment_contracts_customer_ref"),
        "installment_contracts",
        ["customer_ref"],
        unique=False,
    )
    op.create_index(
        op.f("ix_installment_contracts_product_ref"),
        "installment_contracts",
        ["product_ref"],
        unique=False,
    )
    op.create_index(op.f("ix_installment_contracts_shop_id"), "installment_contracts", ["shop_id"], unique=False)
    op.create_index(
        op.f("ix_installment_contracts_created_by"),
        "installment_contracts",
        ["created_by"],
        unique=False,
    )
    op.create_index(
        op.f("ix_installment_contracts_next_payment_date"),
        "installment_contracts",
        ["next_payment_date"],
        unique=False,
    )
    op.create_index(op.f("ix_installment_contracts_status"), "installment_contracts", ["status"], unique=False)
    op.create_index(
        op.f("ix_installment_contracts_created_at"),
        "installment_contracts",
        ["created_at"],
        unique=False,
    )

    op.create_table(
        "installment_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("contract_id", sa.Integer(), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=False),
        sa.Column("recorded_by", sa.Integer(), nullable=True),
        sa.Column("payment_method", payment_method_enum, nullable=False),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["contract_id"], ["installment_contracts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("contract_id", "installment_number", name="uq_installment_payments_contract_number"),
    )
    op.create_index(op.f("ix_installment_payments_id"), "installment_payments", ["id"], unique=False)
    op.create_index(
        op.f("ix_installment_payments_contract_id"),
        "installment_payments",
        ["contract_id"],
        unique=False,
    )
    op.create_index(op.f("ix_installment_payments_paid_at"), "installment_payments", ["paid_at"], unique=False)
    op.create_index(
        op.f("ix_installment_payments_recorded_by"),
        "installment_payments",
        ["recorded_by"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_installment_payments_recorded_by"), table_name="installment_payments")
    op.drop_index(op.f("ix_installment_payments_paid_at"), table_name="installment_payments")
    op.drop_index(op.f("ix_installment_payments_contract_id"), table_name="installment_payments")
    op.drop_index(op.f("ix_installment_payments_id"), table_name="installment_payments")
    op.drop_table("installment_payments")

    op.drop_index(op.f("ix_installment_contracts_created_at"), table_name="installment_contracts")
    op.drop_index(op.f("ix_installment_contracts_status"), table_name="installment_contracts")
    op.drop_index(op.f("ix_installment_contracts_next_payment_date"), table_name="installment_contracts")
    op.drop_index(op.f("ix_installment_contracts_created_by"), table_name="installment_contracts")
    op.drop_index(op.f("ix_installment_contracts_shop_id"), table_name="installment_contracts")
    op.drop_index(op.f("ix_installment_contracts_product_ref"), table_name="installment_contracts")
    op.drop_index(op.f("ix_installment_contracts_customer_ref"), table_name="installment_contracts")
    op.drop_index(op.f("ix_installment_contracts_id"), table_name="installment_contracts")
    op.drop_table("installment_contracts")

    bind = op.get_bind()
    sa.Enum(name="paymentmethod").drop(bind, checkfirst=True)
    sa.Enum(name="contractstatus").drop(bind, checkfirst=True)
