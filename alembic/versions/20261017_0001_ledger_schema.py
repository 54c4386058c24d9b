"""agent stock ledger schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    assignment_status_enum = sa.Enum(
        "ASSIGNED",
        "PARTIALLY_RETURNED",
        "SOLD_OUT",
        "RETURNED",
        name="assignmentstatus",
    )
    movement_kind_enum = sa.Enum("SALE", "RETURN", name="movementkind")

    bind = op.get_bind()
    assignment_status_enum.create(bind, checkfirst=True)
    movement_kind_enum.create(bind, checkfirst=True)

    op.create_table(
        "stock_pools",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity_on_hand >= 0", name="ck_stock_pools_on_hand_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stock_pools_id"), "stock_pools", ["id"], unique=False)
    op.create_index(op.f("ix_stock_pools_product_id"), "stock_pools", ["product_id"], unique=True)
    op.create_index(op.f("ix_stock_pools_shop_id"), "stock_pools", ["shop_id"], unique=False)

    op.create_table(
        "stock_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("pool_id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("adjusted_by", sa.Integer(), nullable=True),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("adjusted_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["pool_id"], ["stock_pools.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stock_adjustments_id"), "stock_adjustments", ["id"], unique=False)
    op.create_index(op.f("ix_stock_adjustments_pool_id"), "stock_adjustments", ["pool_id"], unique=False)
    op.create_index(op.f("ix_stock_adjustments_shop_id"), "stock_adjustments", ["shop_id"], unique=False)
    op.create_index(op.f("ix_stock_adjustments_product_id"), "stock_adjustments", ["product_id"], unique=False)
    op.create_index(op.f("ix_stock_adjustments_adjusted_by"), "stock_adjustments", ["adjusted_by"], unique=False)
    op.create_index(op.f("ix_stock_adjustments_adjusted_at"), "stock_adjustments", ["adjusted_at"], unique=False)

    op.create_table(
        "agent_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("agent_id", sa.Integer(), nullable=False),
        sa.Column("assigned_by", sa.Integer(), nullable=True),
        sa.Column("assigned_quantity", sa.Integer(), nullable=False),
        sa.Column("sold_quantity", sa.Integer(), nullable=False),
        sa.Column("returned_quantity", sa.Integer(), nullable=False),
        sa.Column("remaining_quantity", sa.Integer(), nullable=False),
        sa.Column("status", assignment_status_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("last_sold_at", sa.DateTime(), nullable=True),
        sa.Column("last_returned_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("assigned_quantity > 0", name="ck_agent_assignments_assigned_positive"),
        sa.CheckConstraint("remaining_quantity >= 0", name="ck_agent_assignments_remaining_non_negative"),
        sa.CheckConstraint(
            "remaining_quantity = assigned_quantity - sold_quantity - returned_quantity",
            name="ck_agent_assignments_conservation",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_agent_assignments_id"), "agent_assignments", ["id"], unique=False)
    op.create_index(op.f("ix_agent_assignments_product_id"), "agent_assignments", ["product_id"], unique=False)
    op.create_index(op.f("ix_agent_assignments_shop_id"), "agent_assignments", ["shop_id"], unique=False)
    op.create_index(op.f("ix_agent_assignments_agent_id"), "agent_assignments", ["agent_id"], unique=False)
    op.create_index(op.f("ix_agent_assignments_status"), "agent_assignments", ["status"], unique=False)
    op.create_index(op.f("ix_agent_assignments_created_at"), "agent_assignments", ["created_at"], unique=False)

    op.create_table(
        "assignment_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("assignment_id", sa.Integer(), nullable=False),
        sa.Column("kind", movement_kind_enum, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("remaining_after", sa.Integer(), nullable=False),
        sa.Column("actor_ref", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["assignment_id"], ["agent_assignments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_assignment_movements_id"), "assignment_movements", ["id"], unique=False)
    op.create_index(
        op.f("ix_assignment_movements_assignment_id"),
        "assignment_movements",
        ["assignment_id"],
        unique=False,
    )
    op.create_index(op.f("ix_assignment_movements_kind"), "assignment_movements", ["kind"], unique=False)
    op.create_index(op.f("ix_assignment_movements_created_at"), "assignment_movements", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_assignment_movements_created_at"), table_name="assignment_movements")
    op.drop_index(op.f("ix_assignment_movements_kind"), table_name="assignment_movements")
    op.drop_index(op.f("ix_assignment_movements_assignment_id"), table_name="assignment_movements")
    op.drop_index(op.f("ix_assignment_movements_id"), table_name="assignment_movements")
    op.drop_table("assignment_movements")

    op.drop_index(op.f("ix_agent_assignments_created_at"), table_name="agent_assignments")
    op.drop_index(op.f("ix_agent_assignments_status"), table_name="agent_assignments")
    op.drop_index(op.f("ix_agent_assignments_agent_id"), table_name="agent_assignments")
    op.drop_index(op.f("ix_agent_assignments_shop_id"), table_name="agent_assignments")
    op.drop_index(op.f("ix_agent_assignments_product_id"), table_name="agent_assignments")
    op.drop_index(op.f("ix_agent_assignments_id"), table_name="agent_assignments")
    op.drop_table("agent_assignments")

    op.drop_index(op.f("ix_stock_adjustments_adjusted_at"), table_name="stock_adjustments")
    op.drop_index(op.f("ix_stock_adjustments_adjusted_by"), table_name="stock_adjustments")
    op.drop_index(op.f("ix_stock_adjustments_product_id"), table_name="stock_adjustments")
    op.drop_index(op.f("ix_stock_adjustments_shop_id"), table_name="stock_adjustments")
    op.drop_index(op.f("ix_stock_adjustments_pool_id"), table_name="stock_adjustments")
    op.drop_index(op.f("ix_stock_adjustments_id"), table_name="stock_adjustments")
    op.drop_table("stock_adjustments")

    op.drop_index(op.f("ix_stock_pools_shop_id"), table_name="stock_pools")
    op.drop_index(op.f("ix_stock_pools_product_id"), table_name="stock_pools")
    op.drop_index(op.f("ix_stock_pools_id"), table_name="stock_pools")
    op.drop_table("stock_pools")

    bind = op.get_bind()
    sa.Enum(name="movementkind").drop(bind, checkfirst=True)
    sa.Enum(name="assignmentstatus").drop(bind, checkfirst=True)
