from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from retail_ledger.core.clock import utcnow
from retail_ledger.db.database import Base


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    PARTIALLY_RETURNED = "partially_returned"
    SOLD_OUT = "sold_out"
    RETURNED = "returned"


class MovementKind(str, Enum):
    SALE = "sale"
    RETURN = "return"


class StockPool(Base):
    __tablename__ = "stock_pools"
    __table_args__ = (CheckConstraint("quantity_on_hand >= 0", name="ck_stock_pools_on_hand_non_negative"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(Integer, unique=True, index=True, nullable=False)
    shop_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    quantity_on_hand: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}


class StockAdjustment(Base):
    __tablename__ = "stock_adjustments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    pool_id: Mapped[int] = mapped_column(ForeignKey("stock_pools.id", ondelete="CASCADE"), index=True, nullable=False)
    shop_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    adjusted_by: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    adjusted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)


class AgentAssignment(Base):
    __tablename__ = "agent_assignments"
    __table_args__ = (
        CheckConstraint("assigned_quantity > 0", name="ck_agent_assignments_assigned_positive"),
        CheckConstraint("remaining_quantity >= 0", name="ck_agent_assignments_remaining_non_negative"),
        CheckConstraint(
            "remaining_quantity = assigned_quantity - sold_quantity - returned_quantity",
            name="ck_agent_assignments_conservation",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    shop_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    agent_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    assigned_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    sold_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    returned_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    remaining_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[AssignmentStatus] = mapped_column(
        SQLEnum(AssignmentStatus),
        default=AssignmentStatus.ASSIGNED,
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_sold_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_returned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_closed(self) -> bool:
        return self.remaining_quantity == 0


class AssignmentMovement(Base):
    __tablename__ = "assignment_movements"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    assignment_id: Mapped[int] = mapped_column(
        ForeignKey("agent_assignments.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    kind: Mapped[MovementKind] = mapped_column(SQLEnum(MovementKind), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_after: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_ref: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
