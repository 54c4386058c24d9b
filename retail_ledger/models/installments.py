from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from retail_ledger.core.clock import utcnow
from retail_ledger.db.database import Base


class ContractStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


class InstallmentContract(Base):
    __tablename__ = "installment_contracts"
    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_installment_contracts_total_positive"),
        CheckConstraint(
            "down_payment >= 0 AND down_payment <= total_amount",
            name="ck_installment_contracts_down_payment_bounds",
        ),
        CheckConstraint(
            "duration_months >= 1 AND duration_months <= 24",
            name="ck_installment_contracts_duration_bounds",
        ),
        CheckConstraint(
            "paid_months >= 0 AND paid_months <= duration_months",
            name="ck_installment_contracts_paid_months_bounds",
        ),
        CheckConstraint("remaining_amount >= 0", name="ck_installment_contracts_remaining_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    customer_ref: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    product_ref: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    shop_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    down_payment: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_months: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    monthly_payment: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    final_payment: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    next_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[ContractStatus] = mapped_column(
        SQLEnum(ContractStatus),
        default=ContractStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    cancel_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def financed_amount(self) -> Decimal:
        return Decimal(self.total_amount) - Decimal(self.down_payment)


class InstallmentPayment(Base):
    __tablename__ = "installment_payments"
    __table_args__ = (
        UniqueConstraint("contract_id", "installment_number", name="uq_installment_payments_contract_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    contract_id: Mapped[int] = mapped_column(
        ForeignKey("installment_contracts.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    recorded_by: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod),
        default=PaymentMethod.CASH,
        nullable=False,
    )
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
