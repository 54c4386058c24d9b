from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, Field, field_validator

from retail_ledger.models.installments import ContractStatus, PaymentMethod
from retail_ledger.schemas.base import ApiModel

InstallmentState = Literal["paid", "pending", "overdue", "cancelled"]


class ContractCreateRequest(ApiModel):
    total_amount: Decimal = Field(validation_alias=AliasChoices("totalAmount", "total_amount", "totalSum"))
    down_payment: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("downPayment", "down_payment", "initialPayment"),
    )
    duration_months: int = Field(
        validation_alias=AliasChoices("durationMonths", "duration_months", "installmentDuration", "duration")
    )
    customer_ref: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("customerRef", "customer_ref", "customerId", "customer"),
    )
    product_ref: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("productRef", "product_ref", "productId", "product"),
    )
    shop_id: int | None = Field(default=None, validation_alias=AliasChoices("shopId", "shop_id"))
    start_date: date | None = Field(default=None, validation_alias=AliasChoices("startDate", "start_date"))

    @field_validator("customer_ref", "product_ref", mode="before")
    @classmethod
    def normalize_reference(cls, value):
        if isinstance(value, dict):
            value = value.get("id") or value.get("_id")
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value


class PaymentRequest(ApiModel):
    payment_method: PaymentMethod = Field(
        default=PaymentMethod.CASH,
        validation_alias=AliasChoices("paymentMethod", "payment_method", "method"),
    )
    note: str | None = Field(default=None, max_length=255, validation_alias=AliasChoices("note", "notes"))

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_method(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class CancelRequest(ApiModel):
    reason: str = Field(min_length=2, max_length=255, validation_alias=AliasChoices("reason", "cancelReason"))

    @field_validator("reason")
    @classmethod
    def normalize_reason(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 2:
            raise ValueError("reason must not be blank")
        return normalized


class ContractOut(ApiModel):
    id: int
    customer_ref: str
    product_ref: str
    shop_id: int | None
    created_by: int | None
    total_amount: Decimal
    down_payment: Decimal
    duration_months: int
    paid_months: int
    monthly_payment: Decimal
    final_payment: Decimal
    remaining_amount: Decimal
    start_date: date
    next_payment_date: date | None
    end_date: date
    status: ContractStatus
    cancel_reason: str | None
    cancelled_by: int | None
    cancelled_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ContractCreateResponse(ApiModel):
    contract_id: int
    monthly_payment: Decimal
    remaining_amount: Decimal
    next_payment_date: date | None
    contract: ContractOut


class PaymentOut(ApiModel):
    id: int
    contract_id: int
    installment_number: int
    amount: Decimal
    due_date: date
    paid_at: datetime
    recorded_by: int | None
    payment_method: PaymentMethod
    note: str | None


class PaymentResponse(ApiModel):
    contract_id: int
    paid_months: int
    remaining_amount: Decimal
    next_payment_date: date | None
    status: ContractStatus
    payment: PaymentOut


class CancelResponse(ApiModel):
    contract_id: int
    status: ContractStatus
    cancel_reason: str | None
    cancelled_at: datetime | None


class InstallmentOut(ApiModel):
    installment_number: int
    amount: Decimal
    due_date: date
    state: InstallmentState
    paid_at: datetime | None
    payment_method: PaymentMethod | None

