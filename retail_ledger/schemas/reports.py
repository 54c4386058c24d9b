from datetime import date, datetime
from decimal import Decimal

from retail_ledger.models.installments import ContractStatus
from retail_ledger.schemas.base import ApiModel
from retail_ledger.schemas.ledger import AssignmentOut


class AgentOutstandingOut(ApiModel):
    agent_id: int
    open_assignments: int
    outstanding_quantity: int
    assignments: list[AssignmentOut]


class AgentStatsOut(ApiModel):
    agent_id: int
    assignment_count: int
    open_assignments: int
    total_assigned: int
    total_sold: int
    total_returned: int
    total_remaining: int
    sell_through_rate: Decimal
    last_sold_at: datetime | None


class ProductAllocationOut(ApiModel):
    product_id: int
    shop_id: int
    quantity_on_hand: int
    assigned_quantity: int
    sold_quantity: int
    returned_quantity: int
    outstanding_quantity: int
    open_assignments: int


class ContractDueOut(ApiModel):
    contract_id: int
    customer_ref: str
    product_ref: str
    shop_id: int | None
    installment_number: int
    amount_due: Decimal
    next_payment_date: date
    days_until_due: int
    remaining_amount: Decimal
    status: ContractStatus


class ContractOverdueOut(ApiModel):
    contract_id: int
    customer_ref: str
    product_ref: str
    shop_id: int | None
    installment_number: int
    amount_due: Decimal
    next_payment_date: date
    days_overdue: int
    remaining_amount: Decimal


class ContractStatusStatsOut(ApiModel):
    status: ContractStatus
    count: int
    total_amount: Decimal
    financed_amount: Decimal
    outstanding_amount: Decimal


class AuditItemOut(ApiModel):
    event_type: str
    entity_type: str
    entity_id: int
    shop_id: int | None
    reference: str | None
    actor_id: int | None
    occurred_at: datetime
    summary: str
