"""Read-only aggregates over the ledger and contract tables, computed per request."""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from retail_ledger.core.clock import add_days
from retail_ledger.core.clock import today as current_date
from retail_ledger.core.config import settings
from retail_ledger.core.money import quantize_money
from retail_ledger.models.installments import ContractStatus, InstallmentContract, InstallmentPayment
from retail_ledger.models.ledger import AgentAssignment, AssignmentMovement, MovementKind, StockAdjustment, StockPool
from retail_ledger.schemas.ledger import AssignmentOut
from retail_ledger.schemas.reports import (
    AgentOutstandingOut,
    AgentStatsOut,
    AuditItemOut,
    ContractDueOut,
    ContractOverdueOut,
    ContractStatusStatsOut,
    ProductAllocationOut,
)
from retail_ledger.services import schedule
from retail_ledger.services.installments import OPEN_STATUSES, effective_status, terms_of


def _open_contracts(db: Session, shop_id: int | None) -> list[InstallmentContract]:
    query = (
        select(InstallmentContract)
        .where(
            InstallmentContract.status.in_(OPEN_STATUSES),
            InstallmentContract.next_payment_date.is_not(None),
        )
        .order_by(InstallmentContract.next_payment_date.asc(), InstallmentContract.id.asc())
    )
    if shop_id is not None:
        query = query.where(InstallmentContract.shop_id == shop_id)
    return list(db.scalars(query).all())


def _next_amount_due(contract: InstallmentContract) -> Decimal:
    return schedule.installment_amount(terms_of(contract), contract.monthly_payment, contract.paid_months + 1)


def agents_outstanding(
    db: Session,
    *,
    shop_id: int | None = None,
    agent_id: int | None = None,
) -> list[AgentOutstandingOut]:
    query = (
        select(AgentAssignment)
        .where(AgentAssignment.remaining_quantity > 0)
        .order_by(AgentAssignment.agent_id.asc(), AgentAssignment.created_at.asc(), AgentAssignment.id.asc())
    )
    if shop_id is not None:
        query = query.where(AgentAssignment.shop_id == shop_id)
    if agent_id is not None:
        query = query.where(AgentAssignment.agent_id == agent_id)

    grouped: dict[int, list[AgentAssignment]] = defaultdict(list)
    for row in db.scalars(query).all():
        grouped[row.agent_id].append(row)

    return [
        AgentOutstandingOut(
            agent_id=agent,
            open_assignments=len(rows),
            outstanding_quantity=sum(row.remaining_quantity for row in rows),
            assignments=[AssignmentOut.model_validate(row) for row in rows],
        )
        for agent, rows in grouped.items()
    ]


def agent_stats(db: Session, agent_id: int, *, shop_id: int | None = None) -> AgentStatsOut:
    query = select(
        func.count(AgentAssignment.id),
        func.coalesce(func.sum(AgentAssignment.assigned_quantity), 0),
        func.coalesce(func.sum(AgentAssignment.sold_quantity), 0),
        func.coalesce(func.sum(AgentAssignment.returned_quantity), 0),
        func.coalesce(func.sum(AgentAssignment.remaining_quantity), 0),
        func.max(AgentAssignment.last_sold_at),
    ).where(AgentAssignment.agent_id == agent_id)
    open_query = select(func.count(AgentAssignment.id)).where(
        AgentAssignment.agent_id == agent_id,
        AgentAssignment.remaining_quantity > 0,
    )
    if shop_id is not None:
        query = query.where(AgentAssignment.shop_id == shop_id)
        open_query = open_query.where(AgentAssignment.shop_id == shop_id)

    count, assigned, sold, returned, remaining, last_sold_at = db.execute(query).one()
    rate = quantize_money(Decimal(int(sold)) * 100 / Decimal(int(assigned))) if assigned else Decimal("0.00")
    return AgentStatsOut(
        agent_id=agent_id,
        assignment_count=int(count),
        open_assignments=int(db.scalar(open_query) or 0),
        total_assigned=int(assigned),
        total_sold=int(sold),
        total_returned=int(returned),
        total_remaining=int(remaining),
        sell_through_rate=rate,
        last_sold_at=last_sold_at,
    )


def product_allocations(
    db: Session,
    *,
    shop_id: int | None = None,
    product_id: int | None = None,
) -> list[ProductAllocationOut]:
    pools_query = select(StockPool).order_by(StockPool.product_id.asc())
    totals_query = select(
        AgentAssignment.product_id,
        func.coalesce(func.sum(AgentAssignment.assigned_quantity), 0),
        func.coalesce(func.sum(AgentAssignment.sold_quantity), 0),
        func.coalesce(func.sum(AgentAssignment.returned_quantity), 0),
        func.coalesce(func.sum(AgentAssignment.remaining_quantity), 0),
        func.count(AgentAssignment.id).filter(AgentAssignment.remaining_quantity > 0),
    ).group_by(AgentAssignment.product_id)
    if shop_id is not None:
        pools_query = pools_query.where(StockPool.shop_id == shop_id)
        totals_query = totals_query.where(AgentAssignment.shop_id == shop_id)
    if product_id is not None:
        pools_query = pools_query.where(StockPool.product_id == product_id)
        totals_query = totals_query.where(AgentAssignment.product_id == product_id)

    totals = {row[0]: row[1:] for row in db.execute(totals_query).all()}
    items: list[ProductAllocationOut] = []
    for pool in db.scalars(pools_query).all():
        assigned, sold, returned, outstanding, open_count = totals.get(pool.product_id, (0, 0, 0, 0, 0))
        items.append(
            ProductAllocationOut(
                product_id=pool.product_id,
                shop_id=pool.shop_id,
                quantity_on_hand=pool.quantity_on_hand,
                assigned_quantity=int(assigned),
                sold_quantity=int(sold),
                returned_quantity=int(returned),
                outstanding_quantity=int(outstanding),
                open_assignments=int(open_count),
            )
        )
    return items


def contracts_due(
    db: Session,
    *,
    within_days: int | None = None,
    shop_id: int | None = None,
    today: date | None = None,
) -> list[ContractDueOut]:
    today = today or current_date()
    horizon = add_days(today, settings.due_soon_days if within_days is None else within_days)
    items: list[ContractDueOut] = []
    for contract in _open_contracts(db, shop_id):
        if not today <= contract.next_payment_date <= horizon:
            continue
        items.append(
            ContractDueOut(
                contract_id=contract.id,
                customer_ref=contract.customer_ref,
                product_ref=contract.product_ref,
                shop_id=contract.shop_id,
                installment_number=contract.paid_months + 1,
                amount_due=_next_amount_due(contract),
                next_payment_date=contract.next_payment_date,
                days_until_due=(contract.next_payment_date - today).days,
                remaining_amount=contract.remaining_amount,
                status=effective_status(contract, today),
            )
        )
    return items


def contracts_overdue(
    db: Session,
    *,
    shop_id: int | None = None,
    today: date | None = None,
) -> list[ContractOverdueOut]:
    today = today or current_date()
    items: list[ContractOverdueOut] = []
    for contract in _open_contracts(db, shop_id):
        if effective_status(contract, today) != ContractStatus.OVERDUE:
            continue
        items.append(
            ContractOverdueOut(
                contract_id=contract.id,
                customer_ref=contract.customer_ref,
                product_ref=contract.product_ref,
                shop_id=contract.shop_id,
                installment_number=contract.paid_months + 1,
                amount_due=_next_amount_due(contract),
                next_payment_date=contract.next_payment_date,
                days_overdue=(today - contract.next_payment_date).days,
                remaining_amount=contract.remaining_amount,
            )
        )
    return items


def contract_stats(
    db: Session,
    *,
    shop_id: int | None = None,
    today: date | None = None,
) -> list[ContractStatusStatsOut]:
    query = select(InstallmentContract)
    if shop_id is not None:
        query = query.where(InstallmentContract.shop_id == shop_id)

    buckets = {
        status: {"count": 0, "total": Decimal("0"), "financed": Decimal("0"), "outstanding": Decimal("0")}
        for status in ContractStatus
    }
    for contract in db.scalars(query).all():
        bucket = buckets[effective_status(contract, today)]
        bucket["count"] += 1
        bucket["total"] += Decimal(contract.total_amount)
        bucket["financed"] += contract.financed_amount
        if contract.status != ContractStatus.CANCELLED:
            bucket["outstanding"] += Decimal(contract.remaining_amount)

    return [
        ContractStatusStatsOut(
            status=status,
            count=bucket["count"],
            total_amount=quantize_money(bucket["total"]),
            financed_amount=quantize_money(bucket["financed"]),
            outstanding_amount=quantize_money(bucket["outstanding"]),
        )
        for status, bucket in buckets.items()
    ]


def audit_timeline(
    db: Session,
    *,
    shop_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 200,
) -> list[AuditItemOut]:
    items: list[AuditItemOut] = []

    assignments_query = select(AgentAssignment)
    movements_query = select(AssignmentMovement, AgentAssignment).join(
        AgentAssignment, AgentAssignment.id == AssignmentMovement.assignment_id
    )
    adjustments_query = select(StockAdjustment)
    contracts_query = select(InstallmentContract)
    payments_query = select(InstallmentPayment, InstallmentContract).join(
        InstallmentContract, InstallmentContract.id == InstallmentPayment.contract_id
    )
    cancellations_query = select(InstallmentContract).where(InstallmentContract.cancelled_at.is_not(None))
    if shop_id is not None:
        assignments_query = assignments_query.where(AgentAssignment.shop_id == shop_id)
        movements_query = movements_query.where(AgentAssignment.shop_id == shop_id)
        adjustments_query = adjustments_query.where(StockAdjustment.shop_id == shop_id)
        contracts_query = contracts_query.where(InstallmentContract.shop_id == shop_id)
        payments_query = payments_query.where(InstallmentContract.shop_id == shop_id)
        cancellations_query = cancellations_query.where(InstallmentContract.shop_id == shop_id)
    if date_from is not None:
        assignments_query = assignments_query.where(AgentAssignment.created_at >= date_from)
        movements_query = movements_query.where(AssignmentMovement.created_at >= date_from)
        adjustments_query = adjustments_query.where(StockAdjustment.adjusted_at >= date_from)
        contracts_query = contracts_query.where(InstallmentContract.created_at >= date_from)
        payments_query = payments_query.where(InstallmentPayment.paid_at >= date_from)
        cancellations_query = cancellations_query.where(InstallmentContract.cancelled_at >= date_from)
    if date_to is not None:
        assignments_query = assignments_query.where(AgentAssignment.created_at <= date_to)
        movements_query = movements_query.where(AssignmentMovement.created_at <= date_to)
        adjustments_query = adjustments_query.where(StockAdjustment.adjusted_at <= date_to)
        contracts_query = contracts_query.where(InstallmentContract.created_at <= date_to)
        payments_query = payments_query.where(InstallmentPayment.paid_at <= date_to)
        cancellations_query = cancellations_query.where(InstallmentContract.cancelled_at <= date_to)

    for row in db.scalars(assignments_query.order_by(AgentAssignment.created_at.desc()).limit(limit)).all():
        items.append(
            AuditItemOut(
                event_type="assignment.created",
                entity_type="assignment",
                entity_id=row.id,
                shop_id=row.shop_id,
                reference=f"product:{row.product_id}",
                actor_id=row.assigned_by,
                occurred_at=row.created_at,
                summary=f"Assigned qty={row.assigned_quantity} to agent {row.agent_id}",
            )
        )
    for movement, assignment in db.execute(
        movements_query.order_by(AssignmentMovement.created_at.desc()).limit(limit)
    ).all():
        sold = movement.kind == MovementKind.SALE
        items.append(
            AuditItemOut(
                event_type="assignment.sold" if sold else "assignment.returned",
                entity_type="assignment",
                entity_id=assignment.id,
                shop_id=assignment.shop_id,
                reference=f"product:{assignment.product_id}",
                actor_id=movement.actor_ref,
                occurred_at=movement.created_at,
                summary=f"{'Sold' if sold else 'Returned'} qty={movement.quantity} remaining={movement.remaining_after}",
            )
        )
    for row in db.scalars(adjustments_query.order_by(StockAdjustment.adjusted_at.desc()).limit(limit)).all():
        items.append(
            AuditItemOut(
                event_type="stock.adjusted",
                entity_type="stock_adjustment",
                entity_id=row.id,
                shop_id=row.shop_id,
                reference=f"product:{row.product_id}",
                actor_id=row.adjusted_by,
                occurred_at=row.adjusted_at,
                summary=f"Delta={row.quantity_delta} {row.quantity_before}->{row.quantity_after}",
            )
        )
    for row in db.scalars(contracts_query.order_by(InstallmentContract.created_at.desc()).limit(limit)).all():
        items.append(
            AuditItemOut(
                event_type="contract.created",
                entity_type="contract",
                entity_id=row.id,
                shop_id=row.shop_id,
                reference=f"customer:{row.customer_ref}",
                actor_id=row.created_by,
                occurred_at=row.created_at,
                summary=f"Total={row.total_amount} down={row.down_payment} months={row.duration_months}",
            )
        )
    for payment, contract in db.execute(
        payments_query.order_by(InstallmentPayment.paid_at.desc()).limit(limit)
    ).all():
        items.append(
            AuditItemOut(
                event_type="contract.payment",
                entity_type="installment_payment",
                entity_id=payment.id,
                shop_id=contract.shop_id,
                reference=f"contract:{contract.id}",
                actor_id=payment.recorded_by,
                occurred_at=payment.paid_at,
                summary=f"Installment {payment.installment_number} amount={payment.amount}",
            )
        )
    for row in db.scalars(cancellations_query.order_by(InstallmentContract.cancelled_at.desc()).limit(limit)).all():
        items.append(
            AuditItemOut(
                event_type="contract.cancelled",
                entity_type="contract",
                entity_id=row.id,
                shop_id=row.shop_id,
                reference=f"customer:{row.customer_ref}",
                actor_id=row.cancelled_by,
                occurred_at=row.cancelled_at,
                summary=f"Cancelled: {row.cancel_reason}",
            )
        )

    items.sort(key=lambda item: item.occurred_at, reverse=True)
    return items[:limit]
