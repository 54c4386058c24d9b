"""
Agent stock assignment ledger.

The stock pool of a product counts the units sitting on the shop shelf.
Assigning moves units from the shelf to an agent, a sale takes them out of
the agent's hands for good, and a return puts them back on the shelf. Every
mutation is one read-validate-write-commit unit; the pool and assignment
rows are version-checked so a concurrent writer loses with StaleDataError
and is retried against the committed state.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from retail_ledger.core.clock import utcnow
from retail_ledger.core.errors import InsufficientStock, InvalidQuantity, NotFound, OverReturn, OverSale
from retail_ledger.db.concurrency import lock_for_update, run_with_retry
from retail_ledger.models.ledger import (
    AgentAssignment,
    AssignmentMovement,
    AssignmentStatus,
    MovementKind,
    StockAdjustment,
    StockPool,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerResult:
    assignment: AgentAssignment
    pool: StockPool


def derive_assignment_status(*, sold: int, returned: int, remaining: int) -> AssignmentStatus:
    if remaining == 0 and returned == 0:
        return AssignmentStatus.SOLD_OUT
    if remaining == 0 and sold == 0:
        return AssignmentStatus.RETURNED
    if returned > 0:
        return AssignmentStatus.PARTIALLY_RETURNED
    return AssignmentStatus.ASSIGNED


def _require_positive(quantity: int) -> None:
    if quantity is None or int(quantity) <= 0:
        raise InvalidQuantity("quantity must be greater than zero")


def _locked_pool(db: Session, product_id: int) -> StockPool:
    pool = db.scalar(lock_for_update(select(StockPool).where(StockPool.product_id == product_id)))
    if not pool:
        raise NotFound(f"Stock pool for product {product_id} not found")
    return pool


def _locked_assignment(db: Session, assignment_id: int) -> AgentAssignment:
    assignment = db.scalar(lock_for_update(select(AgentAssignment).where(AgentAssignment.id == assignment_id)))
    if not assignment:
        raise NotFound(f"Assignment {assignment_id} not found")
    return assignment


def get_pool(db: Session, product_id: int) -> StockPool:
    pool = db.scalar(select(StockPool).where(StockPool.product_id == product_id))
    if not pool:
        raise NotFound(f"Stock pool for product {product_id} not found")
    return pool


def get_assignment(db: Session, assignment_id: int) -> AgentAssignment:
    assignment = db.get(AgentAssignment, assignment_id)
    if not assignment:
        raise NotFound(f"Assignment {assignment_id} not found")
    return assignment


def list_assignments(
    db: Session,
    *,
    agent_id: int | None = None,
    product_id: int | None = None,
    shop_id: int | None = None,
    status: AssignmentStatus | None = None,
    open_only: bool = False,
) -> list[AgentAssignment]:
    query = select(AgentAssignment).order_by(AgentAssignment.created_at.desc(), AgentAssignment.id.desc())
    if agent_id is not None:
        query = query.where(AgentAssignment.agent_id == agent_id)
    if product_id is not None:
        query = query.where(AgentAssignment.product_id == product_id)
    if shop_id is not None:
        query = query.where(AgentAssignment.shop_id == shop_id)
    if status is not None:
        query = query.where(AgentAssignment.status == status)
    if open_only:
        query = query.where(AgentAssignment.remaining_quantity > 0)
    return list(db.scalars(query).all())


def list_movements(db: Session, assignment_id: int) -> list[AssignmentMovement]:
    get_assignment(db, assignment_id)
    return list(
        db.scalars(
            select(AssignmentMovement)
            .where(AssignmentMovement.assignment_id == assignment_id)
            .order_by(AssignmentMovement.created_at.asc(), AssignmentMovement.id.asc())
        ).all()
    )


def assign(
    db: Session,
    *,
    product_id: int,
    agent_id: int,
    quantity: int,
    assigned_by: int | None = None,
) -> LedgerResult:
    _require_positive(quantity)

    def _assign() -> LedgerResult:
        pool = _locked_pool(db, product_id)
        if quantity > pool.quantity_on_hand:
            raise InsufficientStock(
                f"Only {pool.quantity_on_hand} unassigned units of product {product_id} are available"
            )
        pool.quantity_on_hand -= quantity
        assignment = AgentAssignment(
            product_id=product_id,
            shop_id=pool.shop_id,
            agent_id=agent_id,
            assigned_by=assigned_by,
            assigned_quantity=quantity,
            sold_quantity=0,
            returned_quantity=0,
            remaining_quantity=quantity,
            status=AssignmentStatus.ASSIGNED,
        )
        db.add(assignment)
        db.commit()
        db.refresh(assignment)
        db.refresh(pool)
        return LedgerResult(assignment=assignment, pool=pool)

    result = run_with_retry(db, _assign)
    logger.info(
        "assigned %d x product %d to agent %d (assignment %d, shelf now %d)",
        quantity,
        product_id,
        agent_id,
        result.assignment.id,
        result.pool.quantity_on_hand,
    )
    return result


def record_sale(db: Session, *, assignment_id: int, quantity: int, actor_ref: int | None = None) -> AgentAssignment:
    _require_positive(quantity)

    def _sell() -> AgentAssignment:
        assignment = _locked_assignment(db, assignment_id)
        if assignment.is_closed:
            raise OverSale(f"Assignment {assignment_id} is closed ({assignment.status.value})")
        if quantity > assignment.remaining_quantity:
            raise OverSale(f"Sale quantity exceeds remaining quantity ({assignment.remaining_quantity})")

        now = utcnow()
        assignment.sold_quantity += quantity
        assignment.remaining_quantity -= quantity
        assignment.last_sold_at = now
        assignment.status = derive_assignment_status(
            sold=assignment.sold_quantity,
            returned=assignment.returned_quantity,
            remaining=assignment.remaining_quantity,
        )
        db.add(
            AssignmentMovement(
                assignment_id=assignment.id,
                kind=MovementKind.SALE,
                quantity=quantity,
                remaining_after=assignment.remaining_quantity,
                actor_ref=actor_ref,
                created_at=now,
            )
        )
        db.commit()
        db.refresh(assignment)
        return assignment

    assignment = run_with_retry(db, _sell)
    logger.info(
        "sold %d from assignment %d (remaining %d, %s)",
        quantity,
        assignment.id,
        assignment.remaining_quantity,
        assignment.status.value,
    )
    return assignment


def record_return(db: Session, *, assignment_id: int, quantity: int, actor_ref: int | None = None) -> LedgerResult:
    _require_positive(quantity)

    def _return() -> LedgerResult:
        assignment = _locked_assignment(db, assignment_id)
        if assignment.is_closed:
            raise OverReturn(f"Assignment {assignment_id} is closed ({assignment.status.value})")
        if quantity > assignment.remaining_quantity:
            raise OverReturn(f"Return quantity exceeds remaining quantity ({assignment.remaining_quantity})")
        pool = _locked_pool(db, assignment.product_id)

        now = utcnow()
        assignment.returned_quantity += quantity
        assignment.remaining_quantity -= quantity
        assignment.last_returned_at = now
        assignment.status = derive_assignment_status(
            sold=assignment.sold_quantity,
            returned=assignment.returned_quantity,
            remaining=assignment.remaining_quantity,
        )
        pool.quantity_on_hand += quantity
        db.add(
            AssignmentMovement(
                assignment_id=assignment.id,
                kind=MovementKind.RETURN,
                quantity=quantity,
                remaining_after=assignment.remaining_quantity,
                actor_ref=actor_ref,
                created_at=now,
            )
        )
        db.commit()
        db.refresh(assignment)
        db.refresh(pool)
        return LedgerResult(assignment=assignment, pool=pool)

    result = run_with_retry(db, _return)
    logger.info(
        "returned %d to shelf from assignment %d (remaining %d, shelf now %d)",
        quantity,
        result.assignment.id,
        result.assignment.remaining_quantity,
        result.pool.quantity_on_hand,
    )
    return result


def upsert_pool(
    db: Session,
    *,
    product_id: int,
    shop_id: int,
    quantity_on_hand: int,
    adjusted_by: int | None = None,
    reason: str | None = None,
) -> StockPool:
    if quantity_on_hand < 0:
        raise InvalidQuantity("quantityOnHand must not be negative")

    def _upsert() -> StockPool:
        pool = db.scalar(lock_for_update(select(StockPool).where(StockPool.product_id == product_id)))
        if pool is None:
            pool = StockPool(product_id=product_id, shop_id=shop_id, quantity_on_hand=0)
            db.add(pool)
            db.flush()
        elif pool.shop_id != shop_id:
            raise NotFound(f"Product {product_id} has no stock pool in shop {shop_id}")
        before = pool.quantity_on_hand
        pool.quantity_on_hand = quantity_on_hand
        if before != quantity_on_hand:
            db.add(
                StockAdjustment(
                    pool_id=pool.id,
                    shop_id=pool.shop_id,
                    product_id=pool.product_id,
                    adjusted_by=adjusted_by,
                    quantity_before=before,
                    quantity_after=quantity_on_hand,
                    quantity_delta=quantity_on_hand - before,
                    reason=reason.strip() if reason else None,
                )
            )
        db.commit()
        db.refresh(pool)
        return pool

    pool = run_with_retry(db, _upsert)
    logger.info("stock pool for product %d set to %d", product_id, pool.quantity_on_hand)
    return pool


def adjust_pool(
    db: Session,
    *,
    product_id: int,
    quantity_delta: int,
    adjusted_by: int | None = None,
    reason: str | None = None,
) -> StockPool:
    if quantity_delta == 0:
        raise InvalidQuantity("quantityDelta must not be zero")

    def _adjust() -> StockPool:
        pool = _locked_pool(db, product_id)
        before = pool.quantity_on_hand
        after = before + quantity_delta
        if after < 0:
            raise InsufficientStock(f"Adjustment would make stock negative (on hand {before})")
        pool.quantity_on_hand = after
        db.add(
            StockAdjustment(
                pool_id=pool.id,
                shop_id=pool.shop_id,
                product_id=pool.product_id,
                adjusted_by=adjusted_by,
                quantity_before=before,
                quantity_after=after,
                quantity_delta=quantity_delta,
                reason=reason.strip() if reason else None,
            )
        )
        db.commit()
        db.refresh(pool)
        return pool

    pool = run_with_retry(db, _adjust)
    logger.info("stock pool for product %d adjusted by %+d to %d", product_id, quantity_delta, pool.quantity_on_hand)
    return pool


def list_adjustments(db: Session, *, product_id: int) -> list[StockAdjustment]:
    return list(
        db.scalars(
            select(StockAdjustment)
            .where(StockAdjustment.product_id == product_id)
            .order_by(StockAdjustment.adjusted_at.desc(), StockAdjustment.id.desc())
        ).all()
    )
