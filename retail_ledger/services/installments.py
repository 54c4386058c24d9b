import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from retail_ledger.core.clock import add_days, utcnow
from retail_ledger.core.clock import today as current_date
from retail_ledger.core.config import settings
from retail_ledger.core.errors import ContractAlreadySettled, ContractCancelled, InvalidTerms, NotFound
from retail_ledger.db.concurrency import lock_for_update, run_with_retry
from retail_ledger.models.installments import (
    ContractStatus,
    InstallmentContract,
    InstallmentPayment,
    PaymentMethod,
)
from retail_ledger.services import schedule

logger = logging.getLogger(__name__)

OPEN_STATUSES = (ContractStatus.ACTIVE, ContractStatus.OVERDUE)


@dataclass(frozen=True)
class InstallmentView:
    installment_number: int
    amount: Decimal
    due_date: date
    state: str
    paid_at: datetime | None
    payment_method: PaymentMethod | None


def terms_of(contract: InstallmentContract) -> schedule.ContractTerms:
    return schedule.make_terms(contract.total_amount, contract.down_payment, contract.duration_months)


def effective_status(contract: InstallmentContract, today: date | None = None) -> ContractStatus:
    """Status as of ``today``, derived from the schedule rather than read from the row."""
    return schedule.derive_status(
        paid_months=contract.paid_months,
        duration_months=contract.duration_months,
        remaining_amount=contract.remaining_amount,
        next_payment_date=contract.next_payment_date,
        today=today or current_date(),
        cancelled=contract.status == ContractStatus.CANCELLED,
    )


def _locked_contract(db: Session, contract_id: int) -> InstallmentContract:
    contract = db.scalar(lock_for_update(select(InstallmentContract).where(InstallmentContract.id == contract_id)))
    if not contract:
        raise NotFound(f"Contract {contract_id} not found")
    return contract


def get_contract(db: Session, contract_id: int) -> InstallmentContract:
    contract = db.get(InstallmentContract, contract_id)
    if not contract:
        raise NotFound(f"Contract {contract_id} not found")
    return contract


def list_contracts(
    db: Session,
    *,
    shop_id: int | None = None,
    customer_ref: str | None = None,
    status: ContractStatus | None = None,
    today: date | None = None,
) -> list[InstallmentContract]:
    query = select(InstallmentContract).order_by(InstallmentContract.created_at.desc(), InstallmentContract.id.desc())
    if shop_id is not None:
        query = query.where(InstallmentContract.shop_id == shop_id)
    if customer_ref is not None:
        query = query.where(InstallmentContract.customer_ref == customer_ref)
    contracts = list(db.scalars(query).all())
    if status is None:
        return contracts
    return [contract for contract in contracts if effective_status(contract, today) == status]


def create_contract(
    db: Session,
    *,
    total_amount,
    down_payment,
    duration_months: int,
    customer_ref: str,
    product_ref: str,
    shop_id: int | None = None,
    start_date: date | None = None,
    created_by: int | None = None,
    today: date | None = None,
) -> InstallmentContract:
    today = today or current_date()
    start = start_date or today
    if start < today:
        raise InvalidTerms("startDate must not be in the past")
    terms = schedule.make_terms(total_amount, down_payment, duration_months)
    plan = schedule.compute_schedule(terms, start)

    contract = InstallmentContract(
        customer_ref=customer_ref,
        product_ref=product_ref,
        shop_id=shop_id,
        created_by=created_by,
        total_amount=terms.total_amount,
        down_payment=terms.down_payment,
        duration_months=terms.duration_months,
        paid_months=0,
        monthly_payment=plan.monthly_payment,
        final_payment=plan.final_payment,
        remaining_amount=plan.remaining_amount,
        start_date=start,
        next_payment_date=plan.next_payment_date,
        end_date=plan.end_date,
        status=ContractStatus.ACTIVE,
    )
    if plan.remaining_amount <= 0:
        # nothing financed: the down payment settled the whole sale
        contract.status = ContractStatus.COMPLETED
        contract.completed_at = utcnow()
    db.add(contract)
    db.commit()
    db.refresh(contract)
    logger.info(
        "contract %d created: %s financed over %d months, monthly %s",
        contract.id,
        plan.financed_amount,
        terms.duration_months,
        plan.monthly_payment,
    )
    return contract


def apply_payment(
    db: Session,
    *,
    contract_id: int,
    recorded_by: int | None = None,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    note: str | None = None,
    today: date | None = None,
) -> tuple[InstallmentContract, InstallmentPayment]:
    def _pay() -> tuple[InstallmentContract, InstallmentPayment]:
        contract = _locked_contract(db, contract_id)
        if contract.status == ContractStatus.CANCELLED:
            raise ContractCancelled(f"Contract {contract_id} is cancelled")
        if (
            contract.status == ContractStatus.COMPLETED
            or contract.paid_months >= contract.duration_months
            or contract.remaining_amount <= 0
        ):
            raise ContractAlreadySettled(f"Contract {contract_id} is already settled")

        terms = terms_of(contract)
        number = contract.paid_months + 1
        payment = InstallmentPayment(
            contract_id=contract.id,
            installment_number=number,
            amount=schedule.installment_amount(terms, contract.monthly_payment, number),
            due_date=contract.next_payment_date or schedule.due_date(contract.start_date, number),
            recorded_by=recorded_by,
            payment_method=payment_method,
            note=note.strip() if note else None,
        )
        contract.paid_months = number
        contract.remaining_amount = schedule.remaining_after(terms, contract.monthly_payment, number)
        contract.next_payment_date = schedule.next_payment_date(
            terms,
            contract.start_date,
            number,
            contract.remaining_amount,
        )
        contract.status = effective_status(contract, today)
        if contract.status == ContractStatus.COMPLETED:
            contract.completed_at = utcnow()
        # version check first, so a lost race surfaces as StaleDataError rather than a duplicate installment
        db.flush()
        db.add(payment)
        db.commit()
        db.refresh(contract)
        db.refresh(payment)
        return contract, payment

    contract, payment = run_with_retry(db, _pay)
    logger.info(
        "contract %d installment %d paid (%s), remaining %s, %s",
        contract.id,
        payment.installment_number,
        payment.amount,
        contract.remaining_amount,
        contract.status.value,
    )
    return contract, payment


def cancel(
    db: Session,
    *,
    contract_id: int,
    reason: str,
    cancelled_by: int | None = None,
) -> InstallmentContract:
    def _cancel() -> InstallmentContract:
        contract = _locked_contract(db, contract_id)
        if contract.status == ContractStatus.CANCELLED:
            raise ContractCancelled(f"Contract {contract_id} is already cancelled")
        if contract.status == ContractStatus.COMPLETED:
            raise ContractAlreadySettled(f"Contract {contract_id} is fully paid and cannot be cancelled")
        contract.status = ContractStatus.CANCELLED
        contract.cancel_reason = reason
        contract.cancelled_by = cancelled_by
        contract.cancelled_at = utcnow()
        contract.next_payment_date = None
        db.commit()
        db.refresh(contract)
        return contract

    contract = run_with_retry(db, _cancel)
    logger.info("contract %d cancelled: %s", contract.id, reason)
    return contract


def list_installments(db: Session, contract_id: int, today: date | None = None) -> list[InstallmentView]:
    contract = get_contract(db, contract_id)
    today = today or current_date()
    terms = terms_of(contract)
    payments = {
        payment.installment_number: payment
        for payment in db.scalars(
            select(InstallmentPayment).where(InstallmentPayment.contract_id == contract_id)
        ).all()
    }
    views: list[InstallmentView] = []
    for item in schedule.build_installments(terms, contract.monthly_payment, contract.start_date):
        payment = payments.get(item.number)
        if payment is not None:
            state = "paid"
        elif contract.status == ContractStatus.CANCELLED:
            state = "cancelled"
        elif item.amount > 0 and item.due_date < today:
            state = "overdue"
        else:
            state = "pending"
        views.append(
            InstallmentView(
                installment_number=item.number,
                amount=payment.amount if payment is not None else item.amount,
                due_date=payment.due_date if payment is not None else item.due_date,
                state=state,
                paid_at=payment.paid_at if payment is not None else None,
                payment_method=payment.payment_method if payment is not None else None,
            )
        )
    return views


def refresh_overdue(db: Session, today: date | None = None) -> int:
    """Persist the overdue/active status derived from each open contract's due date."""
    today = today or current_date()
    grace_cutoff = add_days(today, -settings.overdue_grace_days)
    became_overdue = db.execute(
        update(InstallmentContract)
        .where(
            InstallmentContract.status == ContractStatus.ACTIVE,
            InstallmentContract.next_payment_date.is_not(None),
            InstallmentContract.next_payment_date < grace_cutoff,
        )
        .values(status=ContractStatus.OVERDUE, version=InstallmentContract.version + 1)
    ).rowcount
    caught_up = db.execute(
        update(InstallmentContract)
        .where(
            InstallmentContract.status == ContractStatus.OVERDUE,
            InstallmentContract.next_payment_date >= grace_cutoff,
        )
        .values(status=ContractStatus.ACTIVE, version=InstallmentContract.version + 1)
    ).rowcount
    db.commit()
    if became_overdue or caught_up:
        logger.info("overdue sweep: %d now overdue, %d back to active", became_overdue, caught_up)
    return became_overdue
