from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from retail_ledger.api.deps import Actor, enforce_shop_scope, require_permission, resolve_effective_shop_id
from retail_ledger.db.database import get_db
from retail_ledger.models.installments import ContractStatus, InstallmentContract
from retail_ledger.schemas.installments import (
    CancelRequest,
    CancelResponse,
    ContractCreateRequest,
    ContractCreateResponse,
    ContractOut,
    InstallmentOut,
    PaymentOut,
    PaymentRequest,
    PaymentResponse,
)
from retail_ledger.services import installments

router = APIRouter(prefix="/contracts", tags=["Installments"])


def _contract_out(contract: InstallmentContract) -> ContractOut:
    out = ContractOut.model_validate(contract)
    # stored status lags behind the calendar until the overdue sweep runs
    return out.model_copy(update={"status": installments.effective_status(contract)})


def _scoped_contract(db: Session, actor: Actor, contract_id: int) -> InstallmentContract:
    contract = installments.get_contract(db, contract_id)
    enforce_shop_scope(actor, contract.shop_id)
    return contract


@router.post("", response_model=ContractCreateResponse, status_code=status.HTTP_201_CREATED)
def create_contract(
    payload: ContractCreateRequest,
    actor: Actor = Depends(require_permission("contracts:manage")),
    db: Session = Depends(get_db),
):
    shop_id = payload.shop_id if actor.is_admin else actor.shop_id
    enforce_shop_scope(actor, payload.shop_id)
    contract = installments.create_contract(
        db,
        total_amount=payload.total_amount,
        down_payment=payload.down_payment,
        duration_months=payload.duration_months,
        customer_ref=payload.customer_ref,
        product_ref=payload.product_ref,
        shop_id=shop_id,
        start_date=payload.start_date,
        created_by=actor.id,
    )
    return ContractCreateResponse(
        contract_id=contract.id,
        monthly_payment=contract.monthly_payment,
        remaining_amount=contract.remaining_amount,
        next_payment_date=contract.next_payment_date,
        contract=_contract_out(contract),
    )


@router.get("", response_model=list[ContractOut])
def list_contracts(
    shop_id: int | None = None,
    customer_ref: str | None = None,
    status_filter: ContractStatus | None = Query(default=None, alias="status"),
    actor: Actor = Depends(require_permission("contracts:view")),
    db: Session = Depends(get_db),
):
    contracts = installments.list_contracts(
        db,
        shop_id=resolve_effective_shop_id(actor, shop_id),
        customer_ref=customer_ref,
        status=status_filter,
    )
    return [_contract_out(contract) for contract in contracts]


@router.get("/{contract_id}", response_model=ContractOut)
def get_contract(
    contract_id: int,
    actor: Actor = Depends(require_permission("contracts:view")),
    db: Session = Depends(get_db),
):
    return _contract_out(_scoped_contract(db, actor, contract_id))


@router.get("/{contract_id}/installments", response_model=list[InstallmentOut])
def list_contract_installments(
    contract_id: int,
    actor: Actor = Depends(require_permission("contracts:view")),
    db: Session = Depends(get_db),
):
    _scoped_contract(db, actor, contract_id)
    return [InstallmentOut.model_validate(item) for item in installments.list_installments(db, contract_id)]


@router.post("/{contract_id}/payments", response_model=PaymentResponse)
def record_payment(
    contract_id: int,
    payload: PaymentRequest | None = None,
    actor: Actor = Depends(require_permission("contracts:collect")),
    db: Session = Depends(get_db),
):
    payload = payload or PaymentRequest()
    _scoped_contract(db, actor, contract_id)
    contract, payment = installments.apply_payment(
        db,
        contract_id=contract_id,
        recorded_by=actor.id,
        payment_method=payload.payment_method,
        note=payload.note,
    )
    return PaymentResponse(
        contract_id=contract.id,
        paid_months=contract.paid_months,
        remaining_amount=contract.remaining_amount,
        next_payment_date=contract.next_payment_date,
        status=contract.status,
        payment=PaymentOut.model_validate(payment),
    )


@router.post("/{contract_id}/cancel", response_model=CancelResponse)
def cancel_contract(
    contract_id: int,
    payload: CancelRequest,
    actor: Actor = Depends(require_permission("contracts:manage")),
    db: Session = Depends(get_db),
):
    _scoped_contract(db, actor, contract_id)
    contract = installments.cancel(db, contract_id=contract_id, reason=payload.reason, cancelled_by=actor.id)
    return CancelResponse(
        contract_id=contract.id,
        status=contract.status,
        cancel_reason=contract.cancel_reason,
        cancelled_at=contract.cancelled_at,
    )
