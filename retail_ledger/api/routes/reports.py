from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from retail_ledger.api.deps import Actor, require_permission, resolve_effective_shop_id
from retail_ledger.db.database import get_db
from retail_ledger.schemas.reports import (
    AgentOutstandingOut,
    AgentStatsOut,
    AuditItemOut,
    ContractDueOut,
    ContractOverdueOut,
    ContractStatusStatsOut,
    ProductAllocationOut,
)
from retail_ledger.services import reporting

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/agents/outstanding", response_model=list[AgentOutstandingOut])
def agents_outstanding(
    shop_id: int | None = None,
    agent_id: int | None = None,
    actor: Actor = Depends(require_permission("reports:view")),
    db: Session = Depends(get_db),
):
    return reporting.agents_outstanding(
        db,
        shop_id=resolve_effective_shop_id(actor, shop_id),
        agent_id=agent_id,
    )


@router.get("/agents/{agent_id}/stats", response_model=AgentStatsOut)
def agent_stats(
    agent_id: int,
    shop_id: int | None = None,
    actor: Actor = Depends(require_permission("reports:view")),
    db: Session = Depends(get_db),
):
    return reporting.agent_stats(db, agent_id, shop_id=resolve_effective_shop_id(actor, shop_id))


@router.get("/products/allocations", response_model=list[ProductAllocationOut])
def product_allocations(
    shop_id: int | None = None,
    product_id: int | None = None,
    actor: Actor = Depends(require_permission("reports:view")),
    db: Session = Depends(get_db),
):
    return reporting.product_allocations(
        db,
        shop_id=resolve_effective_shop_id(actor, shop_id),
        product_id=product_id,
    )


@router.get("/contracts/due", response_model=list[ContractDueOut])
def contracts_due(
    shop_id: int | None = None,
    within_days: int | None = Query(default=None, ge=0, le=365),
    actor: Actor = Depends(require_permission("reports:view")),
    db: Session = Depends(get_db),
):
    return reporting.contracts_due(
        db,
        within_days=within_days,
        shop_id=resolve_effective_shop_id(actor, shop_id),
    )


@router.get("/contracts/overdue", response_model=list[ContractOverdueOut])
def contracts_overdue(
    shop_id: int | None = None,
    actor: Actor = Depends(require_permission("reports:view")),
    db: Session = Depends(get_db),
):
    return reporting.contracts_overdue(db, shop_id=resolve_effective_shop_id(actor, shop_id))


@router.get("/contracts/stats", response_model=list[ContractStatusStatsOut])
def contract_stats(
    shop_id: int | None = None,
    actor: Actor = Depends(require_permission("reports:view")),
    db: Session = Depends(get_db),
):
    return reporting.contract_stats(db, shop_id=resolve_effective_shop_id(actor, shop_id))


@router.get("/audit/timeline", response_model=list[AuditItemOut])
def audit_timeline(
    shop_id: int | None = None,
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    actor: Actor = Depends(require_permission("reports:view")),
    db: Session = Depends(get_db),
):
    return reporting.audit_timeline(
        db,
        shop_id=resolve_effective_shop_id(actor, shop_id),
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )
