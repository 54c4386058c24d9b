from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from retail_ledger.api.deps import (
    Actor,
    ActorRole,
    enforce_agent_scope,
    enforce_shop_scope,
    require_permission,
    resolve_effective_shop_id,
)
from retail_ledger.db.database import get_db
from retail_ledger.models.ledger import AgentAssignment, AssignmentStatus
from retail_ledger.schemas.ledger import (
    AssignmentOut,
    AssignRequest,
    AssignResponse,
    MovementOut,
    ReturnRequest,
    ReturnResponse,
    SellRequest,
    SellResponse,
)
from retail_ledger.services import ledger

router = APIRouter(prefix="/ledger", tags=["Ledger"])


def _scoped_assignment(db: Session, actor: Actor, assignment_id: int) -> AgentAssignment:
    assignment = ledger.get_assignment(db, assignment_id)
    enforce_shop_scope(actor, assignment.shop_id)
    enforce_agent_scope(actor, assignment.agent_id)
    return assignment


@router.post("/assign", response_model=AssignResponse, status_code=status.HTTP_201_CREATED)
def assign_stock(
    payload: AssignRequest,
    actor: Actor = Depends(require_permission("ledger:assign")),
    db: Session = Depends(get_db),
):
    pool = ledger.get_pool(db, payload.product_id)
    enforce_shop_scope(actor, pool.shop_id)
    result = ledger.assign(
        db,
        product_id=payload.product_id,
        agent_id=payload.agent_id,
        quantity=payload.quantity,
        assigned_by=actor.id,
    )
    return AssignResponse(
        assignment_id=result.assignment.id,
        remaining_quantity=result.assignment.remaining_quantity,
        status=result.assignment.status,
        pool_total_quantity=result.pool.quantity_on_hand,
        assignment=AssignmentOut.model_validate(result.assignment),
    )


@router.post("/sell", response_model=SellResponse)
def sell_from_assignment(
    payload: SellRequest,
    actor: Actor = Depends(require_permission("ledger:sell")),
    db: Session = Depends(get_db),
):
    _scoped_assignment(db, actor, payload.assignment_id)
    assignment = ledger.record_sale(
        db,
        assignment_id=payload.assignment_id,
        quantity=payload.quantity,
        actor_ref=actor.id,
    )
    return SellResponse(
        assignment_id=assignment.id,
        remaining_quantity=assignment.remaining_quantity,
        status=assignment.status,
        assignment=AssignmentOut.model_validate(assignment),
    )


@router.post("/return", response_model=ReturnResponse)
def return_to_stock(
    payload: ReturnRequest,
    actor: Actor = Depends(require_permission("ledger:return")),
    db: Session = Depends(get_db),
):
    _scoped_assignment(db, actor, payload.assignment_id)
    result = ledger.record_return(
        db,
        assignment_id=payload.assignment_id,
        quantity=payload.quantity,
        actor_ref=actor.id,
    )
    return ReturnResponse(
        assignment_id=result.assignment.id,
        remaining_quantity=result.assignment.remaining_quantity,
        pool_total_quantity=result.pool.quantity_on_hand,
        status=result.assignment.status,
        assignment=AssignmentOut.model_validate(result.assignment),
    )


@router.get("/assignments", response_model=list[AssignmentOut])
def list_assignments(
    shop_id: int | None = None,
    agent_id: int | None = None,
    product_id: int | None = None,
    status_filter: AssignmentStatus | None = Query(default=None, alias="status"),
    open_only: bool = False,
    actor: Actor = Depends(require_permission("ledger:view")),
    db: Session = Depends(get_db),
):
    effective_shop_id = resolve_effective_shop_id(actor, shop_id)
    if actor.role == ActorRole.AGENT:
        agent_id = actor.id
    return ledger.list_assignments(
        db,
        agent_id=agent_id,
        product_id=product_id,
        shop_id=effective_shop_id,
        status=status_filter,
        open_only=open_only,
    )


@router.get("/assignments/{assignment_id}", response_model=AssignmentOut)
def get_assignment(
    assignment_id: int,
    actor: Actor = Depends(require_permission("ledger:view")),
    db: Session = Depends(get_db),
):
    return _scoped_assignment(db, actor, assignment_id)


@router.get("/assignments/{assignment_id}/movements", response_model=list[MovementOut])
def list_assignment_movements(
    assignment_id: int,
    actor: Actor = Depends(require_permission("ledger:view")),
    db: Session = Depends(get_db),
):
    _scoped_assignment(db, actor, assignment_id)
    return ledger.list_movements(db, assignment_id)
