from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from retail_ledger.api.deps import Actor, enforce_shop_scope, require_permission
from retail_ledger.db.database import get_db
from retail_ledger.schemas.ledger import (
    StockAdjustmentOut,
    StockPoolAdjustRequest,
    StockPoolOut,
    StockPoolUpsertRequest,
)
from retail_ledger.services import ledger

router = APIRouter(prefix="/stock-pools", tags=["Stock"])


@router.put("", response_model=StockPoolOut)
def upsert_stock_pool(
    payload: StockPoolUpsertRequest,
    actor: Actor = Depends(require_permission("stock:manage")),
    db: Session = Depends(get_db),
):
    enforce_shop_scope(actor, payload.shop_id)
    return ledger.upsert_pool(
        db,
        product_id=payload.product_id,
        shop_id=payload.shop_id,
        quantity_on_hand=payload.quantity_on_hand,
        adjusted_by=actor.id,
        reason=payload.reason,
    )


@router.get("/{product_id}", response_model=StockPoolOut)
def get_stock_pool(
    product_id: int,
    actor: Actor = Depends(require_permission("stock:view")),
    db: Session = Depends(get_db),
):
    pool = ledger.get_pool(db, product_id)
    enforce_shop_scope(actor, pool.shop_id)
    return pool


@router.post("/{product_id}/adjust", response_model=StockPoolOut)
def adjust_stock_pool(
    product_id: int,
    payload: StockPoolAdjustRequest,
    actor: Actor = Depends(require_permission("stock:manage")),
    db: Session = Depends(get_db),
):
    enforce_shop_scope(actor, ledger.get_pool(db, product_id).shop_id)
    return ledger.adjust_pool(
        db,
        product_id=product_id,
        quantity_delta=payload.quantity_delta,
        adjusted_by=actor.id,
        reason=payload.reason,
    )


@router.get("/{product_id}/adjustments", response_model=list[StockAdjustmentOut])
def list_stock_adjustments(
    product_id: int,
    actor: Actor = Depends(require_permission("stock:view")),
    db: Session = Depends(get_db),
):
    enforce_shop_scope(actor, ledger.get_pool(db, product_id).shop_id)
    return ledger.list_adjustments(db, product_id=product_id)
