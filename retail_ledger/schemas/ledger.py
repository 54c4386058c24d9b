from datetime import datetime

from pydantic import AliasChoices, Field, field_validator, model_validator

from retail_ledger.models.ledger import AssignmentStatus, MovementKind
from retail_ledger.schemas.base import ApiModel

# Mobile clients post ids as "productId", "product_id", "product" or even
# {"_id": ...} objects. Everything is flattened to plain ints here.
_ID_KEYS = ("id", "_id")


def _flatten_id(value):
    if isinstance(value, dict):
        for key in _ID_KEYS:
            if value.get(key) is not None:
                return value[key]
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class AssignRequest(ApiModel):
    product_id: int = Field(validation_alias=AliasChoices("productId", "product_id", "product"))
    agent_id: int = Field(validation_alias=AliasChoices("agentId", "agent_id", "agent"))
    quantity: int

    @field_validator("product_id", "agent_id", mode="before")
    @classmethod
    def normalize_reference(cls, value):
        return _flatten_id(value)


class _AssignmentMutation(ApiModel):
    assignment_id: int = Field(
        validation_alias=AliasChoices("assignmentId", "assignment_id", "agentProductId", "agent_product_id")
    )
    quantity: int

    @field_validator("assignment_id", mode="before")
    @classmethod
    def normalize_reference(cls, value):
        return _flatten_id(value)


class SellRequest(_AssignmentMutation):
    pass


class ReturnRequest(_AssignmentMutation):
    pass


class AssignmentOut(ApiModel):
    id: int
    product_id: int
    shop_id: int
    agent_id: int
    assigned_by: int | None
    assigned_quantity: int
    sold_quantity: int
    returned_quantity: int
    remaining_quantity: int
    status: AssignmentStatus
    created_at: datetime
    updated_at: datetime
    last_sold_at: datetime | None
    last_returned_at: datetime | None


class AssignResponse(ApiModel):
    assignment_id: int
    remaining_quantity: int
    status: AssignmentStatus
    pool_total_quantity: int
    assignment: AssignmentOut


class SellResponse(ApiModel):
    assignment_id: int
    remaining_quantity: int
    status: AssignmentStatus
    assignment: AssignmentOut


class ReturnResponse(ApiModel):
    assignment_id: int
    remaining_quantity: int
    pool_total_quantity: int
    status: AssignmentStatus
    assignment: AssignmentOut


class MovementOut(ApiModel):
    id: int
    assignment_id: int
    kind: MovementKind
    quantity: int
    remaining_after: int
    actor_ref: int | None
    created_at: datetime


class StockPoolUpsertRequest(ApiModel):
    product_id: int = Field(validation_alias=AliasChoices("productId", "product_id", "product"))
    shop_id: int = Field(validation_alias=AliasChoices("shopId", "shop_id", "shop"))
    quantity_on_hand: int = Field(
        ge=0,
        validation_alias=AliasChoices("quantityOnHand", "quantity_on_hand", "quantity", "totalQuantity"),
    )
    reason: str | None = Field(default=None, max_length=255)

    @field_validator("product_id", "shop_id", mode="before")
    @classmethod
    def normalize_reference(cls, value):
        return _flatten_id(value)


class StockPoolAdjustRequest(ApiModel):
    quantity_delta: int = Field(description="Signed delta to apply, may be negative")
    reason: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def reject_empty_adjustment(self):
        if self.quantity_delta == 0:
            raise ValueError("quantityDelta must not be zero")
        return self


class StockPoolOut(ApiModel):
    id: int
    product_id: int
    shop_id: int
    quantity_on_hand: int
    updated_at: datetime


class StockAdjustmentOut(ApiModel):
    id: int
    pool_id: int
    shop_id: int
    product_id: int
    adjusted_by: int | None
    quantity_before: int
    quantity_after: int
    quantity_delta: int
    reason: str | None
    adjusted_at: datetime
