"""Stock schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from cafe_cogs.models.stock import MovementType
from cafe_cogs.schemas.catalog import UnitField


class BranchStockResponse(BaseModel):
    """Branch stock response schema."""

    id: int
    branch_id: str
    raw_item_id: int
    quantity: Decimal
    updated_at: datetime

    model_config = {"from_attributes": True}


class StockMovementResponse(BaseModel):
    """Stock movement response schema."""

    id: int
    ts: datetime
    branch_id: str
    raw_item_id: int
    delta: Decimal
    movement_type: str
    previous_quantity: Decimal
    new_quantity: Decimal
    reference: Optional[str] = None
    notes: Optional[str] = None
    actor: str

    model_config = {"from_attributes": True}


class SetStockRequest(BaseModel):
    """Set an absolute quantity (stock count)."""

    branch_id: str
    raw_item_id: int
    quantity: Decimal = Field(ge=0)
    actor: str
    movement_type: MovementType = MovementType.ADJUSTMENT
    notes: Optional[str] = None
    reference: Optional[str] = None


class StockInRequest(BaseModel):
    """Goods received."""

    branch_id: str
    raw_item_id: int
    quantity: Decimal = Field(gt=0)
    unit: Optional[UnitField] = None  # defaults to the raw item's base unit
    actor: str
    notes: Optional[str] = None
    reference: Optional[str] = None


class StockOutRequest(BaseModel):
    """Manual stock removal (waste or adjustment)."""

    branch_id: str
    raw_item_id: int
    quantity: Decimal = Field(gt=0)
    unit: Optional[UnitField] = None
    actor: str
    movement_type: MovementType = MovementType.WASTE
    notes: Optional[str] = None


class StockTransferRequest(BaseModel):
    from_branch_id: str
    to_branch_id: str
    raw_item_id: int
    quantity: Decimal = Field(gt=0)
    unit: Optional[UnitField] = None
    actor: str
    notes: Optional[str] = None


class StockTransferResponse(BaseModel):
    outgoing: StockMovementResponse
    incoming: StockMovementResponse


class StockAlertResponse(BaseModel):
    id: int
    branch_id: str
    raw_item_id: int
    alert_type: str
    current_quantity: Decimal
    threshold_quantity: Decimal
    reference: Optional[str] = None
    is_read: bool
    resolved: bool
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ResolveAlertRequest(BaseModel):
    resolved_by: str


class LowStockItem(BaseModel):
    """A branch stock row at or below its raw item's minimum."""

    branch_id: str
    raw_item_id: int
    raw_item_code: str
    raw_item_name: str
    quantity: Decimal
    min_stock_level: Decimal
    unit: str
