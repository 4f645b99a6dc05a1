"""Order deduction and COGS schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from cafe_cogs.schemas.catalog import UnitField


class AddonConsumption(BaseModel):
    """Raw consumption attached to a line item, bypassing the recipe."""

    raw_item_id: int
    quantity: Decimal = Field(gt=0)
    unit: UnitField


class OrderLineItem(BaseModel):
    """Snapshot of one sold line, as supplied by order processing."""

    sellable_item_id: int
    quantity_sold: Decimal = Field(gt=0)
    addons: List[AddonConsumption] = []


class DeductionRequest(BaseModel):
    order_id: str = Field(min_length=1, max_length=100)
    branch_id: str = Field(min_length=1, max_length=64)
    line_items: List[OrderLineItem]
    actor: str
    strict: Optional[bool] = None  # None -> settings.strict_deduction_default


class DeductionOutcome(str, Enum):
    DEDUCTED = "deducted"
    SKIPPED_NO_STOCK = "skipped_no_stock"
    SKIPPED_INSUFFICIENT = "skipped_insufficient"
    SKIPPED_NO_RECIPE = "skipped_no_recipe"
    ROLLED_BACK = "rolled_back"


class DeductionDetail(BaseModel):
    raw_item_id: int
    raw_item_name: str
    sellable_item_id: int
    source: str  # recipe | addon
    quantity: Decimal  # in the raw item's base unit
    unit: str
    unit_cost: Decimal
    total_cost: Decimal
    previous_quantity: Optional[Decimal] = None
    new_quantity: Optional[Decimal] = None
    status: DeductionOutcome
    message: str


class Shortage(BaseModel):
    raw_item_id: int
    raw_item_name: str
    required: Decimal
    available: Decimal
    unit: str


class DeductionResult(BaseModel):
    order_id: str
    branch_id: str
    success: bool
    cost_of_goods: Decimal
    deduction_details: List[DeductionDetail] = []
    shortages: List[Shortage] = []
    warnings: List[str] = []
    errors: List[str] = []
    strict: bool = False
    already_processed: bool = False


class IngredientCost(BaseModel):
    raw_item_id: int
    raw_item_name: str
    quantity: Decimal  # base-unit quantity for the costed amount
    unit: str
    unit_cost: Decimal
    total_cost: Decimal
    source: str = "recipe"


class ItemCost(BaseModel):
    """Cost and margin of one menu item (per unit sold)."""

    menu_item_id: int
    menu_item_name: str
    recipe_cost: Decimal
    sell_price: Decimal
    profit_amount: Decimal
    profit_margin: Decimal  # fraction, 0.75 == 75 %
    ingredients: List[IngredientCost] = []
    warnings: List[str] = []


class OrderItemCost(BaseModel):
    sellable_item_id: int
    name: str
    quantity_sold: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    revenue: Decimal
    ingredients: List[IngredientCost] = []


class OrderCogsPreview(BaseModel):
    total_cost: Decimal
    total_revenue: Decimal
    total_profit: Decimal
    profit_margin: Decimal
    items: List[OrderItemCost] = []
    shortages: List[Shortage] = []
    warnings: List[str] = []


class OrderCogsResponse(BaseModel):
    order_id: str
    branch_id: str
    cost_of_goods: Decimal
    status: str
    details: list
    shortages: list
    warnings: list
    strict: bool
    actor: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CogsSummary(BaseModel):
    branch_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    order_count: int
    total_cost_of_goods: Decimal
    partial_orders: int


class OrderCogsPreviewRequest(BaseModel):
    line_items: List[OrderLineItem]
    branch_id: Optional[str] = None  # project shortages against this branch
