"""SQLAlchemy models."""

from cafe_cogs.models.raw_item import RawItem
from cafe_cogs.models.menu_item import MenuItem
from cafe_cogs.models.recipe import RecipeLine
from cafe_cogs.models.stock import (
    AlertType,
    BranchStock,
    MovementType,
    StockAlert,
    StockMovement,
)
from cafe_cogs.models.order_cogs import DeductionStatus, OrderCogs

__all__ = [
    "RawItem",
    "MenuItem",
    "RecipeLine",
    "BranchStock",
    "StockMovement",
    "StockAlert",
    "MovementType",
    "AlertType",
    "OrderCogs",
    "DeductionStatus",
]
