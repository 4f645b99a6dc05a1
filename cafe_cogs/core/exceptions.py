"""Domain exceptions for the COGS engine.

Expected, data-level problems (bad units, duplicate codes, draws below zero)
subclass ``ValidationError``; missing rows subclass ``NotFoundError``.
``StockPersistenceError`` is the only infrastructure-level failure and is
always fatal for the unit of work that raised it.

Stock shortages during order deduction are *not* exceptions: they are
reported in the deduction result.
"""

from decimal import Decimal
from typing import Any, Optional


class CogsError(Exception):
    """Base class for all engine errors."""


class NotFoundError(CogsError):
    """A referenced row does not exist."""

    entity = "Object"

    def __init__(self, key: Any):
        self.key = key
        super().__init__(f"{self.entity} {key!r} not found")


class RawItemNotFoundError(NotFoundError):
    entity = "Raw item"


class MenuItemNotFoundError(NotFoundError):
    entity = "Menu item"


class RecipeLineNotFoundError(NotFoundError):
    entity = "Recipe line"


class AlertNotFoundError(NotFoundError):
    entity = "Stock alert"


class OrderCogsNotFoundError(NotFoundError):
    entity = "Order COGS record for"


class ValidationError(CogsError):
    """A write was rejected because the input breaks a catalog or ledger rule."""


class UnitMismatchError(ValidationError):
    """Raised when a recipe or addon unit is not compatible with the raw item's base unit."""

    def __init__(
        self,
        unit: str,
        base_unit: str,
        raw_item_name: str = "",
        message: Optional[str] = None,
    ):
        self.unit = unit
        self.base_unit = base_unit
        self.raw_item_name = raw_item_name
        super().__init__(
            message
            or f"Unit '{unit}' is not compatible with base unit '{base_unit}'"
            + (f" of '{raw_item_name}'" if raw_item_name else "")
        )


class DuplicateCodeError(ValidationError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Raw item code '{code}' already exists")


class DuplicateRecipeLineError(ValidationError):
    def __init__(self, menu_item_id: int, raw_item_id: int):
        self.menu_item_id = menu_item_id
        self.raw_item_id = raw_item_id
        super().__init__(
            f"Menu item {menu_item_id} already has a recipe line for raw item {raw_item_id}"
        )


class BaseUnitLockedError(ValidationError):
    """Raised when changing the base unit of a raw item that recipes or stock already use."""

    def __init__(self, raw_item_id: int, recipe_lines: int, stock_rows: int):
        self.raw_item_id = raw_item_id
        self.recipe_lines = recipe_lines
        self.stock_rows = stock_rows
        super().__init__(
            f"Base unit of raw item {raw_item_id} is locked: referenced by "
            f"{recipe_lines} recipe line(s) and {stock_rows} stock row(s)"
        )


class NegativeStockError(ValidationError):
    def __init__(self, quantity: Decimal):
        self.quantity = quantity
        super().__init__(f"Stock quantity cannot be negative (got {quantity})")


class InsufficientStockError(ValidationError):
    """Raised by manual stock-out and transfers; order deduction records shortages instead."""

    def __init__(
        self,
        raw_item_name: str,
        raw_item_id: int,
        available: Decimal,
        needed: Decimal,
        unit: str,
    ):
        self.raw_item_name = raw_item_name
        self.raw_item_id = raw_item_id
        self.available = available
        self.needed = needed
        self.unit = unit
        super().__init__(
            f"Insufficient stock for '{raw_item_name}': need {needed} {unit}, have {available} {unit}"
        )


class StockPersistenceError(CogsError):
    """The stock store could not read or write; the current unit of work was rolled back."""

    def __init__(self, message: str, raw_item_id: Optional[int] = None):
        self.raw_item_id = raw_item_id
        super().__init__(message)
