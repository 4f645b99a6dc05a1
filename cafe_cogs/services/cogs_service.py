"""COGS Calculator - recipe cost, margins and order cost previews.

Everything here is read-only. Preview figures use current recipe lines and
unit costs; the cost actually booked for an order is the one persisted by
the deduction engine in ``OrderCogs``.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from cafe_cogs.core.exceptions import OrderCogsNotFoundError
from cafe_cogs.core.units import quantize, to_decimal
from cafe_cogs.models.order_cogs import DeductionStatus, OrderCogs
from cafe_cogs.schemas.cogs import (
    CogsSummary,
    IngredientCost,
    ItemCost,
    OrderCogsPreview,
    OrderItemCost,
    OrderLineItem,
    Shortage,
)
from cafe_cogs.services.catalog_service import CatalogService
from cafe_cogs.services.recipe_service import RecipeService, Requirement
from cafe_cogs.services.stock_store import SqlStockStore, StockStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MARGIN_PLACES = Decimal("0.0001")
COST_SCALE = 4


class CogsCalculator:
    """Computes cost of goods and profit margins from recipes."""

    def __init__(self, db: Session, store: Optional[StockStore] = None):
        self.db = db
        self.store = store if store is not None else SqlStockStore(db)
        self.catalog = CatalogService(db)
        self.recipes = RecipeService(db)

    @staticmethod
    def calculate_profit(
        selling_price: Union[Decimal, int, float, str],
        cost: Union[Decimal, int, float, str],
    ) -> Tuple[Decimal, Decimal]:
        """Return (profit_amount, profit_margin). Margin is a fraction of price, 0 for free items."""
        price = to_decimal(selling_price)
        cost = to_decimal(cost)
        profit = price - cost
        if price == 0:
            return profit, ZERO
        return profit, (profit / price).quantize(MARGIN_PLACES)

    def calculate_cost(self, menu_item_id: int) -> ItemCost:
        """Cost of one unit of a menu item and its margin at the current price."""
        menu_item = self.catalog.get_menu_item(menu_item_id)
        item = OrderLineItem(sellable_item_id=menu_item.id, quantity_sold=Decimal("1"))

        ingredients, warnings = self._cost_requirements(self.recipes.expand_line_item(item))
        if not ingredients and not warnings:
            warnings.append(f"Menu item '{menu_item.name}' has no recipe lines")

        recipe_cost = sum((i.total_cost for i in ingredients), ZERO)
        profit, margin = self.calculate_profit(menu_item.price, recipe_cost)
        return ItemCost(
            menu_item_id=menu_item.id,
            menu_item_name=menu_item.name,
            recipe_cost=recipe_cost,
            sell_price=menu_item.price,
            profit_amount=profit,
            profit_margin=margin,
            ingredients=ingredients,
            warnings=warnings,
        )

    def margin_report(self, include_inactive: bool = False) -> List[ItemCost]:
        """Cost and margin for every menu item, lowest margin first."""
        report = [
            self.calculate_cost(item.id)
            for item in self.catalog.list_menu_items(include_inactive=include_inactive)
        ]
        report.sort(key=lambda c: c.profit_margin)
        return report

    def calculate_order_cogs(
        self,
        line_items: List[Union[OrderLineItem, Dict[str, Any]]],
        branch_id: Optional[str] = None,
    ) -> OrderCogsPreview:
        """Preview cost, revenue and profit of an order without touching stock.

        When ``branch_id`` is given, the preview also lists the shortages the
        order would hit against current branch stock. Stock is read without
        locks, so the projection can be stale by the time the order is deducted.
        """
        preview = OrderCogsPreview(
            total_cost=ZERO,
            total_revenue=ZERO,
            total_profit=ZERO,
            profit_margin=ZERO,
        )
        required_totals: Dict[int, Decimal] = {}
        raw_items = {}

        for raw in line_items:
            item = raw if isinstance(raw, OrderLineItem) else OrderLineItem.model_validate(raw)
            menu_item = self.catalog.find_menu_item(item.sellable_item_id)
            requirements = self.recipes.expand_line_item(item)
            ingredients, warnings = self._cost_requirements(requirements)
            preview.warnings.extend(warnings)

            if menu_item is None:
                preview.warnings.append(
                    f"Sellable item {item.sellable_item_id} is not in the menu; revenue counted as 0"
                )
            if not requirements:
                preview.warnings.append(
                    f"No recipe lines or addons for sellable item {item.sellable_item_id}"
                )

            total_cost = sum((i.total_cost for i in ingredients), ZERO)
            revenue = (menu_item.price if menu_item else ZERO) * item.quantity_sold
            preview.items.append(OrderItemCost(
                sellable_item_id=item.sellable_item_id,
                name=menu_item.name if menu_item else f"Item {item.sellable_item_id}",
                quantity_sold=item.quantity_sold,
                unit_cost=total_cost / item.quantity_sold,
                total_cost=total_cost,
                revenue=revenue,
                ingredients=ingredients,
            ))
            preview.total_cost += total_cost
            preview.total_revenue += revenue

            for req in requirements:
                if req.quantity is not None:
                    raw_items[req.raw_item_id] = req.raw_item
                    required_totals[req.raw_item_id] = (
                        required_totals.get(req.raw_item_id, ZERO) + req.quantity
                    )

        preview.total_profit, preview.profit_margin = self.calculate_profit(
            preview.total_revenue, preview.total_cost
        )

        if branch_id is not None:
            for raw_item_id, required in required_totals.items():
                row = self.store.get(branch_id, raw_item_id)
                available = row.quantity if row else ZERO
                if available < required:
                    raw_item = raw_items[raw_item_id]
                    preview.shortages.append(Shortage(
                        raw_item_id=raw_item_id,
                        raw_item_name=raw_item.name,
                        required=required,
                        available=available,
                        unit=raw_item.base_unit,
                    ))
        return preview

    # ===== PERSISTED COGS =====

    def get_order_cogs(self, order_id: str) -> OrderCogs:
        record = self.db.query(OrderCogs).filter(OrderCogs.order_id == order_id).first()
        if not record:
            raise OrderCogsNotFoundError(order_id)
        return record

    def summarize_cogs(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        branch_id: Optional[str] = None,
    ) -> CogsSummary:
        """Totals of booked COGS in ``[start, end)``, for accounting."""
        query = self.db.query(OrderCogs)
        if branch_id is not None:
            query = query.filter(OrderCogs.branch_id == branch_id)
        if start is not None:
            query = query.filter(OrderCogs.created_at >= start)
        if end is not None:
            query = query.filter(OrderCogs.created_at < end)
        records = query.all()

        return CogsSummary(
            branch_id=branch_id,
            start=start,
            end=end,
            order_count=len(records),
            total_cost_of_goods=sum((r.cost_of_goods for r in records), ZERO),
            partial_orders=len([
                r for r in records if r.status != DeductionStatus.COMPLETE.value
            ]),
        )

    def _cost_requirements(
        self, requirements: List[Requirement]
    ) -> Tuple[List[IngredientCost], List[str]]:
        ingredients = []
        warnings = []
        for req in requirements:
            if req.quantity is None:
                warnings.append(f"Skipped {req.source} line for raw item {req.raw_item_id}: {req.error}")
                continue
            ingredients.append(IngredientCost(
                raw_item_id=req.raw_item.id,
                raw_item_name=req.raw_item.name,
                quantity=req.quantity,
                unit=req.raw_item.base_unit,
                unit_cost=req.raw_item.unit_cost,
                total_cost=quantize(req.raw_item.unit_cost * req.quantity, COST_SCALE),
                source=req.source,
            ))
        return ingredients, warnings
