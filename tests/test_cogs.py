"""Tests for the COGS calculator and margin reporting."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from cafe_cogs.core.exceptions import MenuItemNotFoundError, OrderCogsNotFoundError
from cafe_cogs.schemas.catalog import MenuItemCreate
from cafe_cogs.services.cogs_service import CogsCalculator
from cafe_cogs.services.recipe_service import RecipeService
from cafe_cogs.services.stock_deduction_service import StockDeductionService

BRANCH = "main"


@pytest.fixture
def calculator(db_session):
    return CogsCalculator(db_session)


class TestProfit:
    def test_margin_is_fraction_of_price(self):
        profit, margin = CogsCalculator.calculate_profit(Decimal("4.00"), Decimal("1.00"))
        assert profit == Decimal("3.00")
        assert margin == Decimal("0.75")

    def test_zero_price_has_zero_margin(self):
        profit, margin = CogsCalculator.calculate_profit(0, Decimal("1.50"))
        assert profit == Decimal("-1.50")
        assert margin == Decimal("0")

    def test_loss_gives_negative_margin(self):
        _, margin = CogsCalculator.calculate_profit(Decimal("2"), Decimal("3"))
        assert margin == Decimal("-0.5")


class TestItemCost:
    def test_cappuccino_cost(self, calculator, cappuccino):
        cost = calculator.calculate_cost(cappuccino.id)

        assert cost.recipe_cost == Decimal("1.56")
        assert cost.sell_price == Decimal("4.50")
        assert cost.profit_amount == Decimal("2.94")
        assert cost.profit_margin == Decimal("0.6533")
        assert len(cost.ingredients) == 2

    def test_recipe_in_other_unit_is_normalized(self, db_session, calculator, catalog, beans):
        espresso = catalog.create_menu_item(MenuItemCreate(name="Espresso", price=Decimal("2.50")))
        RecipeService(db_session).add_recipe_line(espresso.id, beans.id, Decimal("0.018"), "kg")

        cost = calculator.calculate_cost(espresso.id)
        assert cost.ingredients[0].quantity == Decimal("18")
        assert cost.recipe_cost == Decimal("0.36")

    def test_item_without_recipe_warns(self, calculator, catalog):
        water = catalog.create_menu_item(MenuItemCreate(name="Water", price=Decimal("1")))
        cost = calculator.calculate_cost(water.id)
        assert cost.recipe_cost == Decimal("0")
        assert cost.warnings

    def test_unknown_menu_item(self, calculator):
        with pytest.raises(MenuItemNotFoundError):
            calculator.calculate_cost(404)

    def test_margin_report_sorted_by_margin(self, db_session, calculator, catalog, cappuccino, beans):
        cheap = catalog.create_menu_item(MenuItemCreate(name="Ristretto", price=Decimal("0.50")))
        RecipeService(db_session).add_recipe_line(cheap.id, beans.id, Decimal("20"), "g")

        report = calculator.margin_report()
        assert [c.menu_item_name for c in report] == ["Ristretto", "Cappuccino"]


class TestOrderPreview:
    def test_cost_is_linear_in_quantity(self, calculator, cappuccino):
        one = calculator.calculate_order_cogs([{"sellable_item_id": cappuccino.id, "quantity_sold": 1}])
        two = calculator.calculate_order_cogs([{"sellable_item_id": cappuccino.id, "quantity_sold": 2}])
        assert two.total_cost == 2 * one.total_cost
        assert two.total_revenue == Decimal("9.00")

    def test_preview_totals(self, calculator, cappuccino):
        preview = calculator.calculate_order_cogs([{"sellable_item_id": cappuccino.id, "quantity_sold": 2}])
        assert preview.total_cost == Decimal("3.12")
        assert preview.total_profit == Decimal("5.88")
        assert preview.profit_margin == Decimal("0.6533")
        assert preview.items[0].unit_cost == Decimal("1.56")

    def test_preview_does_not_touch_stock(self, calculator, ledger, cappuccino, beans, stocked_branch):
        calculator.calculate_order_cogs(
            [{"sellable_item_id": cappuccino.id, "quantity_sold": 3}], branch_id=BRANCH,
        )
        assert ledger.get_stock(BRANCH, beans.id) == Decimal("1000")
        assert ledger.get_movements(BRANCH, beans.id, limit=10)[0].movement_type == "adjustment"

    def test_projected_shortages(self, calculator, ledger, cappuccino, beans, milk):
        ledger.set_stock(BRANCH, beans.id, Decimal("30"), actor="setup")
        ledger.set_stock(BRANCH, milk.id, Decimal("5000"), actor="setup")

        preview = calculator.calculate_order_cogs(
            [{"sellable_item_id": cappuccino.id, "quantity_sold": 2}], branch_id=BRANCH,
        )
        assert [s.raw_item_id for s in preview.shortages] == [beans.id]
        assert preview.shortages[0].required == Decimal("36")
        assert preview.shortages[0].available == Decimal("30")

    def test_unknown_item_counts_no_revenue(self, calculator):
        preview = calculator.calculate_order_cogs([{"sellable_item_id": 777, "quantity_sold": 1}])
        assert preview.total_revenue == Decimal("0")
        assert preview.profit_margin == Decimal("0")
        assert len(preview.warnings) == 2


class TestBookedCogs:
    def test_get_order_cogs(self, db_session, calculator, cappuccino, stocked_branch):
        StockDeductionService(db_session).deduct_for_order(
            "ORD-1", BRANCH, [{"sellable_item_id": cappuccino.id, "quantity_sold": 2}], actor="pos",
        )
        record = calculator.get_order_cogs("ORD-1")
        assert record.cost_of_goods == Decimal("3.12")

    def test_missing_order(self, calculator):
        with pytest.raises(OrderCogsNotFoundError):
            calculator.get_order_cogs("nope")

    def test_summary(self, db_session, calculator, ledger, cappuccino, beans, stocked_branch):
        service = StockDeductionService(db_session)
        service.deduct_for_order(
            "ORD-1", BRANCH, [{"sellable_item_id": cappuccino.id, "quantity_sold": 2}], actor="pos",
        )
        ledger.set_stock(BRANCH, beans.id, Decimal("0"), actor="setup")
        service.deduct_for_order(
            "ORD-2", BRANCH, [{"sellable_item_id": cappuccino.id, "quantity_sold": 1}], actor="pos",
        )

        summary = calculator.summarize_cogs(branch_id=BRANCH)
        assert summary.order_count == 2
        assert summary.total_cost_of_goods == Decimal("4.32")
        assert summary.partial_orders == 1

        future = datetime.now(timezone.utc) + timedelta(days=1)
        assert calculator.summarize_cogs(start=future).order_count == 0
