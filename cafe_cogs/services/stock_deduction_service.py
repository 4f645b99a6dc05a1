"""Stock Deduction Service - consumes branch stock when an order is completed.

Flow:
1. Order completed upstream (POS, kiosk, delivery)
2. For each sold line item:
   a. Expand recipe lines and addons, scaled by quantity sold
   b. Normalize each requirement to the raw item's base unit
3. For each (raw item, required) pair, in order:
   - No stock row        -> skipped_no_stock, shortage
   - Not enough on hand  -> skipped_insufficient, shortage, nothing deducted
   - Otherwise           -> conditional decrement, sale movement, add to COGS
4. Raise shortage alerts, persist the OrderCogs record, return the summary

By default every pair is its own unit of work: one pair being short never
blocks the others, and stock never goes negative. With ``strict=True`` the
whole pass runs inside one savepoint and any shortage rolls every deduction
back.

A second call for an order that already has an OrderCogs record changes
nothing and returns the stored outcome.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cafe_cogs.core.config import settings
from cafe_cogs.core.exceptions import StockPersistenceError
from cafe_cogs.core.locks import stock_key, stock_locks
from cafe_cogs.core.units import quantize
from cafe_cogs.models.order_cogs import DeductionStatus, OrderCogs
from cafe_cogs.schemas.cogs import (
    DeductionDetail,
    DeductionOutcome,
    DeductionResult,
    OrderLineItem,
    Shortage,
)
from cafe_cogs.services.recipe_service import RecipeService, Requirement
from cafe_cogs.services.stock_ledger_service import StockLedgerService
from cafe_cogs.services.stock_store import StockStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
COST_SCALE = 4


class StockDeductionService:
    """Service for deducting stock when orders are completed."""

    def __init__(self, db: Session, store: Optional[StockStore] = None):
        self.db = db
        self.ledger = StockLedgerService(db, store)
        self.store = self.ledger.store
        self.recipes = RecipeService(db)

    # ===== CORE: ORDER STOCK DEDUCTION =====

    def deduct_for_order(
        self,
        order_id: str,
        branch_id: str,
        line_items: List[Union[OrderLineItem, Dict[str, Any]]],
        actor: str,
        strict: Optional[bool] = None,
    ) -> DeductionResult:
        """
        Deduct raw materials for every line of an order and compute its COGS.

        Args:
            order_id: External order id; also the reference on sale movements.
            branch_id: Branch whose stock is consumed.
            line_items: Sold lines (sellable_item_id, quantity_sold, addons).
            actor: Who triggered the deduction.
            strict: All-or-nothing mode. None uses ``settings.strict_deduction_default``.

        Returns:
            DeductionResult. ``success`` is False when any shortage occurred;
            shortages never raise.

        Raises:
            StockPersistenceError: the store failed. The failing pair was rolled
                back; pairs processed before it (non-strict mode) stay committed.
        """
        strict = settings.strict_deduction_default if strict is None else strict
        items = [
            item if isinstance(item, OrderLineItem) else OrderLineItem.model_validate(item)
            for item in line_items
        ]

        with stock_locks.hold(("order", order_id)):
            stored = self._stored_result(order_id)
            if stored is not None:
                logger.info(f"Order {order_id} already deducted; returning stored outcome")
                return stored

            result = DeductionResult(
                order_id=order_id,
                branch_id=branch_id,
                success=True,
                cost_of_goods=ZERO,
                strict=strict,
            )

            requirements = []
            for item in items:
                expanded = self.recipes.expand_line_item(item)
                if not expanded:
                    result.warnings.append(
                        f"No recipe lines or addons for sellable item {item.sellable_item_id}"
                    )
                requirements.extend(expanded)

            if strict:
                self._deduct_all_or_nothing(result, requirements, actor)
            else:
                for req in requirements:
                    self._deduct_requirement(result, req, actor)
                    self.ledger.commit()

            result.success = not result.shortages
            self._raise_shortage_alerts(result)
            self._record(result, actor)

        if result.shortages:
            logger.warning(
                f"Order {order_id} at branch {branch_id}: {len(result.shortages)} shortage(s), "
                f"COGS {result.cost_of_goods}"
            )
        else:
            logger.info(f"Order {order_id} at branch {branch_id} deducted, COGS {result.cost_of_goods}")
        return result

    def _deduct_all_or_nothing(
        self,
        result: DeductionResult,
        requirements: List[Requirement],
        actor: str,
    ) -> None:
        keys = [
            stock_key(result.branch_id, req.raw_item_id)
            for req in requirements if req.quantity is not None
        ]
        with stock_locks.hold_many(keys):
            savepoint = self.store.savepoint()
            try:
                for req in requirements:
                    self._deduct_requirement(result, req, actor)
            except Exception:
                savepoint.rollback()
                self.ledger.rollback()
                raise

            if not result.shortages:
                savepoint.commit()
                self.ledger.commit()
                return

            savepoint.rollback()

        for detail in result.deduction_details:
            if detail.status == DeductionOutcome.DEDUCTED:
                detail.status = DeductionOutcome.ROLLED_BACK
                detail.new_quantity = detail.previous_quantity
                detail.total_cost = ZERO
                detail.message = "Rolled back: order has shortages and strict mode is on"
        result.cost_of_goods = ZERO
        result.errors.append("Strict deduction rolled back because of shortages")

    def _deduct_requirement(self, result: DeductionResult, req: Requirement, actor: str) -> None:
        """Process one (raw item, required) pair. Does not commit."""
        if req.quantity is None:
            result.deduction_details.append(DeductionDetail(
                raw_item_id=req.raw_item_id,
                raw_item_name=req.raw_item.name if req.raw_item else f"#{req.raw_item_id}",
                sellable_item_id=req.sellable_item_id,
                source=req.source,
                quantity=ZERO,
                unit=req.raw_item.base_unit if req.raw_item else "",
                unit_cost=ZERO,
                total_cost=ZERO,
                status=DeductionOutcome.SKIPPED_NO_RECIPE,
                message=req.error or "Requirement could not be resolved",
            ))
            return

        raw_item = req.raw_item
        required = quantize(req.quantity, settings.quantity_scale)
        detail = DeductionDetail(
            raw_item_id=raw_item.id,
            raw_item_name=raw_item.name,
            sellable_item_id=req.sellable_item_id,
            source=req.source,
            quantity=required,
            unit=raw_item.base_unit,
            unit_cost=raw_item.unit_cost,
            total_cost=ZERO,
            status=DeductionOutcome.DEDUCTED,
            message="",
        )

        with stock_locks.hold(stock_key(result.branch_id, raw_item.id)):
            row = self.store.get(result.branch_id, raw_item.id)
            if row is None:
                detail.status = DeductionOutcome.SKIPPED_NO_STOCK
                detail.message = f"No stock record for '{raw_item.name}' at branch {result.branch_id}"
                self._add_shortage(result, raw_item, required, ZERO)
                result.deduction_details.append(detail)
                return

            movement = self.ledger.consume(
                result.branch_id,
                raw_item.id,
                required,
                actor,
                reference=result.order_id,
                notes=f"Sale: item {req.sellable_item_id} ({req.source})",
            )
            if movement is None:
                available = self.ledger.get_stock(result.branch_id, raw_item.id)
                detail.status = DeductionOutcome.SKIPPED_INSUFFICIENT
                detail.previous_quantity = available
                detail.new_quantity = available
                detail.message = (
                    f"Insufficient stock for '{raw_item.name}': "
                    f"need {required} {raw_item.base_unit}, have {available} {raw_item.base_unit}"
                )
                self._add_shortage(result, raw_item, required, available)
                result.deduction_details.append(detail)
                return

            cost = quantize(raw_item.unit_cost * required, COST_SCALE)
            detail.total_cost = cost
            detail.previous_quantity = movement.previous_quantity
            detail.new_quantity = movement.new_quantity
            detail.message = f"Deducted {required} {raw_item.base_unit}"
            result.cost_of_goods += cost
            result.deduction_details.append(detail)
            self.ledger.alerts.check_and_create_alerts(
                result.branch_id, raw_item, movement.new_quantity
            )

    @staticmethod
    def _add_shortage(result: DeductionResult, raw_item, required: Decimal, available: Decimal) -> None:
        result.shortages.append(Shortage(
            raw_item_id=raw_item.id,
            raw_item_name=raw_item.name,
            required=required,
            available=available,
            unit=raw_item.base_unit,
        ))

    # ===== PERSISTENCE =====

    def _raise_shortage_alerts(self, result: DeductionResult) -> None:
        if not settings.create_shortage_alerts:
            return
        for shortage in result.shortages:
            self.ledger.alerts.create_shortage_alert(
                result.branch_id,
                shortage.raw_item_id,
                available=shortage.available,
                required=shortage.required,
                reference=result.order_id,
            )

    def _record(self, result: DeductionResult, actor: str) -> OrderCogs:
        if not result.shortages:
            status = DeductionStatus.COMPLETE
        elif result.strict:
            status = DeductionStatus.ROLLED_BACK
        else:
            status = DeductionStatus.PARTIAL

        record = OrderCogs(
            order_id=result.order_id,
            branch_id=result.branch_id,
            cost_of_goods=result.cost_of_goods,
            status=status.value,
            details=[d.model_dump(mode="json") for d in result.deduction_details],
            shortages=[s.model_dump(mode="json") for s in result.shortages],
            warnings=list(result.warnings),
            strict=result.strict,
            actor=actor,
        )
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record COGS for order {result.order_id}: {e}", exc_info=True)
            raise StockPersistenceError(f"Failed to record COGS for order {result.order_id}") from e
        return record

    def _stored_result(self, order_id: str) -> Optional[DeductionResult]:
        record = self.db.query(OrderCogs).filter(OrderCogs.order_id == order_id).first()
        if record is None:
            return None
        shortages = [Shortage.model_validate(s) for s in record.shortages]
        return DeductionResult(
            order_id=record.order_id,
            branch_id=record.branch_id,
            success=not shortages,
            cost_of_goods=record.cost_of_goods,
            deduction_details=[DeductionDetail.model_validate(d) for d in record.details],
            shortages=shortages,
            warnings=list(record.warnings or []),
            strict=record.strict,
            already_processed=True,
        )
