"""Branch Stock Ledger - current quantities per branch plus the movement log.

Every quantity change goes through this service so that each one produces
exactly one StockMovement with ``new_quantity == previous_quantity + delta``.
Quantities are always in the raw item's base unit; callers may pass another
unit of the same dimension and it is normalized on the way in.

Writes to a (branch_id, raw_item_id) key are serialized with ``stock_locks``.
After a write the threshold alerts for that key are re-evaluated.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from cafe_cogs.core.config import settings
from cafe_cogs.core.exceptions import (
    InsufficientStockError,
    NegativeStockError,
    ValidationError,
)
from cafe_cogs.core.locks import stock_key, stock_locks
from cafe_cogs.core.units import Unit, normalize, quantize, to_decimal
from cafe_cogs.models.raw_item import RawItem
from cafe_cogs.models.stock import BranchStock, MovementType, StockMovement
from cafe_cogs.schemas.stock import LowStockItem
from cafe_cogs.services.catalog_service import CatalogService
from cafe_cogs.services.stock_alert_service import StockAlertService
from cafe_cogs.services.stock_store import SqlStockStore, StockStore

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]


class StockLedgerService:
    """Sanctioned write path for branch stock."""

    def __init__(self, db: Optional[Session], store: Optional[StockStore] = None):
        self.db = db
        self.store = store if store is not None else SqlStockStore(db)
        self.catalog = CatalogService(db)
        self.alerts = StockAlertService(db)

    # ===== READS =====

    def get_stock(self, branch_id: str, raw_item_id: int) -> Decimal:
        """Current quantity in base units, 0 when no row exists."""
        row = self.store.get(branch_id, raw_item_id)
        return row.quantity if row else Decimal("0")

    def list_branch_stock(self, branch_id: Optional[str] = None) -> List[BranchStock]:
        return self.store.list_stock(branch_id)

    def get_low_stock_items(self, branch_id: Optional[str] = None) -> List[LowStockItem]:
        """Stock rows at or below their raw item's ``min_stock_level``."""
        rows = self.store.list_stock(branch_id)
        if not rows:
            return []

        raw_items = {
            item.id: item
            for item in self.db.query(RawItem).filter(
                RawItem.id.in_({row.raw_item_id for row in rows}),
                RawItem.not_deleted(),
            ).all()
        }

        low = []
        for row in rows:
            raw_item = raw_items.get(row.raw_item_id)
            if raw_item is None:
                continue
            if row.quantity <= (raw_item.min_stock_level or 0):
                low.append(LowStockItem(
                    branch_id=row.branch_id,
                    raw_item_id=raw_item.id,
                    raw_item_code=raw_item.code,
                    raw_item_name=raw_item.name,
                    quantity=row.quantity,
                    min_stock_level=raw_item.min_stock_level,
                    unit=raw_item.base_unit,
                ))
        return low

    def get_movements(
        self,
        branch_id: str,
        raw_item_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[StockMovement]:
        """Movement history, most recent first."""
        return self.store.list_movements(
            branch_id, raw_item_id, limit or settings.default_movement_limit
        )

    # ===== WRITES =====

    def set_stock(
        self,
        branch_id: str,
        raw_item_id: int,
        new_quantity: Number,
        actor: str,
        movement_type: Union[MovementType, str] = MovementType.ADJUSTMENT,
        notes: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> StockMovement:
        """Set an absolute quantity (a stock count) and log the difference."""
        target = to_decimal(new_quantity)
        if target < 0:
            raise NegativeStockError(target)
        raw_item = self.catalog.get_raw_item(raw_item_id)

        with stock_locks.hold(stock_key(branch_id, raw_item.id)):
            movement = self._write(
                branch_id, raw_item, target, actor,
                MovementType(movement_type), notes, reference,
            )
            self._finish(branch_id, raw_item, movement.new_quantity)

        logger.info(
            f"Stock set: branch {branch_id}, '{raw_item.name}' "
            f"{movement.previous_quantity} -> {movement.new_quantity} {raw_item.base_unit} by {actor}"
        )
        return movement

    def record_stock_in(
        self,
        branch_id: str,
        raw_item_id: int,
        quantity: Number,
        actor: str,
        unit: Optional[Union[Unit, str]] = None,
        notes: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> StockMovement:
        """Goods received. ``quantity`` may be in any unit compatible with the base unit."""
        raw_item = self.catalog.get_raw_item(raw_item_id)
        amount = self._to_base(raw_item, quantity, unit)

        with stock_locks.hold(stock_key(branch_id, raw_item.id)):
            current = self.get_stock(branch_id, raw_item.id)
            movement = self._write(
                branch_id, raw_item, current + amount, actor,
                MovementType.PURCHASE, notes, reference,
            )
            self._finish(branch_id, raw_item, movement.new_quantity)
        return movement

    def record_stock_out(
        self,
        branch_id: str,
        raw_item_id: int,
        quantity: Number,
        actor: str,
        unit: Optional[Union[Unit, str]] = None,
        movement_type: Union[MovementType, str] = MovementType.WASTE,
        notes: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> StockMovement:
        """Manual removal (waste, breakage, correction). Never drives stock negative."""
        raw_item = self.catalog.get_raw_item(raw_item_id)
        amount = self._to_base(raw_item, quantity, unit)

        with stock_locks.hold(stock_key(branch_id, raw_item.id)):
            current = self.get_stock(branch_id, raw_item.id)
            if current < amount:
                raise InsufficientStockError(
                    raw_item.name, raw_item.id, current, amount, raw_item.base_unit
                )
            movement = self._write(
                branch_id, raw_item, current - amount, actor,
                MovementType(movement_type), notes, reference,
            )
            self._finish(branch_id, raw_item, movement.new_quantity)
        return movement

    def transfer_stock(
        self,
        from_branch_id: str,
        to_branch_id: str,
        raw_item_id: int,
        quantity: Number,
        actor: str,
        unit: Optional[Union[Unit, str]] = None,
        notes: Optional[str] = None,
    ) -> Tuple[StockMovement, StockMovement]:
        """Move stock between branches; returns (outgoing, incoming) movements."""
        if from_branch_id == to_branch_id:
            raise ValidationError("Cannot transfer stock to the same branch")
        raw_item = self.catalog.get_raw_item(raw_item_id)
        amount = self._to_base(raw_item, quantity, unit)
        reference = f"transfer:{from_branch_id}->{to_branch_id}"

        keys = [stock_key(from_branch_id, raw_item.id), stock_key(to_branch_id, raw_item.id)]
        with stock_locks.hold_many(keys):
            available = self.get_stock(from_branch_id, raw_item.id)
            if available < amount:
                raise InsufficientStockError(
                    raw_item.name, raw_item.id, available, amount, raw_item.base_unit
                )
            outgoing = self._write(
                from_branch_id, raw_item, available - amount, actor,
                MovementType.TRANSFER, notes, reference,
            )
            incoming = self._write(
                to_branch_id, raw_item, self.get_stock(to_branch_id, raw_item.id) + amount,
                actor, MovementType.TRANSFER, notes, reference,
            )
            self.alerts.check_and_create_alerts(from_branch_id, raw_item, outgoing.new_quantity)
            self._finish(to_branch_id, raw_item, incoming.new_quantity)

        logger.info(
            f"Stock transfer: {amount} {raw_item.base_unit} of '{raw_item.name}' "
            f"from {from_branch_id} to {to_branch_id} by {actor}"
        )
        return outgoing, incoming

    def consume(
        self,
        branch_id: str,
        raw_item_id: int,
        required: Decimal,
        actor: str,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[StockMovement]:
        """Deduct ``required`` base units for a sale if, and only if, enough is on hand.

        Returns the sale movement, or None when the row is missing or short.
        Does not commit and does not touch alerts; the caller owns the unit of
        work.
        """
        with stock_locks.hold(stock_key(branch_id, raw_item_id)):
            new_quantity = self.store.decrement_if_available(branch_id, raw_item_id, required)
            if new_quantity is None:
                return None
            return self.store.append_movement(StockMovement(
                branch_id=branch_id,
                raw_item_id=raw_item_id,
                delta=-required,
                movement_type=MovementType.SALE.value,
                previous_quantity=new_quantity + required,
                new_quantity=new_quantity,
                reference=reference,
                notes=notes,
                actor=actor,
            ))

    def commit(self) -> None:
        self.store.commit()
        if self.db is not None and not isinstance(self.store, SqlStockStore):
            self.db.commit()

    def rollback(self) -> None:
        self.store.rollback()
        if self.db is not None and not isinstance(self.store, SqlStockStore):
            self.db.rollback()

    # ===== INTERNALS =====

    def _to_base(self, raw_item: RawItem, quantity: Number, unit) -> Decimal:
        amount = to_decimal(quantity)
        if amount <= 0:
            raise ValidationError(f"Quantity must be greater than 0 (got {amount})")
        return normalize(amount, unit or raw_item.base_unit, raw_item.base_unit)

    def _write(
        self,
        branch_id: str,
        raw_item: RawItem,
        target: Decimal,
        actor: str,
        movement_type: MovementType,
        notes: Optional[str],
        reference: Optional[str],
    ) -> StockMovement:
        target = quantize(target, settings.quantity_scale)
        previous = self.get_stock(branch_id, raw_item.id)
        self.store.put(branch_id, raw_item.id, target)
        return self.store.append_movement(StockMovement(
            branch_id=branch_id,
            raw_item_id=raw_item.id,
            delta=target - previous,
            movement_type=movement_type.value,
            previous_quantity=previous,
            new_quantity=target,
            reference=reference,
            notes=notes,
            actor=actor,
        ))

    def _finish(self, branch_id: str, raw_item: RawItem, quantity: Decimal) -> None:
        self.alerts.check_and_create_alerts(branch_id, raw_item, quantity)
        self.commit()
