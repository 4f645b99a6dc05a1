"""Stock storage backends.

The ledger and the deduction engine talk to branch stock only through
``StockStore``. ``SqlStockStore`` is the production backend; the in-memory
store backs unit tests and concurrency checks that cannot share one SQLite
connection across threads.

Callers hold ``stock_locks`` for the key before any read-modify-write. The
SQL backend additionally decrements with a conditional UPDATE so a stale read
can never push a row below zero.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cafe_cogs.core.config import settings
from cafe_cogs.core.exceptions import StockPersistenceError
from cafe_cogs.core.locks import stock_key
from cafe_cogs.core.units import quantize
from cafe_cogs.models.stock import BranchStock, StockMovement

logger = logging.getLogger(__name__)


class Savepoint(ABC):
    """Handle returned by ``StockStore.savepoint()``."""

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass


class StockStore(ABC):
    """Abstract persistence for BranchStock rows and the movement log."""

    @abstractmethod
    def get(self, branch_id: str, raw_item_id: int) -> Optional[BranchStock]:
        """Current row for the key, or None if it was never created."""
        pass

    @abstractmethod
    def put(self, branch_id: str, raw_item_id: int, quantity: Decimal) -> BranchStock:
        """Create or overwrite the row's quantity."""
        pass

    @abstractmethod
    def decrement_if_available(
        self, branch_id: str, raw_item_id: int, required: Decimal
    ) -> Optional[Decimal]:
        """Atomically subtract ``required`` if the row holds at least that much.

        Returns the new quantity, or None when the row is missing or short.
        """
        pass

    @abstractmethod
    def append_movement(self, movement: StockMovement) -> StockMovement:
        pass

    @abstractmethod
    def list_stock(self, branch_id: Optional[str] = None) -> List[BranchStock]:
        pass

    @abstractmethod
    def list_movements(
        self,
        branch_id: str,
        raw_item_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[StockMovement]:
        """Movements for a branch, most recent first."""
        pass

    @abstractmethod
    def savepoint(self) -> Savepoint:
        """Open a nested unit of work that can be rolled back on its own."""
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass


# ===== SQLALCHEMY BACKEND =====


class _SqlSavepoint(Savepoint):
    def __init__(self, transaction):
        self._transaction = transaction

    def commit(self) -> None:
        if self._transaction.is_active:
            self._transaction.commit()

    def rollback(self) -> None:
        if self._transaction.is_active:
            self._transaction.rollback()


class SqlStockStore(StockStore):
    """BranchStock and StockMovement tables through a SQLAlchemy session.

    Every SQLAlchemy failure is rolled back and re-raised as
    ``StockPersistenceError``.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, branch_id: str, raw_item_id: int) -> Optional[BranchStock]:
        try:
            return self.db.query(BranchStock).filter(
                BranchStock.branch_id == branch_id,
                BranchStock.raw_item_id == raw_item_id,
            ).populate_existing().first()
        except SQLAlchemyError as e:
            self._fail(e, f"read stock {stock_key(branch_id, raw_item_id)}", raw_item_id)

    def put(self, branch_id: str, raw_item_id: int, quantity: Decimal) -> BranchStock:
        try:
            row = self.get(branch_id, raw_item_id)
            if row is None:
                row = BranchStock(branch_id=branch_id, raw_item_id=raw_item_id, quantity=quantity)
                self.db.add(row)
            else:
                row.quantity = quantity
                row.updated_at = datetime.now(timezone.utc)
            self.db.flush()
            return row
        except SQLAlchemyError as e:
            self._fail(e, f"write stock {stock_key(branch_id, raw_item_id)}", raw_item_id)

    def decrement_if_available(
        self, branch_id: str, raw_item_id: int, required: Decimal
    ) -> Optional[Decimal]:
        criteria = (
            BranchStock.branch_id == branch_id,
            BranchStock.raw_item_id == raw_item_id,
        )
        try:
            result = self.db.execute(
                update(BranchStock)
                .where(*criteria, BranchStock.quantity >= required)
                .values(
                    quantity=BranchStock.quantity - required,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

            new_quantity = quantize(
                self.db.execute(select(BranchStock.quantity).where(*criteria)).scalar_one(),
                settings.quantity_scale,
            )
            # SQLite keeps NUMERIC as REAL; store the rounded value back so drift cannot accumulate.
            self.db.execute(
                update(BranchStock)
                .where(*criteria)
                .values(quantity=new_quantity)
                .execution_options(synchronize_session=False)
            )
            return new_quantity
        except SQLAlchemyError as e:
            self._fail(e, f"decrement stock {stock_key(branch_id, raw_item_id)}", raw_item_id)

    def append_movement(self, movement: StockMovement) -> StockMovement:
        try:
            self.db.add(movement)
            self.db.flush()
            return movement
        except SQLAlchemyError as e:
            self._fail(e, "append stock movement", movement.raw_item_id)

    def list_stock(self, branch_id: Optional[str] = None) -> List[BranchStock]:
        query = self.db.query(BranchStock)
        if branch_id is not None:
            query = query.filter(BranchStock.branch_id == branch_id)
        return query.order_by(BranchStock.branch_id, BranchStock.raw_item_id).populate_existing().all()

    def list_movements(
        self,
        branch_id: str,
        raw_item_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[StockMovement]:
        query = self.db.query(StockMovement).filter(StockMovement.branch_id == branch_id)
        if raw_item_id is not None:
            query = query.filter(StockMovement.raw_item_id == raw_item_id)
        return query.order_by(StockMovement.ts.desc(), StockMovement.id.desc()).limit(limit).all()

    def savepoint(self) -> Savepoint:
        return _SqlSavepoint(self.db.begin_nested())

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail(e, "commit stock changes")

    def rollback(self) -> None:
        self.db.rollback()

    def _fail(self, exc: Exception, action: str, raw_item_id: Optional[int] = None):
        self.db.rollback()
        logger.error(f"Stock store failed to {action}: {exc}", exc_info=True)
        raise StockPersistenceError(f"Failed to {action}", raw_item_id=raw_item_id) from exc


# ===== IN-MEMORY BACKEND =====


class _MemorySavepoint(Savepoint):
    def __init__(self, store: "MemoryStockStore"):
        self._store = store
        self._mark = len(store._journal())
        self._done = False

    def commit(self) -> None:
        self._done = True

    def rollback(self) -> None:
        if not self._done:
            self._store._undo(self._mark)
            self._done = True


class MemoryStockStore(StockStore):
    """Dict-backed store holding transient ORM objects.

    Thread-safe for distinct keys; callers serialize a single key with
    ``stock_locks`` exactly as they do for the SQL store. Each thread has its
    own unit of work: writes are journaled per thread, ``commit`` forgets the
    calling thread's journal and ``rollback`` undoes only its entries, so one
    writer never resets another writer's rows or movements.
    """

    def __init__(self):
        self._rows: Dict[Tuple[str, int], BranchStock] = {}
        self._movements: List[StockMovement] = []
        self._ids = itertools.count(1)
        self._movement_ids = itertools.count(1)
        self._guard = threading.Lock()
        self._local = threading.local()

    def get(self, branch_id: str, raw_item_id: int) -> Optional[BranchStock]:
        return self._rows.get(stock_key(branch_id, raw_item_id))

    def put(self, branch_id: str, raw_item_id: int, quantity: Decimal) -> BranchStock:
        key = stock_key(branch_id, raw_item_id)
        now = datetime.now(timezone.utc)
        with self._guard:
            row = self._rows.get(key)
            if row is None:
                self._journal().append(("put", key, None))
                row = BranchStock(
                    id=next(self._ids),
                    branch_id=branch_id,
                    raw_item_id=raw_item_id,
                    quantity=quantity,
                    updated_at=now,
                )
                self._rows[key] = row
            else:
                self._journal().append(("put", key, row.quantity))
                row.quantity = quantity
                row.updated_at = now
        return row

    def decrement_if_available(
        self, branch_id: str, raw_item_id: int, required: Decimal
    ) -> Optional[Decimal]:
        key = stock_key(branch_id, raw_item_id)
        with self._guard:
            row = self._rows.get(key)
            if row is None or row.quantity < required:
                return None
            row.quantity = row.quantity - required
            row.updated_at = datetime.now(timezone.utc)
            self._journal().append(("decrement", key, required))
            return row.quantity

    def append_movement(self, movement: StockMovement) -> StockMovement:
        with self._guard:
            movement.id = next(self._movement_ids)
            if movement.ts is None:
                movement.ts = datetime.now(timezone.utc)
            self._movements.append(movement)
            self._journal().append(("movement", movement))
        return movement

    def list_stock(self, branch_id: Optional[str] = None) -> List[BranchStock]:
        rows = [
            row for key, row in sorted(self._rows.items())
            if branch_id is None or key[0] == branch_id
        ]
        return rows

    def list_movements(
        self,
        branch_id: str,
        raw_item_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[StockMovement]:
        matches = [
            m for m in self._movements
            if m.branch_id == branch_id and (raw_item_id is None or m.raw_item_id == raw_item_id)
        ]
        matches.sort(key=lambda m: (m.ts, m.id), reverse=True)
        return matches[:limit]

    def savepoint(self) -> Savepoint:
        return _MemorySavepoint(self)

    def commit(self) -> None:
        self._journal().clear()

    def rollback(self) -> None:
        self._undo(0)

    def _journal(self) -> list:
        journal = getattr(self._local, "journal", None)
        if journal is None:
            journal = self._local.journal = []
        return journal

    def _undo(self, mark: int) -> None:
        """Undo the calling thread's journal entries from ``mark`` onwards, newest first."""
        journal = self._journal()
        with self._guard:
            while len(journal) > mark:
                entry = journal.pop()
                if entry[0] == "movement":
                    movement = entry[1]
                    self._movements = [m for m in self._movements if m is not movement]
                    continue
                _, key, value = entry
                if entry[0] == "decrement":
                    self._rows[key].quantity = self._rows[key].quantity + value
                elif value is None:
                    del self._rows[key]
                else:
                    self._rows[key].quantity = value
