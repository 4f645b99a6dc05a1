"""Tests for per-key serialization of stock writes."""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from cafe_cogs.core.locks import KeyedLock, stock_key
from cafe_cogs.services.stock_ledger_service import StockLedgerService
from cafe_cogs.services.stock_store import MemoryStockStore

BRANCH = "main"
RAW_ITEM_ID = 1


class TestKeyedLock:
    def test_same_key_is_reentrant(self):
        locks = KeyedLock()
        with locks.hold("a"):
            with locks.hold("a"):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_hold_many_deduplicates_keys(self):
        locks = KeyedLock()
        with locks.hold_many([stock_key("b", 1), stock_key("a", 1), stock_key("b", 1)]):
            assert len(locks) == 2
        assert len(locks) == 0

    def test_registry_drops_released_keys(self):
        locks = KeyedLock()
        for order_id in range(50):
            with locks.hold(("order", order_id)):
                pass
        assert len(locks) == 0

    def test_hold_serializes_critical_section(self):
        locks = KeyedLock()
        inside = []
        overlaps = []

        def worker():
            with locks.hold("k"):
                inside.append(1)
                if len(inside) > 1:
                    overlaps.append(1)
                threading.Event().wait(0.001)
                inside.pop()

        with ThreadPoolExecutor(max_workers=8) as pool:
            for _ in range(40):
                pool.submit(worker)

        assert overlaps == []


class TestConcurrentConsumption:
    def test_concurrent_sales_never_drive_stock_negative(self):
        store = MemoryStockStore()
        store.put(BRANCH, RAW_ITEM_ID, Decimal("100"))
        ledger = StockLedgerService(None, store=store)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(
                lambda n: ledger.consume(BRANCH, RAW_ITEM_ID, Decimal("7"), actor=f"till-{n}", reference=f"ORD-{n}"),
                range(40),
            ))

        deducted = [m for m in results if m is not None]
        assert len(deducted) == 14
        assert ledger.get_stock(BRANCH, RAW_ITEM_ID) == Decimal("2")

        movements = ledger.get_movements(BRANCH, RAW_ITEM_ID, limit=100)
        assert len(movements) == 14
        for m in movements:
            assert m.new_quantity >= 0
            assert m.new_quantity == m.previous_quantity + m.delta

    def test_movement_chain_is_continuous(self):
        store = MemoryStockStore()
        store.put(BRANCH, RAW_ITEM_ID, Decimal("50"))
        ledger = StockLedgerService(None, store=store)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(
                lambda n: ledger.consume(BRANCH, RAW_ITEM_ID, Decimal("1"), actor="till"),
                range(50),
            ))

        quantities = sorted(m.previous_quantity for m in ledger.get_movements(BRANCH, limit=100))
        assert quantities == [Decimal(n) for n in range(1, 51)]
        assert ledger.get_stock(BRANCH, RAW_ITEM_ID) == Decimal("0")


class TestMemoryStoreSavepoint:
    def test_rollback_restores_quantities_and_movements(self):
        store = MemoryStockStore()
        store.put(BRANCH, RAW_ITEM_ID, Decimal("10"))
        store.commit()
        ledger = StockLedgerService(None, store=store)

        savepoint = store.savepoint()
        ledger.consume(BRANCH, RAW_ITEM_ID, Decimal("4"), actor="till")
        savepoint.rollback()

        assert ledger.get_stock(BRANCH, RAW_ITEM_ID) == Decimal("10")
        assert ledger.get_movements(BRANCH) == []

    def test_rollback_leaves_other_writers_alone(self):
        store = MemoryStockStore()
        store.put(BRANCH, 1, Decimal("10"))
        store.put(BRANCH, 2, Decimal("10"))
        store.commit()
        ledger = StockLedgerService(None, store=store)

        savepoint = store.savepoint()
        ledger.consume(BRANCH, 1, Decimal("4"), actor="till-a")

        def other_writer():
            ledger.consume(BRANCH, 2, Decimal("3"), actor="till-b")
            store.commit()

        writer = threading.Thread(target=other_writer)
        writer.start()
        writer.join()

        savepoint.rollback()

        assert ledger.get_stock(BRANCH, 1) == Decimal("10")
        assert ledger.get_stock(BRANCH, 2) == Decimal("7")
        assert [m.actor for m in ledger.get_movements(BRANCH)] == ["till-b"]
