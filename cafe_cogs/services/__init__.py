# Services module

from cafe_cogs.services.catalog_service import CatalogService
from cafe_cogs.services.cogs_service import CogsCalculator
from cafe_cogs.services.recipe_service import RecipeService, Requirement
from cafe_cogs.services.stock_alert_service import StockAlertService
from cafe_cogs.services.stock_deduction_service import StockDeductionService
from cafe_cogs.services.stock_ledger_service import StockLedgerService
from cafe_cogs.services.stock_store import MemoryStockStore, SqlStockStore, StockStore

__all__ = [
    "CatalogService",
    "CogsCalculator",
    "RecipeService",
    "Requirement",
    "StockAlertService",
    "StockDeductionService",
    "StockLedgerService",
    "StockStore",
    "SqlStockStore",
    "MemoryStockStore",
]
