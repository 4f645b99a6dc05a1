"""API routes."""

from fastapi import APIRouter

from cafe_cogs.api.routes import alerts, cogs, menu_items, raw_items, recipes, stock

api_router = APIRouter()

api_router.include_router(raw_items.router, prefix="/raw-items", tags=["catalog"])
api_router.include_router(menu_items.router, prefix="/menu-items", tags=["catalog"])
api_router.include_router(recipes.router, prefix="/recipes", tags=["recipes"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
api_router.include_router(cogs.router, prefix="/cogs", tags=["cogs"])
api_router.include_router(alerts.router, prefix="/alerts", tags=["alerts", "stock"])
