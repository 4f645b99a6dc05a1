"""COGS routes: order deduction, previews, margins and booked cost lookups."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Request

from cafe_cogs.api.errors import http_error
from cafe_cogs.core.exceptions import CogsError
from cafe_cogs.core.rate_limit import limiter
from cafe_cogs.db.session import DbSession
from cafe_cogs.schemas.cogs import (
    CogsSummary,
    DeductionRequest,
    DeductionResult,
    ItemCost,
    OrderCogsPreview,
    OrderCogsPreviewRequest,
    OrderCogsResponse,
)
from cafe_cogs.services.cogs_service import CogsCalculator
from cafe_cogs.services.stock_deduction_service import StockDeductionService

router = APIRouter()


@router.post("/deduct", response_model=DeductionResult)
@limiter.limit("120/minute")
def deduct_for_order(request: Request, body: DeductionRequest, db: DbSession):
    """Deduct stock for a completed order and book its cost of goods.

    Shortages are reported in the result, not as errors. Re-posting the same
    order_id returns the stored outcome with ``already_processed`` set.
    """
    try:
        return StockDeductionService(db).deduct_for_order(
            body.order_id,
            body.branch_id,
            body.line_items,
            body.actor,
            strict=body.strict,
        )
    except CogsError as e:
        raise http_error(e)


@router.post("/preview", response_model=OrderCogsPreview)
@limiter.limit("60/minute")
def preview_order_cogs(request: Request, body: OrderCogsPreviewRequest, db: DbSession):
    """Cost, revenue and projected shortages of an order, without deducting."""
    try:
        return CogsCalculator(db).calculate_order_cogs(body.line_items, branch_id=body.branch_id)
    except CogsError as e:
        raise http_error(e)


@router.get("/margins", response_model=List[ItemCost])
@limiter.limit("30/minute")
def margin_report(request: Request, db: DbSession, include_inactive: bool = False):
    return CogsCalculator(db).margin_report(include_inactive=include_inactive)


@router.get("/summary", response_model=CogsSummary)
@limiter.limit("30/minute")
def summarize_cogs(
    request: Request,
    db: DbSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    branch_id: Optional[str] = None,
):
    return CogsCalculator(db).summarize_cogs(start=start, end=end, branch_id=branch_id)


@router.get("/menu-items/{menu_item_id}", response_model=ItemCost)
@limiter.limit("60/minute")
def calculate_item_cost(request: Request, menu_item_id: int, db: DbSession):
    try:
        return CogsCalculator(db).calculate_cost(menu_item_id)
    except CogsError as e:
        raise http_error(e)


@router.get("/orders/{order_id}", response_model=OrderCogsResponse)
@limiter.limit("60/minute")
def get_order_cogs(request: Request, order_id: str, db: DbSession):
    try:
        return CogsCalculator(db).get_order_cogs(order_id)
    except CogsError as e:
        raise http_error(e)
