"""Branch stock routes: levels, receipts, removals, transfers and movement history."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query, Request, status

from cafe_cogs.api.errors import http_error
from cafe_cogs.core.exceptions import CogsError
from cafe_cogs.core.rate_limit import limiter
from cafe_cogs.db.session import DbSession
from cafe_cogs.schemas.stock import (
    BranchStockResponse,
    LowStockItem,
    SetStockRequest,
    StockInRequest,
    StockMovementResponse,
    StockOutRequest,
    StockTransferRequest,
    StockTransferResponse,
)
from cafe_cogs.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[BranchStockResponse])
@limiter.limit("60/minute")
def list_branch_stock(request: Request, db: DbSession, branch_id: Optional[str] = None):
    return StockLedgerService(db).list_branch_stock(branch_id)


@router.get("/low", response_model=List[LowStockItem])
@limiter.limit("60/minute")
def get_low_stock_items(request: Request, db: DbSession, branch_id: Optional[str] = None):
    """Stock rows at or below their raw item's minimum level."""
    return StockLedgerService(db).get_low_stock_items(branch_id)


@router.get("/movements", response_model=List[StockMovementResponse])
@limiter.limit("60/minute")
def get_movements(
    request: Request,
    db: DbSession,
    branch_id: str,
    raw_item_id: Optional[int] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
):
    """Movement history for a branch, most recent first."""
    return StockLedgerService(db).get_movements(branch_id, raw_item_id, limit)


@router.get("/{branch_id}/{raw_item_id}")
@limiter.limit("60/minute")
def get_stock(request: Request, branch_id: str, raw_item_id: int, db: DbSession):
    quantity = StockLedgerService(db).get_stock(branch_id, raw_item_id)
    return {"branch_id": branch_id, "raw_item_id": raw_item_id, "quantity": quantity}


@router.put("/", response_model=StockMovementResponse)
@limiter.limit("30/minute")
def set_stock(request: Request, body: SetStockRequest, db: DbSession):
    """Set an absolute quantity, e.g. after a physical count."""
    try:
        return StockLedgerService(db).set_stock(
            body.branch_id,
            body.raw_item_id,
            body.quantity,
            body.actor,
            movement_type=body.movement_type,
            notes=body.notes,
            reference=body.reference,
        )
    except CogsError as e:
        raise http_error(e)


@router.post("/in", response_model=StockMovementResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def record_stock_in(request: Request, body: StockInRequest, db: DbSession):
    try:
        return StockLedgerService(db).record_stock_in(
            body.branch_id,
            body.raw_item_id,
            body.quantity,
            body.actor,
            unit=body.unit,
            notes=body.notes,
            reference=body.reference,
        )
    except CogsError as e:
        raise http_error(e)


@router.post("/out", response_model=StockMovementResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def record_stock_out(request: Request, body: StockOutRequest, db: DbSession):
    """Record waste or a manual removal. Rejected if it would drive stock negative."""
    try:
        return StockLedgerService(db).record_stock_out(
            body.branch_id,
            body.raw_item_id,
            body.quantity,
            body.actor,
            unit=body.unit,
            movement_type=body.movement_type,
            notes=body.notes,
        )
    except CogsError as e:
        raise http_error(e)


@router.post("/transfer", response_model=StockTransferResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def transfer_stock(request: Request, body: StockTransferRequest, db: DbSession):
    try:
        outgoing, incoming = StockLedgerService(db).transfer_stock(
            body.from_branch_id,
            body.to_branch_id,
            body.raw_item_id,
            body.quantity,
            body.actor,
            unit=body.unit,
            notes=body.notes,
        )
    except CogsError as e:
        raise http_error(e)
    return StockTransferResponse(
        outgoing=StockMovementResponse.model_validate(outgoing),
        incoming=StockMovementResponse.model_validate(incoming),
    )
