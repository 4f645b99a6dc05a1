"""Stock alert routes."""

from typing import List, Optional

from fastapi import APIRouter, Query, Request

from cafe_cogs.api.errors import http_error
from cafe_cogs.core.exceptions import CogsError
from cafe_cogs.core.rate_limit import limiter
from cafe_cogs.db.session import DbSession
from cafe_cogs.schemas.stock import ResolveAlertRequest, StockAlertResponse
from cafe_cogs.services.stock_alert_service import StockAlertService

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def get_alerts(
    request: Request,
    db: DbSession,
    branch_id: Optional[str] = None,
    severity: Optional[str] = Query(default=None, pattern="^(critical|warning)$"),
    limit: int = Query(default=100, ge=1, le=1000),
):
    """Live scan of items that are out of stock or at/below their minimum."""
    return StockAlertService.get_alerts(db, branch_id=branch_id, severity=severity, limit=limit)


@router.get("/active", response_model=List[StockAlertResponse])
@limiter.limit("60/minute")
def list_active_alerts(
    request: Request,
    db: DbSession,
    branch_id: Optional[str] = None,
    alert_type: Optional[str] = None,
):
    return StockAlertService(db).list_active_alerts(branch_id=branch_id, alert_type=alert_type)


@router.post("/{alert_id}/resolve", response_model=StockAlertResponse)
@limiter.limit("30/minute")
def resolve_alert(request: Request, alert_id: int, body: ResolveAlertRequest, db: DbSession):
    try:
        return StockAlertService(db).resolve_alert(alert_id, body.resolved_by)
    except CogsError as e:
        raise http_error(e)


@router.post("/{alert_id}/read", response_model=StockAlertResponse)
@limiter.limit("60/minute")
def mark_alert_read(request: Request, alert_id: int, db: DbSession):
    try:
        return StockAlertService(db).mark_alert_read(alert_id)
    except CogsError as e:
        raise http_error(e)
