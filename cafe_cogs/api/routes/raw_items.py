"""Raw item catalog routes."""

from typing import List, Optional

from fastapi import APIRouter, Request, status

from cafe_cogs.api.errors import http_error
from cafe_cogs.core.exceptions import CogsError
from cafe_cogs.core.rate_limit import limiter
from cafe_cogs.core.units import get_compatible_units
from cafe_cogs.db.session import DbSession
from cafe_cogs.schemas.catalog import RawItemCreate, RawItemResponse, RawItemUpdate
from cafe_cogs.services.catalog_service import CatalogService

router = APIRouter()


@router.get("/", response_model=List[RawItemResponse])
@limiter.limit("60/minute")
def list_raw_items(
    request: Request,
    db: DbSession,
    include_inactive: bool = False,
    category: Optional[str] = None,
):
    """List raw items, active only unless asked otherwise."""
    return CatalogService(db).list_raw_items(include_inactive=include_inactive, category=category)


@router.post("/", response_model=RawItemResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_raw_item(request: Request, body: RawItemCreate, db: DbSession):
    try:
        return CatalogService(db).create_raw_item(body)
    except CogsError as e:
        raise http_error(e)


@router.get("/{raw_item_id}", response_model=RawItemResponse)
@limiter.limit("60/minute")
def get_raw_item(request: Request, raw_item_id: int, db: DbSession):
    try:
        return CatalogService(db).get_raw_item(raw_item_id)
    except CogsError as e:
        raise http_error(e)


@router.get("/{raw_item_id}/compatible-units", response_model=List[str])
@limiter.limit("60/minute")
def list_compatible_units(request: Request, raw_item_id: int, db: DbSession):
    """Units a recipe line or stock entry for this raw item may use."""
    try:
        raw_item = CatalogService(db).get_raw_item(raw_item_id)
    except CogsError as e:
        raise http_error(e)
    return [u.value for u in get_compatible_units(raw_item.unit)]


@router.patch("/{raw_item_id}", response_model=RawItemResponse)
@limiter.limit("30/minute")
def update_raw_item(request: Request, raw_item_id: int, body: RawItemUpdate, db: DbSession):
    """Update a raw item. Changing the base unit fails once recipes or stock use it."""
    try:
        return CatalogService(db).update_raw_item(raw_item_id, body)
    except CogsError as e:
        raise http_error(e)


@router.delete("/{raw_item_id}", response_model=RawItemResponse)
@limiter.limit("30/minute")
def deactivate_raw_item(request: Request, raw_item_id: int, db: DbSession):
    """Soft-delete a raw item; its movement history is kept."""
    try:
        return CatalogService(db).deactivate_raw_item(raw_item_id)
    except CogsError as e:
        raise http_error(e)
