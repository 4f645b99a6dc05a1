"""Menu item routes."""

from typing import List

from fastapi import APIRouter, Request, status

from cafe_cogs.api.errors import http_error
from cafe_cogs.core.exceptions import CogsError
from cafe_cogs.core.rate_limit import limiter
from cafe_cogs.db.session import DbSession
from cafe_cogs.schemas.catalog import MenuItemCreate, MenuItemResponse, MenuItemUpdate
from cafe_cogs.services.catalog_service import CatalogService

router = APIRouter()


@router.get("/", response_model=List[MenuItemResponse])
@limiter.limit("60/minute")
def list_menu_items(request: Request, db: DbSession, include_inactive: bool = False):
    return CatalogService(db).list_menu_items(include_inactive=include_inactive)


@router.post("/", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_menu_item(request: Request, body: MenuItemCreate, db: DbSession):
    return CatalogService(db).create_menu_item(body)


@router.get("/{menu_item_id}", response_model=MenuItemResponse)
@limiter.limit("60/minute")
def get_menu_item(request: Request, menu_item_id: int, db: DbSession):
    try:
        return CatalogService(db).get_menu_item(menu_item_id)
    except CogsError as e:
        raise http_error(e)


@router.patch("/{menu_item_id}", response_model=MenuItemResponse)
@limiter.limit("30/minute")
def update_menu_item(request: Request, menu_item_id: int, body: MenuItemUpdate, db: DbSession):
    try:
        return CatalogService(db).update_menu_item(menu_item_id, body)
    except CogsError as e:
        raise http_error(e)
