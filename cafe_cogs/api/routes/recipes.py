"""Recipe line routes."""

from typing import List

from fastapi import APIRouter, Request, Response, status

from cafe_cogs.api.errors import http_error
from cafe_cogs.core.exceptions import CogsError
from cafe_cogs.core.rate_limit import limiter
from cafe_cogs.db.session import DbSession
from cafe_cogs.schemas.recipe import (
    BulkTemplateRequest,
    BulkTemplateResult,
    RecipeLineCreate,
    RecipeLineResponse,
    RecipeLineUpdate,
)
from cafe_cogs.services.recipe_service import RecipeService

router = APIRouter()


@router.get("/", response_model=List[RecipeLineResponse])
@limiter.limit("60/minute")
def list_all_recipe_lines(request: Request, db: DbSession):
    """Every recipe line, grouped by menu item."""
    return RecipeService(db).list_all_recipe_lines()


@router.get("/menu-items/{menu_item_id}", response_model=List[RecipeLineResponse])
@limiter.limit("60/minute")
def list_recipe_lines(request: Request, menu_item_id: int, db: DbSession):
    return RecipeService(db).list_recipe_lines(menu_item_id)


@router.post(
    "/menu-items/{menu_item_id}/lines",
    response_model=RecipeLineResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
def add_recipe_line(request: Request, menu_item_id: int, body: RecipeLineCreate, db: DbSession):
    try:
        return RecipeService(db).add_recipe_line(
            menu_item_id, body.raw_item_id, body.quantity, body.unit, notes=body.notes
        )
    except CogsError as e:
        raise http_error(e)


@router.post("/menu-items/{menu_item_id}/template", response_model=BulkTemplateResult)
@limiter.limit("10/minute")
def apply_template(request: Request, menu_item_id: int, body: BulkTemplateRequest, db: DbSession):
    """Apply template ingredients; unresolvable lines are skipped and reported."""
    try:
        return RecipeService(db).bulk_apply_template(menu_item_id, body.lines)
    except CogsError as e:
        raise http_error(e)


@router.get("/lines/{line_id}", response_model=RecipeLineResponse)
@limiter.limit("60/minute")
def get_recipe_line(request: Request, line_id: int, db: DbSession):
    try:
        return RecipeService(db).get_recipe_line(line_id)
    except CogsError as e:
        raise http_error(e)


@router.patch("/lines/{line_id}", response_model=RecipeLineResponse)
@limiter.limit("30/minute")
def update_recipe_line(request: Request, line_id: int, body: RecipeLineUpdate, db: DbSession):
    try:
        return RecipeService(db).update_recipe_line(
            line_id, quantity=body.quantity, unit=body.unit, notes=body.notes
        )
    except CogsError as e:
        raise http_error(e)


@router.delete("/lines/{line_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def remove_recipe_line(request: Request, line_id: int, db: DbSession):
    try:
        RecipeService(db).remove_recipe_line(line_id)
    except CogsError as e:
        raise http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
