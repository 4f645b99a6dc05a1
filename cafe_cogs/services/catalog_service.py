"""Catalog Service - raw materials and sellable menu items.

Raw items are addressed by id or by their unique code. They are never
physically deleted because historical stock movements reference them;
``deactivate_raw_item`` soft-deletes instead.

Once a raw item is used by a recipe line or has a branch stock row, its base
unit is locked: stored quantities and unit cost are expressed in that unit,
so changing it would silently rescale every existing figure.
"""

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cafe_cogs.core.exceptions import (
    BaseUnitLockedError,
    DuplicateCodeError,
    MenuItemNotFoundError,
    RawItemNotFoundError,
)
from cafe_cogs.core.units import Unit
from cafe_cogs.models.menu_item import MenuItem
from cafe_cogs.models.raw_item import RawItem
from cafe_cogs.models.recipe import RecipeLine
from cafe_cogs.models.stock import BranchStock
from cafe_cogs.schemas.catalog import (
    MenuItemCreate,
    MenuItemUpdate,
    RawItemCreate,
    RawItemUpdate,
)

logger = logging.getLogger(__name__)


class CatalogService:
    """CRUD over raw items and menu items."""

    def __init__(self, db: Session):
        self.db = db

    # ===== RAW ITEMS =====

    def create_raw_item(self, data: RawItemCreate) -> RawItem:
        if self._code_taken(data.code):
            raise DuplicateCodeError(data.code)

        item = RawItem(
            code=data.code,
            name=data.name,
            base_unit=data.base_unit.value,
            unit_cost=data.unit_cost,
            category=data.category,
            min_stock_level=data.min_stock_level,
            max_stock_level=data.max_stock_level,
            active=True,
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Raw item created: {item.code} ({item.name}) in {item.base_unit}")
        return item

    def get_raw_item(self, raw_item_id: int) -> RawItem:
        item = self.db.query(RawItem).filter(RawItem.id == raw_item_id).first()
        if not item:
            raise RawItemNotFoundError(raw_item_id)
        return item

    def find_raw_item(self, raw_item_id: int) -> Optional[RawItem]:
        return self.db.query(RawItem).filter(RawItem.id == raw_item_id).first()

    def get_raw_item_by_code(self, code: str) -> Optional[RawItem]:
        return self.db.query(RawItem).filter(RawItem.code == code).first()

    def list_raw_items(
        self,
        include_inactive: bool = False,
        category: Optional[str] = None,
    ) -> List[RawItem]:
        query = self.db.query(RawItem)
        if not include_inactive:
            query = query.filter(RawItem.not_deleted(), RawItem.active.is_(True))
        if category:
            query = query.filter(RawItem.category == category)
        return query.order_by(RawItem.name).all()

    def update_raw_item(self, raw_item_id: int, data: RawItemUpdate) -> RawItem:
        item = self.get_raw_item(raw_item_id)
        changes = data.model_dump(exclude_unset=True)

        new_code = changes.get("code")
        if new_code and new_code != item.code and self._code_taken(new_code):
            raise DuplicateCodeError(new_code)

        new_unit = changes.get("base_unit")
        if new_unit is not None:
            new_unit = Unit.parse(new_unit)
            if new_unit.value != item.base_unit:
                self._ensure_base_unit_unlocked(item)
            changes["base_unit"] = new_unit.value

        for field, value in changes.items():
            setattr(item, field, value)

        self.db.commit()
        self.db.refresh(item)
        return item

    def deactivate_raw_item(self, raw_item_id: int) -> RawItem:
        item = self.get_raw_item(raw_item_id)
        item.active = False
        item.soft_delete()
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Raw item deactivated: {item.code}")
        return item

    def _code_taken(self, code: str) -> bool:
        return self.db.query(RawItem.id).filter(RawItem.code == code).first() is not None

    def _ensure_base_unit_unlocked(self, item: RawItem) -> None:
        recipe_lines = self.db.query(func.count(RecipeLine.id)).filter(
            RecipeLine.raw_item_id == item.id
        ).scalar() or 0
        stock_rows = self.db.query(func.count(BranchStock.id)).filter(
            BranchStock.raw_item_id == item.id
        ).scalar() or 0
        if recipe_lines or stock_rows:
            raise BaseUnitLockedError(item.id, recipe_lines, stock_rows)

    # ===== MENU ITEMS =====

    def create_menu_item(self, data: MenuItemCreate) -> MenuItem:
        item = MenuItem(
            name=data.name,
            price=data.price,
            category=data.category,
            active=True,
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def get_menu_item(self, menu_item_id: int) -> MenuItem:
        item = self.db.query(MenuItem).filter(MenuItem.id == menu_item_id).first()
        if not item:
            raise MenuItemNotFoundError(menu_item_id)
        return item

    def find_menu_item(self, menu_item_id: int) -> Optional[MenuItem]:
        return self.db.query(MenuItem).filter(MenuItem.id == menu_item_id).first()

    def list_menu_items(self, include_inactive: bool = False) -> List[MenuItem]:
        query = self.db.query(MenuItem)
        if not include_inactive:
            query = query.filter(MenuItem.active.is_(True))
        return query.order_by(MenuItem.name).all()

    def update_menu_item(self, menu_item_id: int, data: MenuItemUpdate) -> MenuItem:
        item = self.get_menu_item(menu_item_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(item, field, value)
        self.db.commit()
        self.db.refresh(item)
        return item
