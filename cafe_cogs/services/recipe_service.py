"""Recipe Service - per menu item raw-material consumption rules.

A recipe line says "selling one unit of this menu item consumes ``quantity``
``unit`` of this raw item". The unit must belong to the same dimension as the
raw item's base unit so it can always be normalized at deduction time.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from cafe_cogs.core.exceptions import (
    DuplicateRecipeLineError,
    RecipeLineNotFoundError,
    UnitMismatchError,
    ValidationError,
)
from cafe_cogs.core.units import Unit, get_compatible_units, normalize, to_decimal
from cafe_cogs.models.raw_item import RawItem
from cafe_cogs.models.recipe import RecipeLine
from cafe_cogs.schemas.cogs import OrderLineItem
from cafe_cogs.schemas.recipe import (
    BulkTemplateResult,
    RecipeLineResponse,
    SkippedTemplateLine,
    TemplateLine,
)
from cafe_cogs.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


@dataclass
class Requirement:
    """Raw consumption derived from one recipe line or addon of a sold line item.

    ``quantity`` is in the raw item's base unit. When the requirement cannot
    be derived (raw item gone, unit not convertible) ``quantity`` is None and
    ``error`` says why.
    """

    raw_item_id: int
    sellable_item_id: int
    source: str  # recipe | addon
    raw_item: Optional[RawItem] = None
    quantity: Optional[Decimal] = None
    error: Optional[str] = None


class RecipeService:
    """Create, list and remove recipe lines; apply ingredient templates."""

    def __init__(self, db: Session):
        self.db = db
        self.catalog = CatalogService(db)

    def add_recipe_line(
        self,
        menu_item_id: int,
        raw_item_id: int,
        quantity: Union[Decimal, int, float, str],
        unit: Union[Unit, str],
        notes: Optional[str] = None,
    ) -> RecipeLine:
        """Attach a raw item requirement to a menu item.

        Raises:
            MenuItemNotFoundError / RawItemNotFoundError: unknown references.
            UnitMismatchError: quantity <= 0 or unit incompatible with the base unit.
            DuplicateRecipeLineError: the menu item already uses this raw item.
        """
        menu_item = self.catalog.get_menu_item(menu_item_id)
        raw_item = self.catalog.get_raw_item(raw_item_id)
        qty, line_unit = self._validate(raw_item, quantity, unit)

        existing = self.db.query(RecipeLine).filter(
            RecipeLine.menu_item_id == menu_item.id,
            RecipeLine.raw_item_id == raw_item.id,
        ).first()
        if existing:
            raise DuplicateRecipeLineError(menu_item.id, raw_item.id)

        line = RecipeLine(
            menu_item_id=menu_item.id,
            raw_item_id=raw_item.id,
            quantity=qty,
            unit=line_unit.value,
            notes=notes,
        )
        self.db.add(line)
        self.db.commit()
        self.db.refresh(line)
        logger.info(
            f"Recipe line added: menu item {menu_item.id} uses {qty} {line_unit.value} of '{raw_item.name}'"
        )
        return line

    def update_recipe_line(
        self,
        line_id: int,
        quantity: Optional[Union[Decimal, int, float, str]] = None,
        unit: Optional[Union[Unit, str]] = None,
        notes: Optional[str] = None,
    ) -> RecipeLine:
        line = self.get_recipe_line(line_id)
        raw_item = self.catalog.get_raw_item(line.raw_item_id)
        qty, line_unit = self._validate(
            raw_item,
            quantity if quantity is not None else line.quantity,
            unit if unit is not None else line.unit,
        )
        line.quantity = qty
        line.unit = line_unit.value
        if notes is not None:
            line.notes = notes
        self.db.commit()
        self.db.refresh(line)
        return line

    def get_recipe_line(self, line_id: int) -> RecipeLine:
        line = self.db.query(RecipeLine).filter(RecipeLine.id == line_id).first()
        if not line:
            raise RecipeLineNotFoundError(line_id)
        return line

    def remove_recipe_line(self, line_id: int) -> None:
        line = self.get_recipe_line(line_id)
        self.db.delete(line)
        self.db.commit()

    def list_recipe_lines(self, menu_item_id: int) -> List[RecipeLine]:
        return self.db.query(RecipeLine).filter(
            RecipeLine.menu_item_id == menu_item_id
        ).order_by(RecipeLine.id).all()

    def list_all_recipe_lines(self) -> List[RecipeLine]:
        return self.db.query(RecipeLine).order_by(
            RecipeLine.menu_item_id, RecipeLine.id
        ).all()

    def bulk_apply_template(
        self,
        menu_item_id: int,
        lines: List[TemplateLine],
    ) -> BulkTemplateResult:
        """Apply a list of template ingredients to a menu item, best effort.

        Each resolvable line is committed on its own. Lines whose raw item
        cannot be resolved, whose unit does not fit, or that duplicate an
        existing line are skipped and reported; nothing already added is
        rolled back.
        """
        menu_item = self.catalog.get_menu_item(menu_item_id)
        result = BulkTemplateResult(menu_item_id=menu_item.id)

        for template in lines:
            raw_item = self._resolve_template_raw_item(template)
            if raw_item is None:
                result.skipped.append(SkippedTemplateLine(
                    raw_item_code=template.raw_item_code,
                    raw_item_id=template.raw_item_id,
                    reason="unresolved_raw_item",
                    message=f"Raw item '{template.raw_item_code or template.raw_item_id}' not found",
                ))
                continue

            try:
                line = self.add_recipe_line(
                    menu_item.id,
                    raw_item.id,
                    template.quantity,
                    template.unit,
                    notes=template.notes,
                )
            except UnitMismatchError as e:
                result.skipped.append(SkippedTemplateLine(
                    raw_item_code=raw_item.code,
                    raw_item_id=raw_item.id,
                    reason="unit_mismatch",
                    message=str(e),
                ))
                continue
            except DuplicateRecipeLineError as e:
                result.skipped.append(SkippedTemplateLine(
                    raw_item_code=raw_item.code,
                    raw_item_id=raw_item.id,
                    reason="duplicate",
                    message=str(e),
                ))
                continue

            result.added.append(RecipeLineResponse.model_validate(line))

        if result.skipped:
            logger.warning(
                f"Template for menu item {menu_item.id}: {len(result.added)} line(s) added, "
                f"{len(result.skipped)} skipped"
            )
        return result

    def expand_line_item(self, line_item: OrderLineItem) -> List[Requirement]:
        """Recipe lines and addons of a sold line, scaled by quantity sold."""
        requirements = []
        for line in self.list_recipe_lines(line_item.sellable_item_id):
            requirements.append(self._requirement(
                line_item, line.raw_item_id, line.quantity, line.unit, "recipe"
            ))
        for addon in line_item.addons:
            requirements.append(self._requirement(
                line_item, addon.raw_item_id, addon.quantity, addon.unit, "addon"
            ))
        return requirements

    def _requirement(self, line_item, raw_item_id, quantity, unit, source) -> Requirement:
        req = Requirement(
            raw_item_id=raw_item_id,
            sellable_item_id=line_item.sellable_item_id,
            source=source,
        )
        raw_item = self.catalog.find_raw_item(raw_item_id)
        if raw_item is None or raw_item.is_deleted:
            req.error = f"Raw item {raw_item_id} not found"
            return req
        req.raw_item = raw_item
        try:
            req.quantity = normalize(
                to_decimal(quantity) * line_item.quantity_sold, unit, raw_item.base_unit
            )
        except ValidationError as e:
            req.error = str(e)
        return req

    def _resolve_template_raw_item(self, template: TemplateLine) -> Optional[RawItem]:
        if template.raw_item_code:
            raw_item = self.catalog.get_raw_item_by_code(template.raw_item_code)
        else:
            raw_item = self.catalog.find_raw_item(template.raw_item_id)
        if raw_item is None or raw_item.is_deleted:
            return None
        return raw_item

    def _validate(self, raw_item: RawItem, quantity, unit) -> tuple:
        qty = to_decimal(quantity)
        line_unit = Unit.parse(unit)
        if qty <= 0:
            raise UnitMismatchError(
                line_unit.value, raw_item.base_unit, raw_item.name,
                message=f"Quantity must be greater than 0 (got {qty})",
            )
        if line_unit not in get_compatible_units(raw_item.unit):
            raise UnitMismatchError(line_unit.value, raw_item.base_unit, raw_item.name)
        return qty, line_unit
