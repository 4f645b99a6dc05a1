"""Raw item and menu item schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, Field

from cafe_cogs.core.units import UnknownUnitError, Unit


def parse_unit_field(value):
    """Pydantic ``before`` validator body shared by every unit field."""
    if value is None:
        return value
    try:
        return Unit.parse(value)
    except UnknownUnitError as exc:
        raise ValueError(str(exc)) from exc


UnitField = Annotated[Unit, BeforeValidator(parse_unit_field)]


class RawItemBase(BaseModel):
    """Base raw item schema."""

    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    base_unit: UnitField
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    category: Optional[str] = None
    min_stock_level: Decimal = Field(default=Decimal("0"), ge=0)
    max_stock_level: Optional[Decimal] = Field(default=None, ge=0)


class RawItemCreate(RawItemBase):
    """Raw item creation schema."""


class RawItemUpdate(BaseModel):
    """Raw item update schema. Only provided fields change."""

    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    base_unit: Optional[UnitField] = None
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    min_stock_level: Optional[Decimal] = Field(default=None, ge=0)
    max_stock_level: Optional[Decimal] = Field(default=None, ge=0)
    active: Optional[bool] = None


class RawItemResponse(BaseModel):
    """Raw item response schema."""

    id: int
    code: str
    name: str
    base_unit: str
    unit_cost: Decimal
    category: Optional[str] = None
    min_stock_level: Decimal
    max_stock_level: Optional[Decimal] = None
    active: bool
    is_deleted: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MenuItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    category: Optional[str] = None


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    price: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    active: Optional[bool] = None


class MenuItemResponse(BaseModel):
    id: int
    name: str
    price: Decimal
    category: Optional[str] = None
    active: bool

    model_config = {"from_attributes": True}
