"""Recipe line schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from cafe_cogs.schemas.catalog import UnitField


class RecipeLineCreate(BaseModel):
    """Recipe line creation schema."""

    raw_item_id: int
    quantity: Decimal = Field(gt=0)
    unit: UnitField
    notes: Optional[str] = None


class RecipeLineUpdate(BaseModel):
    quantity: Optional[Decimal] = Field(default=None, gt=0)
    unit: Optional[UnitField] = None
    notes: Optional[str] = None


class RecipeLineResponse(BaseModel):
    """Recipe line response schema."""

    id: int
    menu_item_id: int
    raw_item_id: int
    quantity: Decimal
    unit: str
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TemplateLine(BaseModel):
    """A template ingredient, addressed by raw item code or id."""

    raw_item_code: Optional[str] = None
    raw_item_id: Optional[int] = None
    quantity: Decimal = Field(gt=0)
    unit: UnitField
    notes: Optional[str] = None

    @model_validator(mode="after")
    def require_reference(self) -> "TemplateLine":
        if not self.raw_item_code and self.raw_item_id is None:
            raise ValueError("raw_item_code or raw_item_id is required")
        return self


class BulkTemplateRequest(BaseModel):
    lines: List[TemplateLine]


class SkippedTemplateLine(BaseModel):
    """A template line that was not applied, and why."""

    raw_item_code: Optional[str] = None
    raw_item_id: Optional[int] = None
    reason: str  # unresolved_raw_item | unit_mismatch | duplicate
    message: str


class BulkTemplateResult(BaseModel):
    menu_item_id: int
    added: List[RecipeLineResponse] = []
    skipped: List[SkippedTemplateLine] = []
