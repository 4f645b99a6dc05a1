"""Raw material catalog model."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_cogs.core.units import Unit
from cafe_cogs.db.base import Base, SoftDeleteMixin, TimestampMixin


class RawItem(Base, TimestampMixin, SoftDeleteMixin):
    """A raw material (beans, milk, cups) with its unit cost per base unit."""

    __tablename__ = "raw_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    base_unit: Mapped[str] = mapped_column(String(20), nullable=False)  # kg, g, liter, ml, piece, box, bag
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    min_stock_level: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0, nullable=False)
    max_stock_level: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    recipe_lines: Mapped[list["RecipeLine"]] = relationship("RecipeLine", back_populates="raw_item")
    branch_stock: Mapped[list["BranchStock"]] = relationship("BranchStock", back_populates="raw_item")

    @property
    def unit(self) -> Unit:
        return Unit.parse(self.base_unit)


# Forward references
from cafe_cogs.models.recipe import RecipeLine
from cafe_cogs.models.stock import BranchStock
