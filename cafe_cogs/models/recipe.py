"""Recipe (bill of materials) line model."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_cogs.db.base import Base, TimestampMixin


class RecipeLine(Base, TimestampMixin):
    """One raw-material requirement of a menu item, per unit sold."""

    __tablename__ = "recipe_lines"
    __table_args__ = (
        UniqueConstraint("menu_item_id", "raw_item_id", name="uq_recipe_line_item_raw"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    menu_item_id: Mapped[int] = mapped_column(
        ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    raw_item_id: Mapped[int] = mapped_column(
        ForeignKey("raw_items.id"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Relationships
    menu_item: Mapped["MenuItem"] = relationship("MenuItem", back_populates="recipe_lines")
    raw_item: Mapped["RawItem"] = relationship("RawItem", back_populates="recipe_lines")


# Forward references
from cafe_cogs.models.menu_item import MenuItem
from cafe_cogs.models.raw_item import RawItem
