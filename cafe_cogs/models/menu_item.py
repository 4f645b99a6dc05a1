"""Sellable menu item model."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_cogs.db.base import Base, TimestampMixin


class MenuItem(Base, TimestampMixin):
    """Something the café sells; its recipe lines define raw consumption."""

    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    recipe_lines: Mapped[list["RecipeLine"]] = relationship(
        "RecipeLine", back_populates="menu_item", cascade="all, delete-orphan"
    )


# Forward references
from cafe_cogs.models.recipe import RecipeLine
