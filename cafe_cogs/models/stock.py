"""Stock models: BranchStock, StockMovement and StockAlert."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_cogs.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MovementType(str, Enum):
    """Reasons for stock movements."""

    SALE = "sale"  # Order deduction
    PURCHASE = "purchase"  # Goods received
    TRANSFER = "transfer"  # Between branches (one movement per side)
    ADJUSTMENT = "adjustment"  # Manual count / correction
    WASTE = "waste"  # Spoilage, breakage


class AlertType(str, Enum):
    """Kinds of stock alerts."""

    LOW_STOCK = "low_stock"  # At or below the raw item's minimum
    OUT_OF_STOCK = "out_of_stock"  # Nothing left
    SHORTAGE = "shortage"  # An order deduction could not be satisfied


class BranchStock(Base):
    """Current quantity of a raw item at a branch, in the raw item's base unit."""

    __tablename__ = "branch_stock"
    __table_args__ = (
        UniqueConstraint("branch_id", "raw_item_id", name="uq_branch_stock_branch_raw"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    raw_item_id: Mapped[int] = mapped_column(
        ForeignKey("raw_items.id"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # Relationships
    raw_item: Mapped["RawItem"] = relationship("RawItem", back_populates="branch_stock")


class StockMovement(Base):
    """Append-only ledger of every stock quantity change.

    ``new_quantity == previous_quantity + delta`` always holds. Rows are
    never updated or deleted; corrections are new adjustment movements.
    """

    __tablename__ = "stock_movements"
    __table_args__ = (
        Index("ix_stock_movements_branch_raw", "branch_id", "raw_item_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True
    )
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    raw_item_id: Mapped[int] = mapped_column(ForeignKey("raw_items.id"), nullable=False)
    delta: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)
    previous_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    new_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)


class StockAlert(Base):
    """A stock problem raised for staff attention, resolved explicitly."""

    __tablename__ = "stock_alerts"
    __table_args__ = (
        Index("ix_stock_alerts_branch_resolved", "branch_id", "resolved"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    raw_item_id: Mapped[int] = mapped_column(ForeignKey("raw_items.id"), nullable=False, index=True)
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    current_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    threshold_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    raw_item: Mapped["RawItem"] = relationship("RawItem")


# Forward references
from cafe_cogs.models.raw_item import RawItem
