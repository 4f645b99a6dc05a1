"""Per-order COGS record consumed by accounting."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from cafe_cogs.db.base import Base


class DeductionStatus(str, Enum):
    COMPLETE = "complete"  # every raw item deducted
    PARTIAL = "partial"  # at least one shortage
    ROLLED_BACK = "rolled_back"  # strict mode hit a shortage, nothing deducted


class OrderCogs(Base):
    """Cost of goods and inventory outcome of one order's deduction pass."""

    __tablename__ = "order_cogs"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    cost_of_goods: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    shortages: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    warnings: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    strict: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
