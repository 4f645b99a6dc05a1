"""Stock Alert Service - low stock, out of stock and deduction shortages.

Two kinds of signal live here:

- a passive scan (``get_alerts``) computed from current branch stock, used by
  dashboards that only want "what is low right now";
- persisted ``StockAlert`` rows that staff read and resolve. Threshold alerts
  are kept in step with the ledger by ``check_and_create_alerts``; shortage
  alerts are raised by the deduction engine.

Usage:
    from cafe_cogs.services.stock_alert_service import StockAlertService

    result = StockAlertService.get_alerts(db, branch_id="main")
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cafe_cogs.core.exceptions import AlertNotFoundError
from cafe_cogs.models.raw_item import RawItem
from cafe_cogs.models.stock import AlertType, BranchStock, StockAlert

logger = logging.getLogger(__name__)

_THRESHOLD_TYPES = (AlertType.LOW_STOCK.value, AlertType.OUT_OF_STOCK.value)


def classify_stock(quantity: Decimal, min_stock_level: Decimal) -> Optional[AlertType]:
    """Threshold alert type for a quantity, or None when stock is healthy."""
    if quantity <= 0:
        return AlertType.OUT_OF_STOCK
    if quantity <= (min_stock_level or 0):
        return AlertType.LOW_STOCK
    return None


class StockAlertService:
    """Generates and manages stock alerts for branch stock."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def get_alerts(
        db: Session,
        branch_id: Optional[str] = None,
        severity: Optional[str] = None,
        limit: int = 100,
    ) -> Dict[str, Any]:
        """
        Scan BranchStock joined with RawItem and report items at or below threshold.

        Args:
            db: SQLAlchemy database session.
            branch_id: Filter by branch. If None, alerts for all branches.
            severity: Filter by severity level (critical, warning). If None, return all.
            limit: Maximum number of alerts to return.

        Returns:
            Dict with keys: alerts, total, critical, warnings.
        """
        alerts: List[Dict[str, Any]] = []

        query = db.query(BranchStock, RawItem).join(
            RawItem, RawItem.id == BranchStock.raw_item_id
        ).filter(RawItem.not_deleted())
        if branch_id is not None:
            query = query.filter(BranchStock.branch_id == branch_id)

        for stock, raw_item in query.all():
            kind = classify_stock(stock.quantity, raw_item.min_stock_level)
            if kind is AlertType.OUT_OF_STOCK:
                alerts.append({
                    "type": kind.value,
                    "severity": "critical",
                    "branch_id": stock.branch_id,
                    "raw_item_id": raw_item.id,
                    "raw_item_name": raw_item.name,
                    "current_quantity": stock.quantity,
                    "min_stock_level": raw_item.min_stock_level,
                    "unit": raw_item.base_unit,
                    "message": f"{raw_item.name} is out of stock",
                })
            elif kind is AlertType.LOW_STOCK:
                alerts.append({
                    "type": kind.value,
                    "severity": "warning",
                    "branch_id": stock.branch_id,
                    "raw_item_id": raw_item.id,
                    "raw_item_name": raw_item.name,
                    "current_quantity": stock.quantity,
                    "min_stock_level": raw_item.min_stock_level,
                    "unit": raw_item.base_unit,
                    "message": (
                        f"{raw_item.name} is at or below minimum "
                        f"({stock.quantity}/{raw_item.min_stock_level} {raw_item.base_unit})"
                    ),
                })

        if severity is not None:
            alerts = [a for a in alerts if a["severity"] == severity]

        severity_order = {"critical": 0, "warning": 1}
        alerts.sort(key=lambda x: severity_order.get(x["severity"], 99))
        alerts = alerts[:limit]

        return {
            "alerts": alerts,
            "total": len(alerts),
            "critical": len([a for a in alerts if a["severity"] == "critical"]),
            "warnings": len([a for a in alerts if a["severity"] == "warning"]),
        }

    # ===== PERSISTED ALERTS =====

    def check_and_create_alerts(
        self,
        branch_id: str,
        raw_item: RawItem,
        quantity: Decimal,
    ) -> Optional[StockAlert]:
        """Bring the unresolved threshold alert for a key in line with ``quantity``.

        At most one unresolved low_stock/out_of_stock alert exists per
        (branch, raw item). A changed condition replaces the open alert; stock
        back above the minimum auto-resolves it. Does not commit.
        """
        open_alerts = self.db.query(StockAlert).filter(
            StockAlert.branch_id == branch_id,
            StockAlert.raw_item_id == raw_item.id,
            StockAlert.alert_type.in_(_THRESHOLD_TYPES),
            StockAlert.resolved.is_(False),
        ).all()

        kind = classify_stock(quantity, raw_item.min_stock_level)
        current = None
        for alert in open_alerts:
            if kind is not None and alert.alert_type == kind.value and current is None:
                alert.current_quantity = quantity
                current = alert
            else:
                self._resolve(alert, "system")

        if kind is not None and current is None:
            current = StockAlert(
                branch_id=branch_id,
                raw_item_id=raw_item.id,
                alert_type=kind.value,
                current_quantity=quantity,
                threshold_quantity=raw_item.min_stock_level or Decimal("0"),
            )
            self.db.add(current)
            logger.info(
                f"Stock alert raised: {kind.value} for '{raw_item.name}' at branch {branch_id} "
                f"({quantity} {raw_item.base_unit})"
            )
        return current

    def create_shortage_alert(
        self,
        branch_id: str,
        raw_item_id: int,
        available: Decimal,
        required: Decimal,
        reference: Optional[str] = None,
    ) -> StockAlert:
        """Record that a deduction needed ``required`` but only ``available`` was on hand."""
        alert = StockAlert(
            branch_id=branch_id,
            raw_item_id=raw_item_id,
            alert_type=AlertType.SHORTAGE.value,
            current_quantity=available,
            threshold_quantity=required,
            reference=reference,
        )
        self.db.add(alert)
        return alert

    def list_active_alerts(
        self,
        branch_id: Optional[str] = None,
        alert_type: Optional[str] = None,
    ) -> List[StockAlert]:
        query = self.db.query(StockAlert).filter(StockAlert.resolved.is_(False))
        if branch_id is not None:
            query = query.filter(StockAlert.branch_id == branch_id)
        if alert_type is not None:
            query = query.filter(StockAlert.alert_type == alert_type)
        return query.order_by(StockAlert.created_at.desc(), StockAlert.id.desc()).all()

    def get_alert(self, alert_id: int) -> StockAlert:
        alert = self.db.query(StockAlert).filter(StockAlert.id == alert_id).first()
        if not alert:
            raise AlertNotFoundError(alert_id)
        return alert

    def resolve_alert(self, alert_id: int, resolved_by: str) -> StockAlert:
        alert = self.get_alert(alert_id)
        if not alert.resolved:
            self._resolve(alert, resolved_by)
            self.db.commit()
            self.db.refresh(alert)
        return alert

    def mark_alert_read(self, alert_id: int) -> StockAlert:
        alert = self.get_alert(alert_id)
        alert.is_read = True
        self.db.commit()
        self.db.refresh(alert)
        return alert

    @staticmethod
    def _resolve(alert: StockAlert, resolved_by: str) -> None:
        alert.resolved = True
        alert.resolved_by = resolved_by
        alert.resolved_at = datetime.now(timezone.utc)
