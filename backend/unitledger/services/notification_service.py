# Overview: Low-stock notification port; notifier implementations and post-commit dispatch.

"""
Low-stock notifications

WHY: When a product crosses from OK into a non-OK stock status, operators
must hear about it. The stock change itself must never depend on that.

DESIGN PRINCIPLES:
- Output port: services hand LowStockEvent objects to dispatch_low_stock()
  only AFTER their transaction has committed.
- Implementations are injected at app startup from LOW_STOCK_NOTIFIERS
  (or replaced by tests via set_notifiers()).
- Failure isolation: a notifier that raises is logged and skipped; the
  caller never sees the error.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from flask import current_app

from ..extensions import db
from ..models import StockAlert
from ..models.inventory import STOCK_OUT
from ..validation import NotFoundError
from unitledger.time_utils import utcnow


EXTENSION_KEY = "unitledger.low_stock_notifiers"

ALERT_LOW_STOCK = "LOW_STOCK"
ALERT_OUT_OF_STOCK = "OUT_OF_STOCK"


@dataclass(frozen=True)
class LowStockEvent:
    product_id: int
    code: str
    name: str
    current_stock: int
    min_stock: int
    status: str

    def to_dict(self) -> dict:
        return asdict(self)


class LowStockNotifier:
    """Base notifier. Subclasses deliver one event somewhere."""

    name = "base"

    def notify(self, event: LowStockEvent) -> None:
        raise NotImplementedError


class LoggingNotifier(LowStockNotifier):
    name = "log"

    def notify(self, event: LowStockEvent) -> None:
        current_app.logger.warning(
            "Low stock for %s (%s): %s units, minimum %s (status %s)",
            event.code,
            event.name,
            event.current_stock,
            event.min_stock,
            event.status,
        )


class AlertRecordNotifier(LowStockNotifier):
    """Persist a StockAlert row in its own transaction."""

    name = "alert"

    def notify(self, event: LowStockEvent) -> None:
        alert_type = ALERT_OUT_OF_STOCK if event.status == STOCK_OUT else ALERT_LOW_STOCK
        alert = StockAlert(
            product_id=event.product_id,
            alert_type=alert_type,
            current_stock=event.current_stock,
            min_stock=event.min_stock,
            message=f"Low stock for {event.code}: {event.current_stock} units",
        )
        db.session.add(alert)
        db.session.commit()


NOTIFIER_FACTORIES = {
    LoggingNotifier.name: LoggingNotifier,
    AlertRecordNotifier.name: AlertRecordNotifier,
}


def build_notifiers(names) -> list[LowStockNotifier]:
    notifiers = []
    for name in names:
        factory = NOTIFIER_FACTORIES.get(name)
        if factory is None:
            raise ValueError(f"Unknown low-stock notifier: {name}")
        notifiers.append(factory())
    return notifiers


def init_app(app) -> None:
    app.extensions[EXTENSION_KEY] = build_notifiers(app.config.get("LOW_STOCK_NOTIFIERS", ()))


def set_notifiers(app, notifiers: list[LowStockNotifier]) -> None:
    app.extensions[EXTENSION_KEY] = list(notifiers)


def get_notifiers() -> list[LowStockNotifier]:
    return current_app.extensions.get(EXTENSION_KEY, [])


def dispatch_low_stock(events) -> None:
    """
    Deliver events to every configured notifier.

    Must be called after the owning transaction committed. Never raises.
    """
    for event in events:
        if event is None:
            continue
        for notifier in get_notifiers():
            try:
                notifier.notify(event)
            except Exception:
                db.session.rollback()
                current_app.logger.exception(
                    "Low-stock notifier %r failed for product %s", notifier.name, event.product_id
                )


# =============================================================================
# ALERT QUERIES
# =============================================================================

def list_open_alerts() -> list[StockAlert]:
    return (
        db.session.query(StockAlert)
        .filter_by(is_resolved=False)
        .order_by(StockAlert.created_at.desc(), StockAlert.id.desc())
        .all()
    )


def resolve_alert(alert_id: int) -> StockAlert:
    alert = db.session.get(StockAlert, alert_id)
    if alert is None:
        raise NotFoundError(f"Stock alert {alert_id} not found")
    if not alert.is_resolved:
        alert.is_resolved = True
        alert.resolved_at = utcnow()
        db.session.commit()
    return alert
