import logging

from storefront.notifications.events import EVENT_LABELS, OrderEvent
from storefront.services.order_event_service import log_order_event

logger = logging.getLogger(__name__)


def dispatch_order_event(
    *,
    event: OrderEvent,
    order,
    session,
    created_by: str = "system",
    extra: dict | None = None,
):
    """
    Central order event dispatcher.

    Appends the event to the order timeline and logs it. The caller commits.
    """
    extra = extra or {}
    label = extra.pop("label", None) or EVENT_LABELS.get(event, event.value)

    log_order_event(
        session=session,
        order_id=order.id,
        event_type=event.value,
        label=label,
        created_by=created_by,
        meta=extra or None,
    )

    logger.info(f"[{event.value}] order={order.public_code} status={order.status} by={created_by}")
