import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlmodel import select, Session

from storefront.config import settings
from storefront.constants.order_status import OrderStatus
from storefront.models.order import Order
from storefront.notifications import OrderEvent, dispatch_order_event

logger = logging.getLogger(__name__)


def expire_pending_orders(
    session: Session,
    now: Optional[datetime] = None,
    ttl_minutes: Optional[int] = None,
) -> List[Order]:
    """Cancel PENDING orders older than the payment window."""
    now = now or datetime.utcnow()
    ttl = settings.PENDING_ORDER_TTL_MINUTES if ttl_minutes is None else ttl_minutes
    cutoff = now - timedelta(minutes=ttl)

    orders = session.exec(
        select(Order)
        .where(Order.status == OrderStatus.PENDING)
        .where(Order.created_at < cutoff)
    ).all()

    for order in orders:
        order.status = OrderStatus.CANCELLED
        order.updated_at = now
        session.add(order)
        dispatch_order_event(
            event=OrderEvent.ORDER_EXPIRED,
            order=order,
            session=session,
            extra={"ttlMinutes": ttl},
        )

    session.commit()

    logger.info(f"Expired {len(orders)} unpaid orders")
    return orders
