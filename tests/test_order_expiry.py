from datetime import datetime, timedelta
from decimal import Decimal

from storefront.constants.order_status import OrderStatus, can_transition
from storefront.jobs import order_expiry
from storefront.models.order import Order
from storefront.services.order_event_service import order_timeline
from storefront.services.order_expiry_service import expire_pending_orders

from conftest import CUSTOMER_ID

NOW = datetime(2026, 3, 1, 12, 0)


def make_order(session, *, status=OrderStatus.PENDING, age_minutes=0):
    order = Order(
        customer_id=CUSTOMER_ID,
        status=status,
        items_subtotal=Decimal("500"),
        grand_total=Decimal("550"),
        ship_name="Asha Rao",
        ship_line1="12 MG Road",
        ship_country_id=1,
        created_at=NOW - timedelta(minutes=age_minutes),
    )
    session.add(order)
    session.commit()
    session.refresh(order)
    return order


def test_old_pending_orders_are_cancelled(session):
    stale = make_order(session, age_minutes=121)
    fresh = make_order(session, age_minutes=30)
    paid = make_order(session, status=OrderStatus.PAID, age_minutes=500)

    expired = expire_pending_orders(session, now=NOW, ttl_minutes=120)

    assert [o.id for o in expired] == [stale.id]
    session.expire_all()
    assert session.get(Order, stale.id).status == OrderStatus.CANCELLED
    assert session.get(Order, fresh.id).status == OrderStatus.PENDING
    assert session.get(Order, paid.id).status == OrderStatus.PAID

    events = order_timeline(session, stale.id)
    assert [e.event_type for e in events] == ["expired"]
    assert events[0].meta == {"ttlMinutes": 120}


def test_expired_orders_cannot_be_paid():
    assert not can_transition(OrderStatus.CANCELLED, OrderStatus.PAID)
    assert can_transition(OrderStatus.PENDING, OrderStatus.PAID)


def test_job_uses_configured_engine(engine, session, monkeypatch):
    make_order(session, age_minutes=60 * 24 * 3)
    monkeypatch.setattr(order_expiry, "engine", engine)

    assert order_expiry.expire_unpaid_orders() == 1
