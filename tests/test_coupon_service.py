from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from storefront.models.coupon import Coupon, CouponRedemption, DiscountType
from storefront.models.order import Order
from storefront.services.coupon_service import (
    CouponRejected,
    RejectionReason,
    compute_discount,
    preview_discount,
    record_redemption,
)

from conftest import CUSTOMER_ID


def make_order(session, coupon, discount="120.00"):
    order = Order(
        customer_id=CUSTOMER_ID,
        items_subtotal=Decimal("1200.00"),
        discount_total=Decimal(discount),
        grand_total=Decimal("1080.00"),
        coupon_id=coupon.id,
        coupon_code=coupon.code,
        ship_name="Asha Rao",
        ship_line1="12 MG Road",
        ship_country_id=1,
    )
    session.add(order)
    session.commit()
    session.refresh(order)
    return order


def rejection(session, **kwargs):
    with pytest.raises(CouponRejected) as exc:
        preview_discount(session, **kwargs)
    return exc.value.reason


def test_percent_discount(session, seeded):
    coupon, discount = preview_discount(
        session, code=" welcome10 ", customer_id=CUSTOMER_ID, order_total=Decimal("1200"), items_count=2
    )

    assert coupon.code == "WELCOME10"
    assert discount == Decimal("120.00")


def test_flat_discount_is_capped_at_order_total():
    coupon = Coupon(code="FLAT500", discount_type=DiscountType.FLAT, discount_value=Decimal("500"))

    assert compute_discount(coupon, Decimal("300")) == Decimal("300.00")
    assert compute_discount(coupon, Decimal("800")) == Decimal("500.00")


def test_percent_discount_rounds_half_up():
    coupon = Coupon(code="P15", discount_type=DiscountType.PERCENT, discount_value=Decimal("15"))

    assert compute_discount(coupon, Decimal("10.10")) == Decimal("1.52")


def test_minimum_order_not_met(session, seeded):
    reason = rejection(session, code="WELCOME10", customer_id=CUSTOMER_ID, order_total=Decimal("400"), items_count=1)
    assert reason == RejectionReason.MIN_ORDER_NOT_MET


def test_minimum_items_not_met(session, seeded):
    seeded.coupon.min_items = 3
    session.add(seeded.coupon)
    session.commit()

    reason = rejection(session, code="WELCOME10", customer_id=CUSTOMER_ID, order_total=Decimal("900"), items_count=2)
    assert reason == RejectionReason.MIN_ITEMS_NOT_MET


def test_unknown_and_hidden_codes_are_not_found(session, seeded):
    assert rejection(session, code="NOPE", customer_id=None, order_total=Decimal("900"), items_count=1) == (
        RejectionReason.NOT_FOUND
    )

    seeded.coupon.visible = False
    session.add(seeded.coupon)
    session.commit()
    assert rejection(session, code="WELCOME10", customer_id=None, order_total=Decimal("900"), items_count=1) == (
        RejectionReason.NOT_FOUND
    )


def test_inactive_coupon(session, seeded):
    seeded.coupon.active = False
    session.add(seeded.coupon)
    session.commit()

    assert rejection(session, code="WELCOME10", customer_id=None, order_total=Decimal("900"), items_count=1) == (
        RejectionReason.INACTIVE
    )


def test_validity_window(session, seeded):
    now = datetime(2026, 6, 1, 12, 0)
    seeded.coupon.valid_from = now + timedelta(days=1)
    seeded.coupon.valid_to = now + timedelta(days=10)
    session.add(seeded.coupon)
    session.commit()

    kwargs = dict(code="WELCOME10", customer_id=None, order_total=Decimal("900"), items_count=1)
    assert rejection(session, now=now, **kwargs) == RejectionReason.NOT_YET_VALID
    assert rejection(session, now=now + timedelta(days=11), **kwargs) == RejectionReason.EXPIRED

    _, discount = preview_discount(session, now=now + timedelta(days=2), **kwargs)
    assert discount == Decimal("90.00")


def test_per_customer_limit(session, seeded):
    seeded.coupon.per_customer_limit = 1
    session.add(seeded.coupon)
    session.commit()
    order = make_order(session, seeded.coupon)
    record_redemption(session, order)
    session.commit()

    kwargs = dict(code="WELCOME10", order_total=Decimal("900"), items_count=1)
    assert rejection(session, customer_id=CUSTOMER_ID, **kwargs) == RejectionReason.PER_CUSTOMER_LIMIT_REACHED

    # someone else can still use it
    _, discount = preview_discount(session, customer_id=CUSTOMER_ID + 1, **kwargs)
    assert discount == Decimal("90.00")


def test_global_usage_limit(session, seeded):
    seeded.coupon.usage_limit = 1
    session.add(seeded.coupon)
    session.commit()
    session.add(CouponRedemption(
        coupon_id=seeded.coupon.id,
        order_id=make_order(session, seeded.coupon).id,
        customer_id=99,
        amount_applied=Decimal("10"),
    ))
    session.commit()

    assert rejection(session, code="WELCOME10", customer_id=CUSTOMER_ID, order_total=Decimal("900"), items_count=1) == (
        RejectionReason.USAGE_LIMIT_REACHED
    )


def test_record_redemption_once_per_order(session, seeded):
    order = make_order(session, seeded.coupon)

    first = record_redemption(session, order)
    session.commit()
    second = record_redemption(session, order)

    assert first.id == second.id
    assert first.amount_applied == Decimal("120.00")


def test_record_redemption_without_coupon(session, seeded):
    order = make_order(session, seeded.coupon)
    order.coupon_id = None

    assert record_redemption(session, order) is None
