import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from storefront.models.coupon import Coupon, CouponRedemption, DiscountType
from storefront.models.order import Order

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    PER_CUSTOMER_LIMIT_REACHED = "PER_CUSTOMER_LIMIT_REACHED"
    MIN_ORDER_NOT_MET = "MIN_ORDER_NOT_MET"
    MIN_ITEMS_NOT_MET = "MIN_ITEMS_NOT_MET"


class CouponRejected(Exception):
    def __init__(self, reason: RejectionReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message

    def as_detail(self) -> dict:
        return {"reason": self.reason.value, "message": self.message}


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def get_visible_coupon(session: Session, code: str) -> Optional[Coupon]:
    norm = normalize_code(code)
    if not norm:
        return None
    return session.exec(
        select(Coupon)
        .where(func.upper(Coupon.code) == norm)
        .where(Coupon.visible == True)  # noqa: E712
    ).first()


def _redemption_count(session: Session, coupon_id: int, customer_id: Optional[int] = None) -> int:
    query = (
        select(func.count())
        .select_from(CouponRedemption)
        .where(CouponRedemption.coupon_id == coupon_id)
        .where(CouponRedemption.active == True)  # noqa: E712
    )
    if customer_id is not None:
        query = query.where(CouponRedemption.customer_id == customer_id)
    return session.exec(query).one()


def _validate_usage_and_window(session: Session, coupon: Coupon, customer_id: Optional[int], now: datetime):
    if not coupon.active:
        raise CouponRejected(RejectionReason.INACTIVE, "Coupon is not active")

    if coupon.valid_from and now < coupon.valid_from:
        raise CouponRejected(RejectionReason.NOT_YET_VALID, "Coupon not yet valid")

    if coupon.valid_to and now > coupon.valid_to:
        raise CouponRejected(RejectionReason.EXPIRED, "Coupon expired")

    if coupon.usage_limit is not None:
        if _redemption_count(session, coupon.id) >= coupon.usage_limit:
            raise CouponRejected(RejectionReason.USAGE_LIMIT_REACHED, "Coupon usage limit reached")

    if coupon.per_customer_limit is not None and customer_id is not None:
        if _redemption_count(session, coupon.id, customer_id) >= coupon.per_customer_limit:
            raise CouponRejected(
                RejectionReason.PER_CUSTOMER_LIMIT_REACHED,
                "Per-customer usage limit reached",
            )


def _validate_minimums(coupon: Coupon, order_total: Decimal, items_count: int):
    if coupon.min_order_total is not None and order_total < coupon.min_order_total:
        raise CouponRejected(
            RejectionReason.MIN_ORDER_NOT_MET,
            f"Order total below minimum of {coupon.min_order_total} for this coupon",
        )

    if coupon.min_items and items_count < coupon.min_items:
        raise CouponRejected(
            RejectionReason.MIN_ITEMS_NOT_MET,
            f"Minimum {coupon.min_items} item(s) required for this coupon",
        )


def compute_discount(coupon: Coupon, order_total: Decimal) -> Decimal:
    """PERCENT or FLAT, never more than the order total."""
    order_total = Decimal(order_total or 0)
    value = Decimal(coupon.discount_value or 0)

    if coupon.discount_type == DiscountType.PERCENT:
        discount = order_total * value / Decimal(100)
    else:
        discount = value

    discount = max(Decimal(0), min(discount, order_total))
    return discount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def preview_discount(
    session: Session,
    *,
    code: str,
    customer_id: Optional[int],
    order_total: Decimal,
    items_count: int,
    now: Optional[datetime] = None,
) -> tuple[Coupon, Decimal]:
    """
    Validate a coupon against an order snapshot and return the discount.
    Nothing is persisted.
    """
    coupon = get_visible_coupon(session, code)
    if not coupon:
        raise CouponRejected(RejectionReason.NOT_FOUND, "Coupon not found")

    _validate_usage_and_window(session, coupon, customer_id, now or datetime.utcnow())
    _validate_minimums(coupon, Decimal(order_total), items_count)

    discount = compute_discount(coupon, Decimal(order_total))
    logger.info(f"Coupon {coupon.code} previewed for customer {customer_id}: discount {discount}")
    return coupon, discount


def record_redemption(session: Session, order: Order) -> Optional[CouponRedemption]:
    """Record the coupon used by a paid order. One redemption per order."""
    if not order.coupon_id:
        return None

    existing = session.exec(
        select(CouponRedemption).where(CouponRedemption.order_id == order.id)
    ).first()
    if existing:
        return existing

    redemption = CouponRedemption(
        coupon_id=order.coupon_id,
        order_id=order.id,
        customer_id=order.customer_id,
        amount_applied=order.discount_total,
    )
    session.add(redemption)
    logger.info(f"Coupon {order.coupon_code} redeemed on order {order.public_code}")
    return redemption
