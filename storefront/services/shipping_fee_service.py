import logging
from decimal import Decimal
from typing import Optional

from sqlmodel import Session, select

from storefront.config import settings
from storefront.models.delivery_fee_rule import DeliveryFeeRule, RuleScope
from storefront.models.store_settings import StoreSettings

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _sanitize(value: Optional[Decimal]) -> Decimal:
    if value is None or value < 0:
        return ZERO
    return Decimal(value).quantize(Decimal("0.01"))


def _latest_rule(session: Session, scope: RuleScope, scope_id: Optional[int]):
    query = (
        select(DeliveryFeeRule)
        .where(DeliveryFeeRule.scope == scope)
        .where(DeliveryFeeRule.active == True)  # noqa: E712
    )
    if scope_id is None:
        query = query.where(DeliveryFeeRule.scope_id == None)  # noqa: E711
    else:
        query = query.where(DeliveryFeeRule.scope_id == scope_id)

    return session.exec(query.order_by(DeliveryFeeRule.id.desc())).first()


def find_effective_fee(
    session: Session,
    state_id: Optional[int],
    district_id: Optional[int],
) -> Optional[Decimal]:
    """
    Most specific active rule wins: district, then state, then default.
    Returns None when nothing is configured.
    """
    if district_id is not None:
        rule = _latest_rule(session, RuleScope.DISTRICT, district_id)
        if rule:
            logger.info(f"Using district fee rule {rule.id} for district {district_id}")
            return _sanitize(rule.fee_amount)

    if state_id is not None:
        rule = _latest_rule(session, RuleScope.STATE, state_id)
        if rule:
            logger.info(f"Using state fee rule {rule.id} for state {state_id}")
            return _sanitize(rule.fee_amount)

    rule = _latest_rule(session, RuleScope.DEFAULT, None)
    if rule:
        logger.info(f"Using default fee rule {rule.id}")
        return _sanitize(rule.fee_amount)

    logger.warning(f"No active delivery fee rule for state={state_id} district={district_id}")
    return None


def free_shipping_threshold(session: Session) -> Optional[Decimal]:
    store = session.get(StoreSettings, 1)
    if store and store.free_shipping_threshold is not None:
        return _sanitize(store.free_shipping_threshold)
    if settings.FREE_SHIPPING_THRESHOLD is not None:
        return _sanitize(settings.FREE_SHIPPING_THRESHOLD)
    return None


def compute_fee_with_threshold(
    session: Session,
    items_subtotal: Optional[Decimal],
    state_id: Optional[int],
    district_id: Optional[int],
) -> Decimal:
    """
    Fee for a domestic destination. Subtotal at or above the free-shipping
    threshold ships free; otherwise the effective rule applies.
    """
    fee = find_effective_fee(session, state_id, district_id)
    if fee is None:
        fee = ZERO

    if items_subtotal is None:
        return fee

    threshold = free_shipping_threshold(session)
    if threshold is not None and Decimal(items_subtotal) >= threshold:
        logger.info(f"Subtotal {items_subtotal} >= threshold {threshold}, free shipping")
        return ZERO

    return fee
