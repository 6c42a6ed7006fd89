import json
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from storefront.config import settings
from storefront.constants.fulfillment import FulfillmentFlow, flow_for_country
from storefront.constants.order_status import OrderStatus
from storefront.models.delivery_partner import DeliveryPartner
from storefront.models.order import Order
from storefront.models.order_item import OrderItem
from storefront.models.store_settings import StoreSettings
from storefront.notifications import OrderEvent, dispatch_order_event
from storefront.notifications.handoff import (
    HandoffAddress,
    HandoffCustomer,
    HandoffLine,
    build_deep_link,
    build_handoff_message,
)
from storefront.schemas.checkout_schemas import CheckoutRequest, CheckoutResponse, GatewayOrder
from storefront.services.coupon_service import preview_discount
from storefront.services.razorpay_gateway import GatewayError, RazorpayGateway
from storefront.services.shipping_fee_service import compute_fee_with_threshold

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class CheckoutRejected(Exception):
    def __init__(self, reason: str, message: str, extra: Optional[dict] = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.extra = extra or {}

    def as_detail(self) -> dict:
        return {"reason": self.reason, "message": self.message, **self.extra}


class TotalsMismatch(CheckoutRejected):
    """Client totals disagree with the server's recomputation."""

    def __init__(self, server_totals: dict):
        super().__init__(
            "TOTALS_CHANGED",
            "Order totals changed. Please review your order and try again.",
            {"serverTotals": server_totals},
        )


class DuplicateCheckout(CheckoutRejected):
    def __init__(self):
        super().__init__(
            "DUPLICATE_ATTEMPT",
            "This checkout attempt was already processed and did not complete. Start a new attempt.",
        )


def _money(value) -> Decimal:
    return Decimal(value or 0).quantize(CENT, rounding=ROUND_HALF_UP)


def generate_public_code(order_id: int) -> str:
    return f"ORD-{order_id:06d}"


def to_minor_units(amount: Decimal) -> int:
    return int((_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def _normalize_currency(currency: Optional[str]) -> str:
    return (currency or settings.CURRENCY).strip().upper() or "INR"


def _whatsapp_number(session: Session) -> str:
    store = session.get(StoreSettings, 1)
    if store and store.whatsapp_number:
        return store.whatsapp_number
    return settings.WHATSAPP_NUMBER


def _replay(session: Session, customer_id: int, idempotency_key: Optional[str]) -> Optional[dict]:
    if not idempotency_key:
        return None

    existing = session.exec(
        select(Order)
        .where(Order.idempotency_key == idempotency_key)
        .where(Order.customer_id == customer_id)
    ).first()
    if not existing:
        return None

    if existing.checkout_response:
        logger.info(f"Replaying checkout for key {idempotency_key} -> order {existing.public_code}")
        return json.loads(existing.checkout_response)

    raise DuplicateCheckout()


def compute_totals(session: Session, data: CheckoutRequest, customer_id: int, flow: FulfillmentFlow) -> dict:
    """Authoritative totals for a checkout request."""
    subtotal = _money(sum(_money(i.unit_price) * i.quantity for i in data.items))
    items_count = sum(i.quantity for i in data.items)

    if flow == FulfillmentFlow.INTERNATIONAL:
        # manual quote: no fee, no discount
        return {
            "items_subtotal": subtotal,
            "shipping_fee": _money(0),
            "discount_total": _money(0),
            "grand_total": subtotal,
            "coupon": None,
        }

    order = data.order
    fee = _money(compute_fee_with_threshold(session, subtotal, order.ship_state_id, order.ship_district_id))

    coupon, discount = None, _money(0)
    if order.coupon_code and order.coupon_code.strip():
        coupon, discount = preview_discount(
            session,
            code=order.coupon_code,
            customer_id=customer_id,
            order_total=subtotal,
            items_count=items_count,
        )

    grand = max(_money(0), subtotal + fee - discount)
    return {
        "items_subtotal": subtotal,
        "shipping_fee": fee,
        "discount_total": _money(discount),
        "grand_total": _money(grand),
        "coupon": coupon,
    }


def _check_client_totals(data: CheckoutRequest, totals: dict):
    order = data.order
    client = {
        "items_subtotal": _money(order.items_subtotal),
        "shipping_fee": _money(order.shipping_fee),
        "discount_total": _money(order.discount_total),
        "grand_total": _money(order.grand_total),
    }
    if any(client[k] != totals[k] for k in client):
        logger.warning(f"Checkout totals mismatch: client={client} server={totals}")
        raise TotalsMismatch({
            "itemsSubtotal": str(totals["items_subtotal"]),
            "shippingFee": str(totals["shipping_fee"]),
            "discountTotal": str(totals["discount_total"]),
            "grandTotal": str(totals["grand_total"]),
        })


def _resolve_partner(session: Session, partner_id: Optional[int]) -> DeliveryPartner:
    if partner_id is None:
        raise CheckoutRejected("DELIVERY_PARTNER_REQUIRED", "Please select a delivery partner.")

    partner = session.get(DeliveryPartner, partner_id)
    if not partner or not partner.active:
        raise CheckoutRejected("DELIVERY_PARTNER_UNAVAILABLE", "Selected delivery partner is not available.")
    return partner


def _handoff_url(session: Session, order: Order, items: list) -> str:
    message = build_handoff_message(
        HandoffCustomer(id=order.customer_id),
        HandoffAddress(
            name=order.ship_name,
            line1=order.ship_line1,
            line2=order.ship_line2,
            pincode=order.ship_pincode,
            phone=order.ship_phone,
        ),
        [
            HandoffLine(name=i.product_name, quantity=i.quantity, unit_price=i.unit_price, variant=i.options_text)
            for i in items
        ],
        order.items_subtotal,
        order.currency,
    )
    return build_deep_link(_whatsapp_number(session), message)


def start_checkout(
    *,
    session: Session,
    gateway: RazorpayGateway,
    customer_id: int,
    data: CheckoutRequest,
    idempotency_key: Optional[str] = None,
) -> dict:
    """
    Create the pending order for a checkout attempt.

    Domestic orders also get a Razorpay order to pay against. International
    orders are recorded for a manual quote and answered with a hand-off link.
    """
    replay = _replay(session, customer_id, idempotency_key)
    if replay:
        return replay

    draft = data.order
    flow = flow_for_country(draft.ship_country_id, settings.DOMESTIC_COUNTRY_ID)
    currency = _normalize_currency(draft.currency)

    partner = None
    if flow == FulfillmentFlow.DOMESTIC:
        partner = _resolve_partner(session, draft.delivery_partner_id)

    totals = compute_totals(session, data, customer_id, flow)
    if flow == FulfillmentFlow.DOMESTIC:
        _check_client_totals(data, totals)

    coupon = totals["coupon"]
    order = Order(
        customer_id=customer_id,
        flow=flow,
        status=OrderStatus.PENDING,
        items_subtotal=totals["items_subtotal"],
        shipping_fee=totals["shipping_fee"],
        discount_total=totals["discount_total"],
        grand_total=totals["grand_total"],
        currency=currency,
        coupon_id=coupon.id if coupon else None,
        coupon_code=coupon.code if coupon else None,
        delivery_partner_id=partner.id if partner else None,
        courier_name=partner.name if partner else None,
        order_notes=(draft.order_notes or "").strip() or None,
        ship_name=draft.ship_name,
        ship_phone=draft.ship_phone,
        ship_line1=draft.ship_line1,
        ship_line2=draft.ship_line2,
        ship_country_id=draft.ship_country_id,
        ship_state_id=draft.ship_state_id,
        ship_district_id=draft.ship_district_id,
        ship_pincode=draft.ship_pincode,
        idempotency_key=idempotency_key,
    )
    session.add(order)
    try:
        session.commit()
    except IntegrityError:
        # a concurrent request with the same key won the insert
        session.rollback()
        replay = _replay(session, customer_id, idempotency_key)
        if replay:
            return replay
        raise
    session.refresh(order)

    order.public_code = generate_public_code(order.id)

    items = []
    for i in data.items:
        item = OrderItem(
            order_id=order.id,
            product_id=i.product_id,
            product_name=i.product_name,
            unit_price=_money(i.unit_price),
            quantity=i.quantity,
            line_total=_money(_money(i.unit_price) * i.quantity),
            options_text=i.options_text,
        )
        session.add(item)
        items.append(item)
    session.commit()
    session.refresh(order)

    if flow == FulfillmentFlow.INTERNATIONAL:
        response = CheckoutResponse(
            type="MANUAL",
            order_id=order.id,
            public_code=order.public_code,
            currency=currency,
            handoff_url=_handoff_url(session, order, items),
        )
        event = OrderEvent.MANUAL_QUOTE_REQUESTED
    else:
        try:
            rzp = gateway.create_order(
                amount_paise=to_minor_units(order.grand_total),
                currency=currency,
                receipt=order.public_code,
                notes={"orderId": str(order.id), "customerId": str(customer_id)},
            )
        except GatewayError as e:
            order.status = OrderStatus.FAILED
            order.updated_at = datetime.utcnow()
            dispatch_order_event(
                event=OrderEvent.PAYMENT_FAILED,
                order=order,
                session=session,
                extra={"error": str(e)},
            )
            session.commit()
            raise

        order.gateway_order_id = rzp["id"]
        response = CheckoutResponse(
            type="GATEWAY_ORDER",
            order_id=order.id,
            public_code=order.public_code,
            currency=currency,
            key=gateway.key_id,
            gateway_order=GatewayOrder(
                id=rzp["id"],
                amount=int(rzp.get("amount", to_minor_units(order.grand_total))),
                currency=rzp.get("currency", currency),
            ),
        )
        event = OrderEvent.ORDER_PLACED

    payload = response.model_dump(mode="json", by_alias=True, exclude_none=True)
    order.checkout_response = json.dumps(payload)
    order.updated_at = datetime.utcnow()

    dispatch_order_event(
        event=event,
        order=order,
        session=session,
        created_by="customer",
        extra={"grandTotal": str(order.grand_total), "flow": flow.value},
    )
    session.add(order)
    session.commit()

    logger.info(f"Checkout started: order={order.public_code} flow={flow.value} total={order.grand_total}")
    return payload
