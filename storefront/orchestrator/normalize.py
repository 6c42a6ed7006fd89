"""
Wire payloads -> orchestrator models.

The API has answered with a few shapes over time (camelCase and snake_case
keys, money as strings or numbers, older RZP_ORDER/WHATSAPP response types).
All of that tolerance lives here so the state machine only sees the fixed
models in ``storefront.orchestrator.models``.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from storefront.constants.order_status import OrderStatus
from storefront.orchestrator.models import (
    Address,
    CouponApplication,
    DeliveryPartner,
    OrderRecord,
    PaymentIntent,
    ShippingQuote,
)

CENT = Decimal("0.01")

GATEWAY_TYPES = {"GATEWAY_ORDER", "RZP_ORDER"}
MANUAL_TYPES = {"MANUAL", "WHATSAPP"}


class MalformedResponse(ValueError):
    """A payload is missing something the checkout cannot do without."""


def first_of(data: Mapping[str, Any], *keys, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def to_decimal(value, *, field: str = "amount") -> Decimal:
    if value is None or isinstance(value, bool):
        raise MalformedResponse(f"{field} is missing")
    try:
        # floats go through str() so 0.1 stays 0.1
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise MalformedResponse(f"{field} is not a number: {value!r}") from e
    if not amount.is_finite():
        raise MalformedResponse(f"{field} is not a number: {value!r}")
    return amount.quantize(CENT)


def to_optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def address_from_wire(data: Mapping[str, Any]) -> Address:
    address_id = to_optional_int(first_of(data, "id", "addressId"))
    country_id = to_optional_int(first_of(data, "countryId", "country_id"))
    if address_id is None or country_id is None:
        raise MalformedResponse("address needs an id and a country")

    return Address(
        id=address_id,
        customer_id=to_optional_int(first_of(data, "customerId", "customer_id")) or 0,
        name=first_of(data, "name", default=""),
        phone=first_of(data, "phone"),
        line1=first_of(data, "line1", default=""),
        line2=first_of(data, "line2"),
        country_id=country_id,
        state_id=to_optional_int(first_of(data, "stateId", "state_id")),
        district_id=to_optional_int(first_of(data, "districtId", "district_id")),
        pincode=first_of(data, "pincode", "postalCode"),
        is_default=bool(first_of(data, "isDefault", "is_default", default=False)),
        active=bool(first_of(data, "active", default=True)),
    )


def partner_from_wire(data: Mapping[str, Any]) -> DeliveryPartner:
    partner_id = to_optional_int(data.get("id"))
    if partner_id is None:
        raise MalformedResponse("delivery partner needs an id")
    return DeliveryPartner(id=partner_id, name=data.get("name") or "", code=data.get("code"))


def shipping_quote_from_wire(data: Mapping[str, Any], *, address_id: int, subtotal: Decimal) -> ShippingQuote:
    fee = to_decimal(first_of(data, "fee", "shippingFee"), field="fee")
    if fee < 0:
        raise MalformedResponse(f"negative shipping fee {fee}")
    return ShippingQuote(
        address_id=address_id,
        subtotal_at_quote_time=subtotal,
        fee=fee,
        computed_at=datetime.utcnow(),
        free=bool(first_of(data, "free", default=fee == 0)),
    )


def coupon_from_wire(
    data: Mapping[str, Any],
    *,
    code: str,
    subtotal: Decimal,
    item_count: int,
) -> CouponApplication:
    discount = to_decimal(first_of(data, "discount", "discountAmount"), field="discount")
    return CouponApplication(
        code=first_of(data, "code", default=code),
        discount_amount=discount,
        validated_against_subtotal=subtotal,
        validated_against_item_count=item_count,
        discount_type=first_of(data, "discountType", "discount_type"),
    )


def checkout_kind(data: Mapping[str, Any]) -> str:
    kind = str(data.get("type") or "").upper()
    if kind in GATEWAY_TYPES:
        return "GATEWAY_ORDER"
    if kind in MANUAL_TYPES:
        return "MANUAL"
    raise MalformedResponse(f"unknown checkout response type {kind!r}")


def payment_intent_from_wire(data: Mapping[str, Any], *, attempt_id: Optional[str] = None) -> PaymentIntent:
    if checkout_kind(data) != "GATEWAY_ORDER":
        raise MalformedResponse("server did not return a gateway order")

    gateway_order = first_of(data, "gatewayOrder", "razorpayOrder", "gateway_order")
    if not isinstance(gateway_order, Mapping) or not gateway_order.get("id"):
        raise MalformedResponse("gateway order is missing")

    notes = gateway_order.get("notes") or {}
    internal_id = to_optional_int(first_of(data, "orderId", "order_id", default=notes.get("orderId")))
    if internal_id is None:
        raise MalformedResponse("internal order id is missing")

    amount = to_optional_int(gateway_order.get("amount"))
    if amount is None or amount < 0:
        raise MalformedResponse("gateway order amount is missing")

    return PaymentIntent(
        gateway_order_id=str(gateway_order["id"]),
        amount_minor_units=amount,
        currency=str(first_of(gateway_order, "currency", default=data.get("currency") or "INR")).upper(),
        internal_order_id=internal_id,
        public_code=first_of(data, "publicCode", "public_code"),
        key=first_of(data, "key", "keyId", "razorpayKey"),
        attempt_id=attempt_id,
    )


def order_record_from_verify(data: Mapping[str, Any]) -> OrderRecord:
    order_id = to_optional_int(first_of(data, "orderId", "order_id", "id"))
    if order_id is None:
        raise MalformedResponse("verification answer has no order id")

    raw_status = str(first_of(data, "status", default="")).upper()
    try:
        status = OrderStatus(raw_status)
    except ValueError as e:
        raise MalformedResponse(f"unknown order status {raw_status!r}") from e

    grand_total = first_of(data, "grandTotal", "grand_total", "amount")
    return OrderRecord(
        id=order_id,
        public_code=first_of(data, "publicCode", "public_code"),
        status=status,
        grand_total=to_decimal(grand_total, field="grandTotal") if grand_total is not None else None,
        payment_reference=first_of(data, "txnId", "txn_id", "paymentReference"),
    )
