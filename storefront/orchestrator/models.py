from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Tuple

from storefront.constants.fulfillment import FulfillmentFlow
from storefront.constants.order_status import OrderStatus

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


class CheckoutState(str, Enum):
    DRAFT = "DRAFT"
    QUOTING_SHIPPING = "QUOTING_SHIPPING"
    READY = "READY"
    SUBMITTING = "SUBMITTING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    VERIFYING = "VERIFYING"
    SENDING = "SENDING"
    SETTLED = "SETTLED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# user input is frozen while one of these is active
BUSY_STATES = frozenset({
    CheckoutState.SUBMITTING,
    CheckoutState.AWAITING_PAYMENT,
    CheckoutState.VERIFYING,
    CheckoutState.SENDING,
})

EDITABLE_STATES = frozenset({
    CheckoutState.DRAFT,
    CheckoutState.QUOTING_SHIPPING,
    CheckoutState.READY,
})


class FailureStage(str, Enum):
    VALIDATION = "validation"
    SHIPPING_QUOTE = "shipping-quote"
    COUPON = "coupon"
    SUBMISSION = "submission"
    GATEWAY = "gateway"
    VERIFICATION_REJECTED = "verification-rejected"
    PAYMENT_CAPTURED_ORDER_UNCONFIRMED = "payment-captured-order-unconfirmed"
    HANDOFF = "handoff"


@dataclass(frozen=True)
class CartLine:
    line_id: str
    product_id: Optional[int]
    name: str
    unit_price: Decimal
    quantity: int
    selected_option_ids: Tuple[int, ...] = ()
    variant_label: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        # unit price rounded first, the same way the server prices a line
        return self.unit_price.quantize(CENT, rounding=ROUND_HALF_UP) * self.quantity


@dataclass(frozen=True)
class Address:
    id: int
    customer_id: int
    name: str
    line1: str
    country_id: int
    phone: Optional[str] = None
    line2: Optional[str] = None
    state_id: Optional[int] = None
    district_id: Optional[int] = None
    pincode: Optional[str] = None
    is_default: bool = False
    active: bool = True


@dataclass(frozen=True)
class DeliveryPartner:
    id: int
    name: str
    code: Optional[str] = None


@dataclass(frozen=True)
class CustomerIdentity:
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class ShippingQuote:
    address_id: int
    subtotal_at_quote_time: Decimal
    fee: Decimal
    computed_at: datetime
    free: bool = False

    def is_valid_for(self, subtotal: Decimal, address: Optional[Address]) -> bool:
        return (
            address is not None
            and address.id == self.address_id
            and subtotal == self.subtotal_at_quote_time
        )


@dataclass(frozen=True)
class CouponApplication:
    code: str
    discount_amount: Decimal
    validated_against_subtotal: Decimal
    validated_against_item_count: int
    discount_type: Optional[str] = None

    def is_valid_for(self, subtotal: Decimal, item_count: int) -> bool:
        return (
            subtotal == self.validated_against_subtotal
            and item_count == self.validated_against_item_count
        )


@dataclass
class CheckoutDraft:
    cart_lines: Tuple[CartLine, ...] = ()
    selected_address: Optional[Address] = None
    flow: Optional[FulfillmentFlow] = None
    delivery_partner_id: Optional[int] = None
    shipping_quote: Optional[ShippingQuote] = None
    coupon_application: Optional[CouponApplication] = None
    order_notes: str = ""

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.cart_lines), ZERO)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.cart_lines)


@dataclass(frozen=True)
class PaymentIntent:
    gateway_order_id: str
    amount_minor_units: int
    currency: str
    internal_order_id: int
    public_code: Optional[str] = None
    key: Optional[str] = None
    attempt_id: Optional[str] = None


class GatewayOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    DISMISSED = "DISMISSED"


@dataclass(frozen=True)
class GatewayResult:
    """What the payment widget reported. Never proof of payment."""

    outcome: GatewayOutcome
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    signature: Optional[str] = None
    error_description: Optional[str] = None

    @classmethod
    def success(cls, gateway_order_id: str, gateway_payment_id: str, signature: str) -> "GatewayResult":
        return cls(GatewayOutcome.SUCCESS, gateway_order_id, gateway_payment_id, signature)

    @classmethod
    def failed(cls, description: Optional[str] = None) -> "GatewayResult":
        return cls(GatewayOutcome.FAILED, error_description=description)

    @classmethod
    def dismissed(cls, description: Optional[str] = None) -> "GatewayResult":
        return cls(GatewayOutcome.DISMISSED, error_description=description)


@dataclass(frozen=True)
class OrderRecord:
    id: int
    public_code: Optional[str]
    status: OrderStatus
    items_subtotal: Optional[Decimal] = None
    shipping_fee: Optional[Decimal] = None
    discount_total: Optional[Decimal] = None
    grand_total: Optional[Decimal] = None
    payment_reference: Optional[str] = None


@dataclass(frozen=True)
class CheckoutOutcome:
    flow: FulfillmentFlow
    order: Optional[OrderRecord] = None
    handoff_url: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    source: CheckoutState
    target: CheckoutState
    at: datetime = field(default_factory=datetime.utcnow)
    stage: Optional[FailureStage] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class OrderTotals:
    items_subtotal: Decimal
    shipping_fee: Optional[Decimal]
    discount_total: Decimal
    grand_total: Decimal
