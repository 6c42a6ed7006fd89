import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from storefront.constants.fulfillment import FulfillmentFlow
from storefront.notifications.handoff import (
    HandoffAddress,
    HandoffCustomer,
    HandoffLine,
    build_deep_link,
    build_handoff_message,
)
from storefront.orchestrator.addresses import AddressDirectory
from storefront.orchestrator.api_client import StorefrontClient
from storefront.orchestrator.cart import CartStore
from storefront.orchestrator.coupons import CouponValidator, normalize_code
from storefront.orchestrator.errors import (
    CheckoutBusy,
    CheckoutError,
    CouponRejected,
    GatewayFailure,
    HandoffError,
    QuoteUnavailable,
    StaleInputError,
    SubmissionError,
    ValidationError,
    VerificationRejected,
    VerificationUnconfirmed,
)
from storefront.orchestrator.gateway import DEFAULT_WIDGET_TIMEOUT, PaymentGatewayAdapter, PaymentWidget
from storefront.orchestrator.models import (
    Address,
    BUSY_STATES,
    CheckoutDraft,
    CheckoutOutcome,
    CheckoutState,
    CouponApplication,
    CustomerIdentity,
    DeliveryPartner,
    EDITABLE_STATES,
    FailureStage,
    GatewayOutcome,
    OrderRecord,
    OrderTotals,
    PaymentIntent,
    ShippingQuote,
    Transition,
    ZERO,
)
from storefront.orchestrator.shipping import ShippingFeeEstimator

logger = logging.getLogger(__name__)


class LinkOpener(Protocol):
    """Opens an outbound link (a new browser tab, the messaging app, ...)."""

    async def open(self, url: str) -> None:
        ...


@dataclass
class OrchestratorConfig:
    domestic_country_id: int = 1
    whatsapp_number: str = ""
    currency: str = "INR"
    debounce_seconds: float = 0.3
    widget_timeout_seconds: float = DEFAULT_WIDGET_TIMEOUT
    theme_color: str = "#F05D8B"
    merchant_name: str = "Storefront"
    max_notes_length: int = 500
    country_names: Dict[int, str] = field(default_factory=dict)


class CheckoutOrchestrator:
    """
    Drives one checkout session from cart to a paid order or a manual quote.

    Domestic::

        DRAFT -> QUOTING_SHIPPING -> READY -> SUBMITTING -> AWAITING_PAYMENT
              -> VERIFYING -> SETTLED

    International::

        DRAFT -> READY -> SENDING -> SETTLED

    FAILED(stage) is reachable from any step; CANCELLED when the payment
    widget is dismissed. Gateway failures, dismissals and rejected
    submissions go back to READY. Verification failures are terminal.

    The draft is only changed here, in response to user calls or to async
    results that are still current. The cart is cleared once, on SETTLED.
    """

    def __init__(
        self,
        client: StorefrontClient,
        cart: CartStore,
        widget: PaymentWidget,
        link_opener: LinkOpener,
        customer: CustomerIdentity,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.config = config or OrchestratorConfig()
        self.client = client
        self.cart = cart
        self.customer = customer
        self.link_opener = link_opener

        self.directory = AddressDirectory(client, self.config.domestic_country_id)
        self.estimator = ShippingFeeEstimator(client, self.config.debounce_seconds)
        self.coupons = CouponValidator(client)
        self.gateway = PaymentGatewayAdapter(
            client,
            widget,
            widget_timeout_seconds=self.config.widget_timeout_seconds,
            merchant_name=self.config.merchant_name,
            theme_color=self.config.theme_color,
        )

        self.draft = CheckoutDraft(cart_lines=cart.lines)
        self.state = CheckoutState.DRAFT
        self.history: List[Transition] = []

        self.addresses: List[Address] = []
        self.partners: List[DeliveryPartner] = []

        self.last_error: Optional[CheckoutError] = None
        self.quote_error: Optional[QuoteUnavailable] = None
        self.coupon_error: Optional[CheckoutError] = None

        self.intent: Optional[PaymentIntent] = None
        self.order: Optional[OrderRecord] = None
        self.payment_reference: Optional[str] = None
        self.handoff_url: Optional[str] = None
        self.attempts = 0

        self._coupon_code: Optional[str] = None
        self._coupon_seq = 0
        self._coupon_task: Optional[asyncio.Task] = None
        self._place_task: Optional[asyncio.Task] = None
        self._outcome: Optional[CheckoutOutcome] = None
        self._terminal_error: Optional[CheckoutError] = None
        self._snapshot_version = cart.version
        self._cart_dirty = False
        self._cart_cleared = False
        self._listeners: List[Callable[[Transition], None]] = []
        self._unsubscribe_cart = cart.subscribe(self._on_cart_changed)

    # ── state ───────────────────────────────────────────────────────

    def add_listener(self, listener: Callable[[Transition], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _transition(self, target: CheckoutState, *, stage: Optional[FailureStage] = None, note: Optional[str] = None):
        source = self.state
        if source == target and stage is None:
            return

        self.state = target
        transition = Transition(source=source, target=target, stage=stage, note=note)
        self.history.append(transition)

        label = f"{target.value}({stage.value})" if stage else target.value
        logger.info(f"Checkout {source.value} -> {label}" + (f": {note}" if note else ""))

        for listener in list(self._listeners):
            listener(transition)

    def _quote_needed(self) -> bool:
        return (
            self.draft.flow == FulfillmentFlow.DOMESTIC
            and self.draft.selected_address is not None
            and bool(self.draft.cart_lines)
        )

    def _quote_current(self) -> bool:
        quote = self.draft.shipping_quote
        return quote is not None and quote.is_valid_for(self.draft.subtotal, self.draft.selected_address)

    def _coupon_current(self) -> bool:
        application = self.draft.coupon_application
        return application is not None and application.is_valid_for(self.draft.subtotal, self.draft.item_count)

    def readiness_problems(self) -> List[str]:
        """What stands between the draft and READY, in the order a user would fix it."""
        problems = []
        draft = self.draft

        if not draft.cart_lines:
            problems.append("Your cart is empty.")
        if draft.selected_address is None:
            problems.append("Please select a shipping address.")
            return problems

        if draft.flow == FulfillmentFlow.INTERNATIONAL:
            return problems

        if draft.delivery_partner_id is None:
            problems.append("Please select a delivery partner.")

        if draft.cart_lines and not self._quote_current():
            if self.quote_error is not None:
                problems.append(self.quote_error.message)
            else:
                problems.append("Please wait while we calculate shipping.")

        if self._coupon_code and not self._coupon_current():
            if isinstance(self.coupon_error, QuoteUnavailable):
                problems.append(self.coupon_error.message)
            else:
                problems.append("Please wait while we check your coupon.")

        return problems

    def _refresh_state(self):
        if self.state not in EDITABLE_STATES:
            return

        if self._quote_needed() and not self._quote_current() and self.quote_error is None:
            target = CheckoutState.QUOTING_SHIPPING
        elif not self.readiness_problems():
            target = CheckoutState.READY
        else:
            target = CheckoutState.DRAFT

        if target != self.state:
            self._transition(target)

    def _ensure_editable(self):
        if self.state in BUSY_STATES:
            raise CheckoutBusy()
        if self.state not in EDITABLE_STATES:
            raise CheckoutBusy("This checkout is already finished.")

    def totals(self) -> OrderTotals:
        subtotal = self.draft.subtotal
        if self.draft.flow == FulfillmentFlow.INTERNATIONAL:
            # manual quote: fees and discounts are settled by hand
            return OrderTotals(subtotal, ZERO, ZERO, subtotal)

        shipping = self.draft.shipping_quote.fee if self._quote_current() else None
        discount = self.draft.coupon_application.discount_amount if self._coupon_current() else ZERO
        grand_total = max(ZERO, subtotal + (shipping or ZERO) - discount)
        return OrderTotals(subtotal, shipping, discount, grand_total)

    # ── inputs ──────────────────────────────────────────────────────

    async def load(self) -> List[Address]:
        """Fetch saved addresses and couriers; preselect the default address."""
        self.addresses = await self.directory.list(self.customer.id)
        self.partners = await self.directory.partners()

        if self.draft.selected_address is None and self.addresses:
            flow = FulfillmentFlow.DOMESTIC
            if not self.directory.for_flow(self.addresses, flow):
                flow = FulfillmentFlow.INTERNATIONAL
            default = self.directory.default_for(self.addresses, flow)
            if default is not None:
                self.select_address(default)
        return self.addresses

    def select_address(self, address: Address):
        """Pick the shipping address. Switching between domestic and international resets the quote and coupon."""
        self._ensure_editable()

        flow = self.directory.flow_of(address)
        self.draft.selected_address = address
        self.draft.flow = flow
        self.draft.shipping_quote = None
        self.quote_error = None
        self.estimator.invalidate()

        if flow == FulfillmentFlow.INTERNATIONAL:
            self._drop_coupon()
            self.coupon_error = None
        else:
            self._requote()

        logger.info(f"Address {address.id} selected ({flow.value})")
        self._refresh_state()

    def select_delivery_partner(self, partner_id: Optional[int]):
        self._ensure_editable()
        self.draft.delivery_partner_id = partner_id
        self._refresh_state()

    def set_order_notes(self, notes: str):
        self._ensure_editable()
        notes = notes or ""
        if len(notes) > self.config.max_notes_length:
            raise ValidationError(f"Order notes are limited to {self.config.max_notes_length} characters.")
        self.draft.order_notes = notes

    def retry_quote(self):
        self._ensure_editable()
        self.quote_error = None
        self.draft.shipping_quote = None
        self._requote()
        self._refresh_state()

    def _requote(self):
        if not self._quote_needed():
            self.estimator.invalidate()
            return
        self.estimator.schedule(self.draft.subtotal, self.draft.selected_address, self._on_quote)

    def _on_quote(self, seq: int, quote: Optional[ShippingQuote], error: Optional[QuoteUnavailable]):
        if self.state not in EDITABLE_STATES:
            return

        if error is not None:
            logger.warning(f"Shipping quote #{seq} unavailable: {error.message}")
            self.quote_error = error
            self.last_error = error
        elif quote.is_valid_for(self.draft.subtotal, self.draft.selected_address):
            self.draft.shipping_quote = quote
            self.quote_error = None
        else:
            logger.info(f"Shipping quote #{seq} no longer matches the draft, ignoring")
            return

        self._refresh_state()

    async def apply_coupon(self, code: str) -> CouponApplication:
        """Validate a code for the current cart. Rejections clear the coupon and are raised."""
        self._ensure_editable()
        if self.draft.flow == FulfillmentFlow.INTERNATIONAL:
            raise CouponRejected("NOT_APPLICABLE", "Coupons apply to domestic orders only.")
        if not self.draft.cart_lines:
            raise ValidationError("Your cart is empty.")

        self._drop_coupon()
        self.coupon_error = None
        self._coupon_code = normalize_code(code)
        seq = self._coupon_seq
        self._refresh_state()

        try:
            application = await self.coupons.validate(
                self._coupon_code, self.customer.id, self.draft.subtotal, self.draft.item_count
            )
        except CouponRejected as e:
            if seq == self._coupon_seq:
                self._drop_coupon()
                self.coupon_error = e
                self.last_error = e
                self._refresh_state()
            raise
        except QuoteUnavailable as e:
            if seq == self._coupon_seq:
                self.coupon_error = e
                self.last_error = e
                self._refresh_state()
            raise

        if seq != self._coupon_seq:
            # the cart moved on; a re-check for the same code is already running
            raise StaleInputError("Your order changed while the coupon was being checked.")

        self.draft.coupon_application = application
        self._refresh_state()
        return application

    def clear_coupon(self):
        self._ensure_editable()
        self._drop_coupon()
        self.coupon_error = None
        self._refresh_state()

    def _drop_coupon(self):
        self._coupon_seq += 1
        if self._coupon_task is not None and not self._coupon_task.done():
            self._coupon_task.cancel()
        self._coupon_task = None
        self._coupon_code = None
        self.draft.coupon_application = None

    def _revalidate_coupon(self):
        """Re-check the entered code against the current cart in the background."""
        code = self._coupon_code
        self._coupon_seq += 1
        seq = self._coupon_seq
        if self._coupon_task is not None and not self._coupon_task.done():
            self._coupon_task.cancel()

        self.draft.coupon_application = None
        self.coupon_error = None
        self._coupon_task = asyncio.get_running_loop().create_task(self._run_revalidation(seq, code))

    async def _run_revalidation(self, seq: int, code: str):
        subtotal, item_count = self.draft.subtotal, self.draft.item_count
        try:
            application = await self.coupons.validate(code, self.customer.id, subtotal, item_count)
        except CouponRejected as e:
            if seq == self._coupon_seq:
                logger.info(f"Coupon {code} no longer applies: {e.reason}")
                self._coupon_code = None
                self.draft.coupon_application = None
                self.coupon_error = e
                self.last_error = e
                self._refresh_state()
            return
        except QuoteUnavailable as e:
            if seq == self._coupon_seq:
                self.coupon_error = e
                self.last_error = e
                self._refresh_state()
            return

        if seq != self._coupon_seq:
            return
        self.draft.coupon_application = application
        self._refresh_state()

    def _on_cart_changed(self, cart: CartStore):
        if self._cart_cleared or self.state == CheckoutState.SETTLED:
            return
        if self.state not in EDITABLE_STATES:
            # picked up once the attempt in flight is over
            self._cart_dirty = True
            return
        self._resnapshot()

    def _resnapshot(self):
        self.draft.cart_lines = self.cart.lines
        self._snapshot_version = self.cart.version
        self._cart_dirty = False

        if not self._quote_current():
            self.draft.shipping_quote = None
            self.quote_error = None
            self._requote()

        if self._coupon_code and not self._coupon_current():
            if self.draft.cart_lines:
                self._revalidate_coupon()
            else:
                self._drop_coupon()

        self._refresh_state()

    async def settle_inputs(self):
        """Wait until no shipping quote or coupon re-check is in flight."""
        while True:
            if self.estimator.pending:
                await self.estimator.wait()
                continue
            task = self._coupon_task
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            return

    # ── submission ──────────────────────────────────────────────────

    async def place(self) -> CheckoutOutcome:
        """
        Pay (domestic) or send for a manual quote (international).

        Calls made while an attempt is running share that attempt. Once the
        intent exists the attempt runs to completion even if the caller is
        cancelled.
        """
        if self._place_task is None or self._place_task.done():
            if self._terminal_error is not None:
                raise self._terminal_error
            if self._outcome is not None:
                return self._outcome
            self._place_task = asyncio.get_running_loop().create_task(self._place())
        return await asyncio.shield(self._place_task)

    async def _place(self) -> CheckoutOutcome:
        await self.settle_inputs()
        self._ensure_editable()

        if self._cart_dirty or self.cart.version != self._snapshot_version:
            self._resnapshot()
            error = StaleInputError()
            self.last_error = error
            raise error

        self._guard_stale_inputs()

        problems = self.readiness_problems()
        if problems:
            error = ValidationError(problems[0])
            self.last_error = error
            raise error

        self._refresh_state()
        self.last_error = None
        self.attempts += 1

        if self.draft.flow == FulfillmentFlow.INTERNATIONAL:
            return await self._send_handoff()
        return await self._pay()

    def _guard_stale_inputs(self):
        """Never submit numbers the user is no longer looking at."""
        stale = False
        quote = self.draft.shipping_quote
        if self.draft.flow == FulfillmentFlow.DOMESTIC and quote is not None and not self._quote_current():
            logger.warning("Shipping quote is stale at submission, re-quoting")
            self.draft.shipping_quote = None
            self._requote()
            stale = True

        application = self.draft.coupon_application
        if application is not None and not self._coupon_current():
            logger.warning(f"Coupon {application.code} is stale at submission, re-checking")
            self._revalidate_coupon()
            stale = True

        if stale:
            self._refresh_state()
            error = StaleInputError()
            self.last_error = error
            raise error

    def _return_to_ready(self, error: CheckoutError):
        self.last_error = error
        self.intent = None
        self._transition(CheckoutState.READY, note=error.message)
        if self._cart_dirty:
            self._resnapshot()
        else:
            self._refresh_state()

    def _fail_terminal(self, error: CheckoutError):
        self._terminal_error = error
        self.last_error = error
        self._transition(CheckoutState.FAILED, stage=error.stage, note=error.message)

    def _clear_cart_once(self):
        if self._cart_cleared:
            return
        self._cart_cleared = True
        self._unsubscribe_cart()
        self.cart.clear()

    def _order_payload(self, totals: OrderTotals) -> Tuple[dict, List[dict]]:
        draft = self.draft
        address = draft.selected_address
        application = draft.coupon_application

        order = {
            "itemsSubtotal": totals.items_subtotal,
            "shippingFee": totals.shipping_fee or ZERO,
            "discountTotal": totals.discount_total,
            "grandTotal": totals.grand_total,
            "currency": self.config.currency,
            "couponCode": application.code if application else None,
            "deliveryPartnerId": draft.delivery_partner_id,
            "orderNotes": draft.order_notes.strip() or None,
            "shipName": address.name,
            "shipPhone": address.phone,
            "shipLine1": address.line1,
            "shipLine2": address.line2,
            "shipCountryId": address.country_id,
            "shipStateId": address.state_id,
            "shipDistrictId": address.district_id,
            "shipPincode": address.pincode,
        }
        items = [
            {
                "productId": line.product_id,
                "productName": line.name,
                "quantity": line.quantity,
                "unitPrice": line.unit_price,
                "lineTotal": line.line_total,
                "optionsText": line.variant_label,
            }
            for line in draft.cart_lines
        ]
        return order, items

    def _prefill(self) -> dict:
        address = self.draft.selected_address
        return {
            "name": self.customer.name or "",
            "email": self.customer.email or "",
            "contact": (address.phone if address else None) or self.customer.phone or "",
        }

    async def _pay(self) -> CheckoutOutcome:
        totals = self.totals()
        order, items = self._order_payload(totals)

        # a fresh attempt id and key per attempt: a retry never reuses an intent
        attempt_id = uuid4().hex
        idempotency_key = str(uuid4())
        self._transition(CheckoutState.SUBMITTING, note=f"attempt {attempt_id} total {totals.grand_total}")

        try:
            intent = await self.gateway.create_intent(
                order, items, idempotency_key=idempotency_key, attempt_id=attempt_id
            )
        except StaleInputError as e:
            # server totals differ: fetch fresh numbers before anything else
            self.draft.shipping_quote = None
            if self._coupon_code:
                self._revalidate_coupon()
            self._return_to_ready(e)
            self._requote()
            self._refresh_state()
            raise
        except SubmissionError as e:
            self._return_to_ready(e)
            raise

        self.intent = intent
        self._transition(CheckoutState.AWAITING_PAYMENT, note=intent.gateway_order_id)

        result = await self.gateway.open_widget(intent, self._prefill())

        if result.outcome == GatewayOutcome.DISMISSED:
            self._transition(CheckoutState.CANCELLED, note=result.error_description or "payment window closed")
            error = GatewayFailure("Payment was cancelled. You can try again.", dismissed=True)
            self._return_to_ready(error)
            raise error

        if result.outcome == GatewayOutcome.FAILED:
            error = GatewayFailure(result.error_description or GatewayFailure.default_message)
            self._transition(CheckoutState.FAILED, stage=error.stage, note=error.message)
            self._return_to_ready(error)
            raise error

        self.payment_reference = result.gateway_payment_id
        self._transition(CheckoutState.VERIFYING, note=result.gateway_payment_id)

        try:
            record = await self.gateway.verify(intent, result)
        except (VerificationRejected, VerificationUnconfirmed) as e:
            self._fail_terminal(e)
            raise

        self.order = record
        self._transition(CheckoutState.SETTLED, note=record.public_code)
        self._clear_cart_once()
        self._outcome = CheckoutOutcome(flow=FulfillmentFlow.DOMESTIC, order=record)
        return self._outcome

    def handoff_message(self) -> str:
        address = self.draft.selected_address
        return build_handoff_message(
            HandoffCustomer(id=self.customer.id, name=self.customer.name, email=self.customer.email),
            HandoffAddress(
                name=address.name,
                line1=address.line1,
                line2=address.line2,
                country=self.config.country_names.get(address.country_id),
                pincode=address.pincode,
                phone=address.phone,
            ),
            [
                HandoffLine(name=l.name, quantity=l.quantity, unit_price=l.unit_price, variant=l.variant_label)
                for l in self.draft.cart_lines
            ],
            self.draft.subtotal,
            self.config.currency,
        )

    async def _send_handoff(self) -> CheckoutOutcome:
        self._transition(CheckoutState.SENDING)
        url = build_deep_link(self.config.whatsapp_number, self.handoff_message())

        try:
            await self.link_opener.open(url)
        except Exception as e:
            logger.error(f"Could not open hand-off link: {e}")
            error = HandoffError()
            self._transition(CheckoutState.FAILED, stage=error.stage, note=str(e))
            self._return_to_ready(error)
            raise error from e

        # no delivery confirmation exists for this path
        self.handoff_url = url
        self._transition(CheckoutState.SETTLED, note="hand-off link opened")
        self._clear_cart_once()
        self._outcome = CheckoutOutcome(flow=FulfillmentFlow.INTERNATIONAL, handoff_url=url)
        return self._outcome

    async def close(self):
        self.estimator.invalidate()
        if self._coupon_task is not None and not self._coupon_task.done():
            self._coupon_task.cancel()
        if not self._cart_cleared:
            self._unsubscribe_cart()
