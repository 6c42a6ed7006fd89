"""
Checkout orchestration against the real API over httpx.ASGITransport.

The payment widget and the link opener are the only fakes: the widget signs
its result with the test Razorpay secret, the way Razorpay Checkout does.
"""
import asyncio
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlmodel import select

from storefront.constants.order_status import OrderStatus
from storefront.models.delivery_fee_rule import DeliveryFeeRule, RuleScope
from storefront.models.order import Order
from storefront.orchestrator import (
    CartLine,
    CartStore,
    CheckoutBusy,
    CheckoutOrchestrator,
    CheckoutState,
    CouponRejected,
    CustomerIdentity,
    FailureStage,
    GatewayFailure,
    GatewayResult,
    HandoffError,
    OrchestratorConfig,
    StaleInputError,
    StorefrontClient,
    ValidationError,
    VerificationRejected,
    VerificationUnconfirmed,
)

from conftest import CUSTOMER_ID, INTERNATIONAL_COUNTRY_ID, sign


class FakeWidget:
    def __init__(self, outcome="success", signature=None):
        self.outcome = outcome
        self.signature = signature
        self.opened = []
        self.gate = None

    async def open(self, options):
        self.opened.append(options)
        if self.gate is not None:
            await self.gate.wait()
        if self.outcome == "dismiss":
            return GatewayResult.dismissed()
        if self.outcome == "fail":
            return GatewayResult.failed("Card declined")

        payment_id = f"pay_{len(self.opened):04d}"
        order_id = options["order_id"]
        return GatewayResult.success(order_id, payment_id, self.signature or sign(order_id, payment_id))


class FakeLinkOpener:
    def __init__(self, error=None):
        self.urls = []
        self.error = error

    async def open(self, url):
        if self.error is not None:
            raise self.error
        self.urls.append(url)


class VerifyTimesOut(httpx.AsyncBaseTransport):
    """Lets everything through to the app except payment verification."""

    def __init__(self, app):
        self.inner = httpx.ASGITransport(app=app)

    async def handle_async_request(self, request):
        if request.url.path == "/payments/verify":
            raise httpx.ReadTimeout("verification timed out", request=request)
        return await self.inner.handle_async_request(request)

    async def aclose(self):
        await self.inner.aclose()


class FaultyPath(httpx.AsyncBaseTransport):
    """Answers one path with a canned response until switched off."""

    def __init__(self, app, path, respond):
        self.inner = httpx.ASGITransport(app=app)
        self.path = path
        self.respond = respond
        self.active = True

    async def handle_async_request(self, request):
        if self.active and request.url.path == self.path:
            return self.respond(request)
        return await self.inner.handle_async_request(request)

    async def aclose(self):
        await self.inner.aclose()


def corrupt_gzip(request):
    return httpx.Response(200, headers={"content-encoding": "gzip"}, stream=httpx.ByteStream(b"not-gzip"))


def rates_unavailable(request):
    return httpx.Response(503, json={"detail": "Shipping rates are unavailable right now."})


def bouquet(quantity=2, price="600.00"):
    return CartLine(line_id="rose", product_id=11, name="Rose Bouquet", unit_price=Decimal(price), quantity=quantity)


def make_checkout(app, token, cart, widget=None, opener=None, transport=None, widget_timeout=5):
    client = StorefrontClient(
        "http://testserver",
        token=token,
        transport=transport or httpx.ASGITransport(app=app),
    )
    config = OrchestratorConfig(
        domestic_country_id=1,
        whatsapp_number="+91 90000 12345",
        debounce_seconds=0,
        widget_timeout_seconds=widget_timeout,
        country_names={INTERNATIONAL_COUNTRY_ID: "United Kingdom"},
    )
    orchestrator = CheckoutOrchestrator(
        client,
        cart,
        widget or FakeWidget(),
        opener or FakeLinkOpener(),
        CustomerIdentity(id=CUSTOMER_ID, name="Asha Rao", email="asha@example.com"),
        config,
    )
    return client, orchestrator


async def ready_domestic(orchestrator, seeded, coupon="WELCOME10"):
    await orchestrator.load()
    orchestrator.select_delivery_partner(seeded.partner.id)
    if coupon:
        await orchestrator.apply_coupon(coupon)
    await orchestrator.settle_inputs()


def states(orchestrator):
    return [t.target for t in orchestrator.history]


@pytest.mark.asyncio
async def test_domestic_checkout_settles(app, token, seeded, gateway, session):
    cart = CartStore([bouquet()])
    widget = FakeWidget()
    client, checkout = make_checkout(app, token, cart, widget)

    async with client:
        await ready_domestic(checkout, seeded)

        assert checkout.state == CheckoutState.READY
        totals = checkout.totals()
        assert totals.items_subtotal == Decimal("1200.00")
        assert totals.shipping_fee == Decimal("50.00")
        assert totals.discount_total == Decimal("120.00")
        assert totals.grand_total == Decimal("1130.00")

        outcome = await checkout.place()

    assert checkout.state == CheckoutState.SETTLED
    assert outcome.order.status == OrderStatus.PAID
    assert outcome.order.grand_total == Decimal("1130.00")
    assert cart.is_empty()

    assert widget.opened[0]["amount"] == 113000
    assert widget.opened[0]["key"] == "rzp_test_key"
    assert widget.opened[0]["theme"] == {"color": "#F05D8B"}
    assert widget.opened[0]["prefill"]["contact"] == "9876543210"

    order = session.exec(select(Order)).one()
    assert order.status == OrderStatus.PAID
    assert order.grand_total == Decimal("1130.00")

    assert CheckoutState.SUBMITTING in states(checkout)
    assert states(checkout)[-3:] == [CheckoutState.AWAITING_PAYMENT, CheckoutState.VERIFYING, CheckoutState.SETTLED]


@pytest.mark.asyncio
async def test_cart_change_revalidates_coupon(app, token, seeded):
    cart = CartStore([bouquet(quantity=3, price="400.00")])
    client, checkout = make_checkout(app, token, cart)

    async with client:
        await ready_domestic(checkout, seeded)
        assert checkout.totals().discount_total == Decimal("120.00")

        cart.set_quantity("rose", 1)
        await checkout.settle_inputs()

        totals = checkout.totals()
        assert totals.items_subtotal == Decimal("400.00")
        assert totals.discount_total == Decimal("0.00")
        assert totals.grand_total == Decimal("450.00")
        assert checkout.draft.coupon_application is None
        assert checkout.coupon_error.reason == "MIN_ORDER_NOT_MET"
        assert checkout.state == CheckoutState.READY


@pytest.mark.asyncio
async def test_coupon_rejected_on_apply(app, token, seeded):
    cart = CartStore([bouquet(quantity=1, price="400.00")])
    client, checkout = make_checkout(app, token, cart)

    async with client:
        await checkout.load()
        checkout.select_delivery_partner(seeded.partner.id)
        with pytest.raises(CouponRejected) as exc:
            await checkout.apply_coupon("WELCOME10")
        await checkout.settle_inputs()

    assert exc.value.reason == "MIN_ORDER_NOT_MET"
    assert checkout.draft.coupon_application is None
    assert checkout.state == CheckoutState.READY


@pytest.mark.asyncio
async def test_place_twice_creates_one_order(app, token, seeded, gateway, session):
    cart = CartStore([bouquet()])
    client, checkout = make_checkout(app, token, cart)

    async with client:
        await ready_domestic(checkout, seeded)
        first, second = await asyncio.gather(checkout.place(), checkout.place())
        third = await checkout.place()

    assert first is second is third
    assert len(gateway.orders) == 1
    assert len(session.exec(select(Order)).all()) == 1


@pytest.mark.asyncio
async def test_tampered_signature_fails_verification(app, token, seeded, session):
    cart = CartStore([bouquet()])
    client, checkout = make_checkout(app, token, cart, FakeWidget(signature="0" * 64))

    async with client:
        await ready_domestic(checkout, seeded)
        with pytest.raises(VerificationRejected):
            await checkout.place()

        # terminal: placing again reports the same failure
        with pytest.raises(VerificationRejected):
            await checkout.place()

    assert checkout.state == CheckoutState.FAILED
    assert checkout.history[-1].stage == FailureStage.VERIFICATION_REJECTED
    assert not cart.is_empty()
    assert session.exec(select(Order)).one().status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_verification_timeout_keeps_payment_reference(app, token, seeded, gateway):
    cart = CartStore([bouquet()])
    client, checkout = make_checkout(app, token, cart, transport=VerifyTimesOut(app))

    async with client:
        await ready_domestic(checkout, seeded)
        with pytest.raises(VerificationUnconfirmed) as exc:
            await checkout.place()

    error = exc.value
    assert error.stage == FailureStage.PAYMENT_CAPTURED_ORDER_UNCONFIRMED
    assert error.requires_support and not error.retry_safe
    assert error.payment_reference == "pay_0001"
    assert "pay_0001" in error.message
    assert checkout.payment_reference == "pay_0001"
    assert checkout.state == CheckoutState.FAILED
    assert not cart.is_empty()
    assert len(gateway.orders) == 1


@pytest.mark.asyncio
async def test_dismissed_widget_returns_to_ready(app, token, seeded, gateway):
    cart = CartStore([bouquet()])
    widget = FakeWidget(outcome="dismiss")
    client, checkout = make_checkout(app, token, cart, widget)

    async with client:
        await ready_domestic(checkout, seeded)
        with pytest.raises(GatewayFailure) as exc:
            await checkout.place()

        assert exc.value.dismissed
        assert states(checkout)[-2:] == [CheckoutState.CANCELLED, CheckoutState.READY]
        assert checkout.state == CheckoutState.READY
        assert not cart.is_empty()

        # a retry is a new attempt with a new gateway order
        widget.outcome = "success"
        outcome = await checkout.place()

    assert outcome.order.status == OrderStatus.PAID
    assert len(gateway.orders) == 2
    assert checkout.attempts == 2


@pytest.mark.asyncio
async def test_unreadable_verification_answer_keeps_payment_reference(app, token, seeded, gateway):
    cart = CartStore([bouquet()])
    transport = FaultyPath(app, "/payments/verify", corrupt_gzip)
    client, checkout = make_checkout(app, token, cart, transport=transport)

    async with client:
        await ready_domestic(checkout, seeded)
        with pytest.raises(VerificationUnconfirmed) as exc:
            await checkout.place()

        # terminal, not stuck in VERIFYING
        with pytest.raises(VerificationUnconfirmed):
            await checkout.place()

    assert exc.value.payment_reference == "pay_0001"
    assert checkout.state == CheckoutState.FAILED
    assert checkout.history[-1].stage == FailureStage.PAYMENT_CAPTURED_ORDER_UNCONFIRMED
    assert not cart.is_empty()
    assert len(gateway.orders) == 1


@pytest.mark.asyncio
async def test_widget_that_never_answers_is_a_dismissal(app, token, seeded, gateway):
    cart = CartStore([bouquet()])
    widget = FakeWidget()
    widget.gate = asyncio.Event()
    client, checkout = make_checkout(app, token, cart, widget, widget_timeout=0.05)

    async with client:
        await ready_domestic(checkout, seeded)
        with pytest.raises(GatewayFailure) as exc:
            await checkout.place()

        assert exc.value.dismissed
        assert states(checkout)[-2:] == [CheckoutState.CANCELLED, CheckoutState.READY]
        assert checkout.state == CheckoutState.READY
        assert not cart.is_empty()

        widget.gate.set()
        outcome = await checkout.place()

    assert outcome.order.status == OrderStatus.PAID
    assert len(gateway.orders) == 2
    assert len(widget.opened) == 2
    assert widget.opened[0]["order_id"] != widget.opened[1]["order_id"]


@pytest.mark.asyncio
@pytest.mark.parametrize("respond", [rates_unavailable, corrupt_gzip])
async def test_failed_quote_blocks_submission_until_retried(app, token, seeded, gateway, session, respond):
    cart = CartStore([bouquet()])
    transport = FaultyPath(app, "/shipping/preview", respond)
    client, checkout = make_checkout(app, token, cart, transport=transport)

    async with client:
        await ready_domestic(checkout, seeded, coupon=None)

        assert checkout.state == CheckoutState.DRAFT
        assert checkout.quote_error is not None
        assert checkout.totals().shipping_fee is None

        with pytest.raises(ValidationError) as exc:
            await checkout.place()
        assert exc.value.message == checkout.quote_error.message

        transport.active = False
        checkout.retry_quote()
        await checkout.settle_inputs()

        assert checkout.state == CheckoutState.READY
        assert checkout.quote_error is None
        assert checkout.totals().shipping_fee == Decimal("50.00")

    assert gateway.orders == []
    assert session.exec(select(Order)).all() == []


@pytest.mark.asyncio
async def test_sub_cent_prices_match_server_totals(app, token, seeded, gateway):
    cart = CartStore([bouquet(quantity=3, price="333.335")])
    widget = FakeWidget()
    client, checkout = make_checkout(app, token, cart, widget)

    async with client:
        await ready_domestic(checkout, seeded)
        assert checkout.totals().items_subtotal == Decimal("1000.02")

        outcome = await checkout.place()

    assert outcome.order.grand_total == Decimal("950.02")
    assert widget.opened[0]["amount"] == 95002
    assert len(gateway.orders) == 1


def test_line_total_rounds_unit_price_half_up():
    assert bouquet(quantity=3, price="0.125").line_total == Decimal("0.39")
    assert bouquet(quantity=2, price="600").line_total == Decimal("1200.00")


@pytest.mark.asyncio
async def test_failed_payment_returns_to_ready(app, token, seeded):
    cart = CartStore([bouquet()])
    client, checkout = make_checkout(app, token, cart, FakeWidget(outcome="fail"))

    async with client:
        await ready_domestic(checkout, seeded)
        with pytest.raises(GatewayFailure) as exc:
            await checkout.place()

    assert not exc.value.dismissed
    assert exc.value.message == "Card declined"
    failed = [t for t in checkout.history if t.target == CheckoutState.FAILED]
    assert failed[0].stage == FailureStage.GATEWAY
    assert checkout.state == CheckoutState.READY


@pytest.mark.asyncio
async def test_server_totals_change_triggers_requote(app, token, seeded, session, gateway):
    cart = CartStore([bouquet()])
    client, checkout = make_checkout(app, token, cart)

    async with client:
        await ready_domestic(checkout, seeded)
        session.add(DeliveryFeeRule(scope=RuleScope.DISTRICT, scope_id=101, fee_amount=Decimal("30")))
        session.commit()

        with pytest.raises(StaleInputError):
            await checkout.place()
        await checkout.settle_inputs()

        assert checkout.state == CheckoutState.READY
        assert checkout.totals().shipping_fee == Decimal("30.00")
        assert gateway.orders == []

        outcome = await checkout.place()

    assert outcome.order.grand_total == Decimal("1110.00")


@pytest.mark.asyncio
async def test_inputs_frozen_while_awaiting_payment(app, token, seeded):
    cart = CartStore([bouquet()])
    widget = FakeWidget()
    widget.gate = asyncio.Event()
    client, checkout = make_checkout(app, token, cart, widget)

    async with client:
        await ready_domestic(checkout, seeded)
        placing = asyncio.create_task(checkout.place())
        while checkout.state != CheckoutState.AWAITING_PAYMENT:
            await asyncio.sleep(0.01)

        with pytest.raises(CheckoutBusy):
            checkout.select_delivery_partner(None)
        with pytest.raises(CheckoutBusy):
            await checkout.apply_coupon("WELCOME10")

        widget.gate.set()
        outcome = await placing

    assert outcome.order.status == OrderStatus.PAID


@pytest.mark.asyncio
async def test_missing_partner_blocks_submission(app, token, seeded, gateway):
    cart = CartStore([bouquet()])
    client, checkout = make_checkout(app, token, cart)

    async with client:
        await checkout.load()
        await checkout.settle_inputs()

        assert checkout.state == CheckoutState.DRAFT
        with pytest.raises(ValidationError) as exc:
            await checkout.place()

    assert "delivery partner" in exc.value.message
    assert gateway.orders == []


@pytest.mark.asyncio
async def test_international_checkout_hands_off(app, token, seeded, gateway, session):
    cart = CartStore([bouquet(quantity=3)])
    opener = FakeLinkOpener()
    widget = FakeWidget()
    client, checkout = make_checkout(app, token, cart, widget, opener)

    async with client:
        await checkout.load()
        international = next(a for a in checkout.addresses if a.country_id == INTERNATIONAL_COUNTRY_ID)
        checkout.select_address(international)

        assert checkout.state == CheckoutState.READY
        assert checkout.totals().grand_total == Decimal("1800.00")

        outcome = await checkout.place()

    assert checkout.state == CheckoutState.SETTLED
    assert states(checkout)[-2:] == [CheckoutState.SENDING, CheckoutState.SETTLED]
    assert cart.is_empty()
    assert opener.urls == [outcome.handoff_url]

    parsed = urlparse(outcome.handoff_url)
    assert parsed.path == "/919000012345"
    text = parse_qs(parsed.query)["text"][0]
    assert "221B Baker Street, United Kingdom, NW1 6XE" in text
    assert "• Rose Bouquet × 3 — ₹1,800.00" in text
    assert "*Total:* ₹1,800.00" in text

    assert widget.opened == []
    assert gateway.orders == []
    assert session.exec(select(Order)).all() == []


@pytest.mark.asyncio
async def test_switching_to_international_drops_coupon(app, token, seeded):
    cart = CartStore([bouquet()])
    client, checkout = make_checkout(app, token, cart)

    async with client:
        await ready_domestic(checkout, seeded)
        international = next(a for a in checkout.addresses if a.country_id == INTERNATIONAL_COUNTRY_ID)
        checkout.select_address(international)

    assert checkout.draft.coupon_application is None
    assert checkout.draft.shipping_quote is None
    assert checkout.totals().discount_total == Decimal("0.00")


@pytest.mark.asyncio
async def test_handoff_failure_keeps_cart(app, token, seeded):
    cart = CartStore([bouquet()])
    opener = FakeLinkOpener(error=OSError("no browser"))
    client, checkout = make_checkout(app, token, cart, opener=opener)

    async with client:
        await checkout.load()
        checkout.select_address(next(a for a in checkout.addresses if a.country_id == INTERNATIONAL_COUNTRY_ID))
        with pytest.raises(HandoffError) as exc:
            await checkout.place()

    assert exc.value.stage == FailureStage.HANDOFF
    assert checkout.state == CheckoutState.READY
    assert not cart.is_empty()


def test_order_notes_are_limited(app, token):
    _, checkout = make_checkout(app, token, CartStore([bouquet()]))

    checkout.set_order_notes("Leave at the door")
    assert checkout.draft.order_notes == "Leave at the door"
    with pytest.raises(ValidationError):
        checkout.set_order_notes("x" * 501)
