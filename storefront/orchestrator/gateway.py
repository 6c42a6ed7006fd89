import asyncio
import logging
from typing import List, Optional, Protocol

from storefront.constants.order_status import OrderStatus
from storefront.orchestrator.api_client import ApiError, ApiTransportError, StorefrontClient
from storefront.orchestrator.errors import (
    StaleInputError,
    SubmissionError,
    VerificationRejected,
    VerificationUnconfirmed,
)
from storefront.orchestrator.models import GatewayResult, OrderRecord, PaymentIntent
from storefront.orchestrator.normalize import (
    MalformedResponse,
    order_record_from_verify,
    payment_intent_from_wire,
)

logger = logging.getLogger(__name__)

DEFAULT_WIDGET_TIMEOUT = 15 * 60


class PaymentWidget(Protocol):
    """The hosted payment UI (Razorpay Checkout in the browser)."""

    async def open(self, options: dict) -> GatewayResult:
        ...


class PaymentGatewayAdapter:
    """
    Creates the payment intent, runs the widget and asks the server to verify.

    The widget's success report is only a trigger for server verification.
    Nothing here ever marks an order paid on its own.
    """

    def __init__(
        self,
        client: StorefrontClient,
        widget: PaymentWidget,
        *,
        widget_timeout_seconds: float = DEFAULT_WIDGET_TIMEOUT,
        merchant_name: str = "Storefront",
        theme_color: str = "#F05D8B",
    ):
        self.client = client
        self.widget = widget
        self.widget_timeout_seconds = widget_timeout_seconds
        self.merchant_name = merchant_name
        self.theme_color = theme_color

    async def create_intent(
        self,
        order: dict,
        items: List[dict],
        *,
        idempotency_key: str,
        attempt_id: Optional[str] = None,
    ) -> PaymentIntent:
        try:
            data = await self.client.start_checkout(order, items, idempotency_key=idempotency_key)
            intent = payment_intent_from_wire(data, attempt_id=attempt_id)
        except ApiError as e:
            if e.status_code == 409 and e.reason == "TOTALS_CHANGED":
                raise StaleInputError(e.message) from e
            raise SubmissionError(e.message) from e
        except ApiTransportError as e:
            raise SubmissionError("Could not reach the store. Please try again.") from e
        except MalformedResponse as e:
            logger.error(f"Unusable checkout response for attempt {attempt_id}: {e}")
            raise SubmissionError("Server did not return a payment order. Please try again.") from e

        logger.info(
            f"Payment intent {intent.gateway_order_id} for order {intent.internal_order_id} "
            f"({intent.amount_minor_units} {intent.currency}) attempt={attempt_id}"
        )
        return intent

    def widget_options(self, intent: PaymentIntent, prefill: Optional[dict] = None) -> dict:
        return {
            "key": intent.key,
            "order_id": intent.gateway_order_id,
            "amount": intent.amount_minor_units,
            "currency": intent.currency,
            "name": self.merchant_name,
            "description": "Order Payment",
            "prefill": prefill or {},
            "theme": {"color": self.theme_color},
        }

    async def open_widget(self, intent: PaymentIntent, prefill: Optional[dict] = None) -> GatewayResult:
        """Wait for the widget. Closing it or running out of time counts as a dismissal."""
        options = self.widget_options(intent, prefill)
        try:
            return await asyncio.wait_for(self.widget.open(options), timeout=self.widget_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Payment widget for {intent.gateway_order_id} timed out")
            return GatewayResult.dismissed("Payment window timed out")

    async def verify(self, intent: PaymentIntent, result: GatewayResult) -> OrderRecord:
        payment_reference = result.gateway_payment_id or "unknown"
        payload = {
            "orderId": intent.internal_order_id,
            # the intent's order id, not whatever the callback claimed
            "gatewayOrderId": intent.gateway_order_id,
            "gatewayPaymentId": result.gateway_payment_id,
            "signature": result.signature,
            "currency": intent.currency,
        }

        if not result.gateway_payment_id or not result.signature:
            raise VerificationRejected("Payment response was incomplete.")

        try:
            data = await self.client.verify_payment(payload)
            record = order_record_from_verify(data)
        except ApiError as e:
            if e.status_code == 400 and e.reason == "SIGNATURE_INVALID":
                raise VerificationRejected(e.message) from e
            raise VerificationUnconfirmed(payment_reference, intent.public_code, detail=str(e)) from e
        except (ApiTransportError, MalformedResponse) as e:
            logger.error(
                f"Verification of payment {payment_reference} for {intent.public_code} unconfirmed: {e}"
            )
            raise VerificationUnconfirmed(payment_reference, intent.public_code, detail=str(e)) from e

        if record.status != OrderStatus.PAID:
            raise VerificationUnconfirmed(
                payment_reference,
                intent.public_code,
                detail=f"order status {record.status.value}",
            )

        logger.info(f"Payment {payment_reference} verified, order {record.public_code} is PAID")
        return record
