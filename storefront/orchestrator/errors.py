"""
Failures the checkout orchestrator surfaces to its caller.

Every error names the stage that failed and whether trying again is safe.
Raw transport and HTTP errors never leave the orchestrator; they are mapped
onto one of these first.
"""
from typing import Optional

from storefront.orchestrator.models import FailureStage


class CheckoutError(Exception):
    stage: FailureStage = FailureStage.VALIDATION
    retry_safe: bool = True
    requires_support: bool = False
    default_message = "Checkout failed. Please try again."

    def __init__(self, message: Optional[str] = None, *, stage: Optional[FailureStage] = None):
        self.message = message or self.default_message
        if stage is not None:
            self.stage = stage
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(stage={self.stage.value!r}, message={self.message!r})"


class ValidationError(CheckoutError):
    default_message = "Please complete the checkout details."


class CouponRejected(ValidationError):
    stage = FailureStage.COUPON
    default_message = "Coupon not applicable for this order."

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class CheckoutBusy(CheckoutError):
    default_message = "Please wait for the current step to finish."


class QuoteUnavailable(CheckoutError):
    stage = FailureStage.SHIPPING_QUOTE
    default_message = "Could not compute shipping fee. Please retry."


class StaleInputError(CheckoutError):
    default_message = "Your order changed. Totals are being refreshed, please review and try again."


class SubmissionError(CheckoutError):
    stage = FailureStage.SUBMISSION
    default_message = "Checkout failed. Please try again."


class GatewayFailure(CheckoutError):
    stage = FailureStage.GATEWAY
    default_message = "Payment failed. Please try again."

    def __init__(self, message: Optional[str] = None, *, dismissed: bool = False):
        super().__init__(message)
        self.dismissed = dismissed


class VerificationRejected(CheckoutError):
    """The server refused the payment signature. The order is not paid."""

    stage = FailureStage.VERIFICATION_REJECTED
    retry_safe = False
    default_message = "Payment could not be verified."


class VerificationUnconfirmed(CheckoutError):
    """Money may have been captured but the order was not confirmed."""

    stage = FailureStage.PAYMENT_CAPTURED_ORDER_UNCONFIRMED
    retry_safe = False
    requires_support = True

    def __init__(self, payment_reference: str, order_public_code: Optional[str] = None, detail: Optional[str] = None):
        self.payment_reference = payment_reference
        self.order_public_code = order_public_code
        self.detail = detail
        message = (
            "Your payment may have been captured but we could not confirm your order. "
            "Do not pay again. Contact support with payment reference "
            f"{payment_reference}"
        )
        if order_public_code:
            message += f" (order {order_public_code})"
        super().__init__(message + ".")


class HandoffError(CheckoutError):
    stage = FailureStage.HANDOFF
    default_message = "Could not open the messaging app. Please try again."
