from storefront.orchestrator.api_client import ApiError, ApiTransportError, StorefrontClient
from storefront.orchestrator.cart import CartStore
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
from storefront.orchestrator.gateway import PaymentGatewayAdapter, PaymentWidget
from storefront.orchestrator.models import (
    Address,
    CartLine,
    CheckoutOutcome,
    CheckoutState,
    CustomerIdentity,
    FailureStage,
    GatewayResult,
    OrderRecord,
    PaymentIntent,
    ShippingQuote,
)
from storefront.orchestrator.orchestrator import CheckoutOrchestrator, LinkOpener, OrchestratorConfig
from storefront.orchestrator.shipping import ShippingFeeEstimator
from storefront.orchestrator.coupons import CouponValidator
