import logging
from decimal import Decimal
from typing import Optional

from storefront.orchestrator.api_client import ApiError, ApiTransportError, StorefrontClient
from storefront.orchestrator.errors import CouponRejected, QuoteUnavailable
from storefront.orchestrator.models import CouponApplication, FailureStage
from storefront.orchestrator.normalize import MalformedResponse, coupon_from_wire

logger = logging.getLogger(__name__)


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class CouponValidator:
    """One-shot coupon checks against the server's preview endpoint."""

    def __init__(self, client: StorefrontClient):
        self.client = client

    async def validate(
        self,
        code: str,
        customer_id: Optional[int],
        subtotal: Decimal,
        item_count: int,
    ) -> CouponApplication:
        norm = normalize_code(code)
        if not norm:
            raise CouponRejected("EMPTY_CODE", "Enter a coupon code.")

        try:
            data = await self.client.preview_coupon(norm, customer_id, subtotal, item_count)
            application = coupon_from_wire(data, code=norm, subtotal=subtotal, item_count=item_count)
        except ApiError as e:
            if 400 <= e.status_code < 500:
                raise CouponRejected(e.reason or "REJECTED", e.message) from e
            raise QuoteUnavailable("Coupon validation failed. Please retry.", stage=FailureStage.COUPON) from e
        except (ApiTransportError, MalformedResponse) as e:
            logger.warning(f"Coupon {norm} validation failed: {e}")
            raise QuoteUnavailable("Coupon validation failed. Please retry.", stage=FailureStage.COUPON) from e

        if application.discount_amount <= 0:
            raise CouponRejected("NOT_APPLICABLE", "Coupon not applicable for this order.")

        logger.info(f"Coupon {norm} accepted: discount {application.discount_amount} on {subtotal}")
        return application
