import logging
from functools import lru_cache
from typing import Dict, Optional

import razorpay
import requests

from storefront.config import settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Razorpay could not create the order."""


class RazorpayGateway:
    def __init__(self, key_id: str, key_secret: str):
        self.key_id = key_id
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_order(
        self,
        *,
        amount_paise: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> dict:
        """Create a Razorpay order (auto-capture). Returns the API payload."""
        logger.info(f"Creating Razorpay order receipt={receipt} amount={amount_paise} {currency}")
        try:
            return self.client.order.create(
                {
                    "amount": amount_paise,
                    "currency": currency,
                    "receipt": receipt,
                    "notes": notes or {},
                    "payment_capture": 1,
                }
            )
        except (
            razorpay.errors.BadRequestError,
            razorpay.errors.GatewayError,
            razorpay.errors.ServerError,
            requests.RequestException,
        ) as e:
            logger.error(f"Razorpay order creation failed for {receipt}: {e}")
            raise GatewayError(str(e)) from e

    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        """Checkout signature is HMAC-SHA256(order_id|payment_id) keyed by the API secret."""
        try:
            self.client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": gateway_order_id,
                    "razorpay_payment_id": gateway_payment_id,
                    "razorpay_signature": signature,
                }
            )
        except razorpay.errors.SignatureVerificationError:
            logger.warning(f"Signature mismatch for Razorpay order {gateway_order_id}")
            return False
        return True


@lru_cache(maxsize=1)
def get_payment_gateway() -> RazorpayGateway:
    return RazorpayGateway(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
