from datetime import datetime
from decimal import Decimal
from typing import Optional

from storefront.schemas.base import CamelModel


class PaymentVerifyRequest(CamelModel):
    order_id: Optional[int] = None
    gateway_order_id: str
    gateway_payment_id: str
    signature: str
    # informational only, the stored order total is charged
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class PaymentVerifyResponse(CamelModel):
    order_id: int
    public_code: str
    status: str
    payment_id: int
    txn_id: str
    grand_total: Decimal
    paid_at: Optional[datetime] = None
