from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from storefront.constants.order_status import PaymentStatus


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    order_id: int = Field(foreign_key="order.id", index=True)
    customer_id: int = Field(index=True)

    # gateway payment reference, unique per capture
    txn_id: str = Field(index=True, unique=True)
    gateway_order_id: Optional[str] = Field(default=None, index=True)
    gateway_signature: Optional[str] = None

    amount: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str = Field(default="INR", max_length=8)
    status: PaymentStatus = PaymentStatus.CAPTURED
    method: str = "razorpay"
    created_by: str = "customer"
    created_at: datetime = Field(default_factory=datetime.utcnow)
