from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from storefront.constants.fulfillment import FulfillmentFlow
from storefront.constants.order_status import OrderStatus
from storefront.models.order_item import OrderItem


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_code: Optional[str] = Field(default=None, index=True, unique=True)
    customer_id: int = Field(index=True)

    flow: FulfillmentFlow = Field(default=FulfillmentFlow.DOMESTIC)
    status: OrderStatus = Field(default=OrderStatus.PENDING, index=True)

    items_subtotal: Decimal = Field(max_digits=12, decimal_places=2)
    shipping_fee: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    discount_total: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    grand_total: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str = Field(default="INR", max_length=8)

    coupon_id: Optional[int] = Field(default=None, foreign_key="coupon.id")
    coupon_code: Optional[str] = None
    delivery_partner_id: Optional[int] = Field(default=None, foreign_key="delivery_partner.id")
    courier_name: Optional[str] = None
    order_notes: Optional[str] = None

    # shipping snapshot, copied from the selected address
    ship_name: str
    ship_phone: Optional[str] = None
    ship_line1: str
    ship_line2: Optional[str] = None
    ship_country_id: int
    ship_state_id: Optional[int] = None
    ship_district_id: Optional[int] = None
    ship_pincode: Optional[str] = None

    gateway_order_id: Optional[str] = Field(default=None, index=True)
    idempotency_key: Optional[str] = Field(default=None, index=True, unique=True)
    checkout_response: Optional[str] = None  # replayed verbatim for the same idempotency key

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    items: List["OrderItem"] = Relationship(back_populates="order")
