# storefront/schemas/checkout_schemas.py
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field

from storefront.schemas.base import CamelModel


class OrderItemDraft(CamelModel):
    product_id: Optional[int] = None
    product_name: str
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    line_total: Optional[Decimal] = None   # recomputed server side
    options_text: Optional[str] = None


class OrderDraft(CamelModel):
    items_subtotal: Decimal = Field(ge=0)
    shipping_fee: Decimal = Decimal("0")
    discount_total: Decimal = Decimal("0")
    grand_total: Decimal = Field(ge=0)
    currency: Optional[str] = None

    coupon_code: Optional[str] = None
    delivery_partner_id: Optional[int] = None
    order_notes: Optional[str] = None

    ship_name: str
    ship_phone: Optional[str] = None
    ship_line1: str
    ship_line2: Optional[str] = None
    ship_country_id: int
    ship_state_id: Optional[int] = None
    ship_district_id: Optional[int] = None
    ship_pincode: Optional[str] = None


class CheckoutRequest(CamelModel):
    order: OrderDraft
    items: List[OrderItemDraft] = Field(min_length=1)


class GatewayOrder(CamelModel):
    id: str
    amount: int          # minor units (paise)
    currency: str


class CheckoutResponse(CamelModel):
    type: Literal["GATEWAY_ORDER", "MANUAL"]
    order_id: int
    public_code: str
    currency: str
    key: Optional[str] = None
    gateway_order: Optional[GatewayOrder] = None
    handoff_url: Optional[str] = None
