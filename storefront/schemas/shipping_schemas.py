from decimal import Decimal
from typing import Optional

from pydantic import Field

from storefront.schemas.base import CamelModel


class ShippingPreviewRequest(CamelModel):
    items_subtotal: Decimal = Field(default=Decimal("0"), ge=0)
    state_id: Optional[int] = None
    district_id: Optional[int] = None


class ShippingPreviewResponse(CamelModel):
    fee: Decimal
    free: bool


class ShippingQuoteResponse(ShippingPreviewResponse):
    items_subtotal: Decimal
    state_id: Optional[int] = None
    district_id: Optional[int] = None
