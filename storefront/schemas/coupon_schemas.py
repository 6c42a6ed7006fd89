from decimal import Decimal
from typing import Optional

from pydantic import Field

from storefront.schemas.base import CamelModel


class CouponPreviewRequest(CamelModel):
    customer_id: Optional[int] = None
    order_total: Decimal = Field(ge=0)
    items_count: int = Field(default=0, ge=0)


class CouponPreviewResponse(CamelModel):
    code: str
    discount: Decimal
    discount_type: str
