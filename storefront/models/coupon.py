from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class DiscountType(str, Enum):
    PERCENT = "PERCENT"
    FLAT = "FLAT"


class Coupon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # stored upper-case
    code: str = Field(index=True, unique=True, max_length=40)
    discount_type: DiscountType
    discount_value: Decimal = Field(max_digits=12, decimal_places=2)

    min_order_total: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    min_items: Optional[int] = None

    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None

    usage_limit: Optional[int] = None          # None = unlimited
    per_customer_limit: Optional[int] = None   # None = unlimited

    active: bool = True
    visible: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class CouponRedemption(SQLModel, table=True):
    __tablename__ = "coupon_redemption"
    id: Optional[int] = Field(default=None, primary_key=True)

    coupon_id: int = Field(foreign_key="coupon.id", index=True)
    order_id: int = Field(foreign_key="order.id", index=True, unique=True)
    customer_id: int = Field(index=True)
    amount_applied: Decimal = Field(max_digits=12, decimal_places=2)

    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
