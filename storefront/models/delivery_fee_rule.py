from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class RuleScope(str, Enum):
    DEFAULT = "DEFAULT"
    STATE = "STATE"
    DISTRICT = "DISTRICT"


class DeliveryFeeRule(SQLModel, table=True):
    """Per-geo shipping fee. scope_id is the state/district id, None for DEFAULT."""
    __tablename__ = "delivery_fee_rule"
    id: Optional[int] = Field(default=None, primary_key=True)

    scope: RuleScope = Field(default=RuleScope.DEFAULT, index=True)
    scope_id: Optional[int] = Field(default=None, index=True)
    fee_amount: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)

    active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
