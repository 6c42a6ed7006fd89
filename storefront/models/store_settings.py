from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

class StoreSettings(SQLModel, table=True):
    __tablename__ = "store_settings"
    id: Optional[int] = Field(default=1, primary_key=True)
    free_shipping_threshold: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    whatsapp_number: Optional[str] = None
    merchant_name: Optional[str] = None

    updated_at: datetime = Field(default_factory=datetime.utcnow)
