from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

class Address(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: int = Field(index=True)
    name: str
    phone: Optional[str] = None
    line1: str
    line2: Optional[str] = None
    country_id: int = Field(index=True)
    state_id: Optional[int] = None
    district_id: Optional[int] = None
    pincode: Optional[str] = None
    is_default: bool = False
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
