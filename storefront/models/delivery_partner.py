from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class DeliveryPartner(SQLModel, table=True):
    __tablename__ = "delivery_partner"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    code: Optional[str] = Field(default=None, index=True)
    tracking_url_template: Optional[str] = None
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
