from sqlmodel import SQLModel, Field , Relationship
from typing import Optional , TYPE_CHECKING
from decimal import Decimal

if TYPE_CHECKING:
    from storefront.models.order import Order

class OrderItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    product_id: Optional[int] = None

    product_name: str
    unit_price: Decimal = Field(max_digits=12, decimal_places=2)
    quantity: int
    line_total: Decimal = Field(max_digits=12, decimal_places=2)
    options_text: Optional[str] = None

    order: Optional["Order"] = Relationship(back_populates="items")
