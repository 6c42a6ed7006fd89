from typing import Optional

from storefront.schemas.base import CamelModel


class AddressRead(CamelModel):
    id: int
    customer_id: int
    name: str
    phone: Optional[str] = None
    line1: str
    line2: Optional[str] = None
    country_id: int
    state_id: Optional[int] = None
    district_id: Optional[int] = None
    pincode: Optional[str] = None
    is_default: bool = False
    active: bool = True


class DeliveryPartnerRead(CamelModel):
    id: int
    name: str
    code: Optional[str] = None
    active: bool = True
