from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from storefront.database import get_session
from storefront.models.address import Address
from storefront.models.delivery_partner import DeliveryPartner
from storefront.schemas.address_schemas import AddressRead, DeliveryPartnerRead
from storefront.utils.token import get_current_customer_id

router = APIRouter()
partners_router = APIRouter()


@router.get("", response_model=List[AddressRead])
def list_addresses(
    customer_id: int = Query(..., alias="customerId"),
    session: Session = Depends(get_session),
    current_customer_id: int = Depends(get_current_customer_id),
):
    if customer_id != current_customer_id:
        raise HTTPException(403, "Not allowed to read these addresses")

    addresses = session.exec(
        select(Address)
        .where(Address.customer_id == customer_id)
        .where(Address.active == True)  # noqa: E712
        .order_by(Address.is_default.desc(), Address.id)
    ).all()

    return [AddressRead.model_validate(a, from_attributes=True) for a in addresses]


@partners_router.get("/active", response_model=List[DeliveryPartnerRead])
def list_active_partners(session: Session = Depends(get_session)):
    partners = session.exec(
        select(DeliveryPartner)
        .where(DeliveryPartner.active == True)  # noqa: E712
        .order_by(DeliveryPartner.name)
    ).all()

    return [DeliveryPartnerRead.model_validate(p, from_attributes=True) for p in partners]
