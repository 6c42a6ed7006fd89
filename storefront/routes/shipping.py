from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from storefront.database import get_session
from storefront.schemas.shipping_schemas import (
    ShippingPreviewRequest,
    ShippingPreviewResponse,
    ShippingQuoteResponse,
)
from storefront.services.shipping_fee_service import compute_fee_with_threshold

router = APIRouter()


@router.post("/preview", response_model=ShippingPreviewResponse)
def preview_shipping_fee(
    data: ShippingPreviewRequest,
    session: Session = Depends(get_session),
):
    fee = compute_fee_with_threshold(session, data.items_subtotal, data.state_id, data.district_id)
    return ShippingPreviewResponse(fee=fee, free=fee == 0)


@router.get("/quote", response_model=ShippingQuoteResponse)
def shipping_quote(
    items_subtotal: Decimal = Query(Decimal("0"), ge=0, alias="itemsSubtotal"),
    state_id: Optional[int] = Query(None, alias="stateId"),
    district_id: Optional[int] = Query(None, alias="districtId"),
    session: Session = Depends(get_session),
):
    fee = compute_fee_with_threshold(session, items_subtotal, state_id, district_id)
    return ShippingQuoteResponse(
        fee=fee,
        free=fee == 0,
        items_subtotal=items_subtotal,
        state_id=state_id,
        district_id=district_id,
    )
