from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from storefront.database import get_session
from storefront.schemas.coupon_schemas import CouponPreviewRequest, CouponPreviewResponse
from storefront.services.coupon_service import CouponRejected, preview_discount

router = APIRouter()


@router.post("/{code}/preview", response_model=CouponPreviewResponse)
def preview_coupon(
    code: str,
    data: CouponPreviewRequest,
    session: Session = Depends(get_session),
):
    """Validate a coupon against the current order snapshot. Nothing is reserved."""
    try:
        coupon, discount = preview_discount(
            session,
            code=code,
            customer_id=data.customer_id,
            order_total=data.order_total,
            items_count=data.items_count,
        )
    except CouponRejected as e:
        raise HTTPException(status_code=400, detail=e.as_detail())

    return CouponPreviewResponse(
        code=coupon.code,
        discount=discount,
        discount_type=coupon.discount_type.value,
    )
