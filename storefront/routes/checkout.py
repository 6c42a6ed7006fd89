from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlmodel import Session

from storefront.database import get_session
from storefront.schemas.checkout_schemas import CheckoutRequest
from storefront.services.checkout_service import CheckoutRejected, TotalsMismatch, start_checkout
from storefront.services.coupon_service import CouponRejected
from storefront.services.razorpay_gateway import GatewayError, RazorpayGateway, get_payment_gateway
from storefront.utils.token import get_current_customer_id

router = APIRouter()


@router.post("")
def create_checkout(
    data: CheckoutRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    session: Session = Depends(get_session),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    customer_id: int = Depends(get_current_customer_id),
):
    """
    Create the pending order for this checkout attempt.

    Replays with the same Idempotency-Key return the first response.
    """
    try:
        return start_checkout(
            session=session,
            gateway=gateway,
            customer_id=customer_id,
            data=data,
            idempotency_key=(idempotency_key or "").strip() or None,
        )
    except TotalsMismatch as e:
        raise HTTPException(status_code=409, detail=e.as_detail())
    except CheckoutRejected as e:
        status_code = 409 if e.reason == "DUPLICATE_ATTEMPT" else 400
        raise HTTPException(status_code=status_code, detail=e.as_detail())
    except CouponRejected as e:
        raise HTTPException(status_code=400, detail=e.as_detail())
    except GatewayError:
        raise HTTPException(
            status_code=502,
            detail={"reason": "GATEWAY_UNAVAILABLE", "message": "Payment gateway unavailable. Please try again."},
        )
