from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from storefront.database import get_session
from storefront.schemas.payment_schemas import PaymentVerifyRequest, PaymentVerifyResponse
from storefront.services.payment_service import PaymentVerificationError, verify_and_finalize
from storefront.services.razorpay_gateway import RazorpayGateway, get_payment_gateway
from storefront.utils.token import get_current_customer_id

router = APIRouter()


@router.post("/verify", response_model=PaymentVerifyResponse)
def verify_payment(
    data: PaymentVerifyRequest,
    session: Session = Depends(get_session),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    customer_id: int = Depends(get_current_customer_id),
):
    """
    Verify the Razorpay checkout result and mark the order paid.
    Repeated calls for the same payment return the same confirmation.
    """
    try:
        return verify_and_finalize(
            session=session,
            gateway=gateway,
            customer_id=customer_id,
            data=data,
        )
    except PaymentVerificationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.as_detail())
