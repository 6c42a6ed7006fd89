import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from storefront.constants.order_status import OrderStatus, PaymentStatus, can_transition
from storefront.models.order import Order
from storefront.models.payment import Payment
from storefront.notifications import OrderEvent, dispatch_order_event
from storefront.schemas.payment_schemas import PaymentVerifyRequest
from storefront.services.coupon_service import record_redemption
from storefront.services.razorpay_gateway import RazorpayGateway

logger = logging.getLogger(__name__)


class PaymentVerificationError(Exception):
    status_code = 400
    reason = "VERIFICATION_FAILED"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_detail(self) -> dict:
        return {"reason": self.reason, "message": self.message}


class SignatureInvalid(PaymentVerificationError):
    reason = "SIGNATURE_INVALID"


class OrderNotFound(PaymentVerificationError):
    status_code = 404
    reason = "ORDER_NOT_FOUND"


class OrderNotPayable(PaymentVerificationError):
    status_code = 409
    reason = "ORDER_NOT_PAYABLE"


def finalize_payment(
    *,
    session: Session,
    order: Order,
    txn_id: str,
    gateway_order_id: Optional[str] = None,
    gateway_signature: Optional[str] = None,
    created_by: str = "customer",
) -> Payment:
    """
    Single source of truth for completing payments.

    Safe to call repeatedly with the same txn_id: the first call records the
    payment and marks the order PAID, later calls return the stored payment.
    """
    existing_payment = session.exec(
        select(Payment).where(Payment.txn_id == txn_id)
    ).first()
    if existing_payment:
        logger.info(f"Payment {txn_id} already recorded for order {existing_payment.order_id}")
        return existing_payment

    if order.status == OrderStatus.PAID:
        # a different capture already settled this order
        existing_order_payment = session.exec(
            select(Payment).where(Payment.order_id == order.id)
        ).first()
        if existing_order_payment:
            return existing_order_payment

    if order.status != OrderStatus.PAID and not can_transition(order.status, OrderStatus.PAID):
        raise OrderNotPayable(f"Order {order.public_code} is {order.status.value} and cannot be paid")

    now = datetime.utcnow()
    payment = Payment(
        order_id=order.id,
        customer_id=order.customer_id,
        txn_id=txn_id,
        gateway_order_id=gateway_order_id,
        gateway_signature=gateway_signature,
        amount=order.grand_total,
        currency=order.currency,
        status=PaymentStatus.CAPTURED,
        method="razorpay",
        created_by=created_by,
        created_at=now,
    )
    session.add(payment)

    order.status = OrderStatus.PAID
    order.paid_at = now
    order.updated_at = now
    session.add(order)

    record_redemption(session, order)

    dispatch_order_event(
        event=OrderEvent.PAYMENT_SUCCESS,
        order=order,
        session=session,
        created_by=created_by,
        extra={"txnId": txn_id, "amount": str(order.grand_total)},
    )

    session.commit()
    session.refresh(payment)
    return payment


def _find_order(session: Session, customer_id: int, data: PaymentVerifyRequest) -> Order:
    order = session.exec(
        select(Order).where(Order.gateway_order_id == data.gateway_order_id)
    ).first()

    if not order or order.customer_id != customer_id:
        raise OrderNotFound("Order not found")

    if data.order_id is not None and data.order_id != order.id:
        raise PaymentVerificationError("Razorpay order mismatch")
    return order


def verify_and_finalize(
    *,
    session: Session,
    gateway: RazorpayGateway,
    customer_id: int,
    data: PaymentVerifyRequest,
) -> dict:
    """Check the gateway signature and settle the order it belongs to."""
    order = _find_order(session, customer_id, data)

    if not gateway.verify_signature(data.gateway_order_id, data.gateway_payment_id, data.signature):
        raise SignatureInvalid("Payment verification failed")

    if data.amount is not None and data.amount != order.grand_total:
        # the stored total is what was charged
        logger.warning(
            f"Client reported amount {data.amount} for order {order.public_code}, stored {order.grand_total}"
        )

    payment = finalize_payment(
        session=session,
        order=order,
        txn_id=data.gateway_payment_id,
        gateway_order_id=data.gateway_order_id,
        gateway_signature=data.signature,
    )
    session.refresh(order)

    logger.info(f"Payment verified: order={order.public_code} txn={payment.txn_id}")
    return {
        "order_id": order.id,
        "public_code": order.public_code,
        "status": order.status.value,
        "payment_id": payment.id,
        "txn_id": payment.txn_id,
        "grand_total": order.grand_total,
        "paid_at": order.paid_at,
    }
