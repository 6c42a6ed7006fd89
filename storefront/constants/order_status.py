from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: [OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED],
    OrderStatus.PAID: [],
    OrderStatus.FAILED: [],
    OrderStatus.CANCELLED: [],
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(OrderStatus(current), [])
