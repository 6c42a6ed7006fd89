from enum import Enum


class OrderEvent(str, Enum):
    ORDER_PLACED = "order_placed"
    MANUAL_QUOTE_REQUESTED = "manual_quote_requested"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    ORDER_EXPIRED = "expired"


EVENT_LABELS = {
    OrderEvent.ORDER_PLACED: "Order placed, awaiting payment",
    OrderEvent.MANUAL_QUOTE_REQUESTED: "International order sent for manual quote",
    OrderEvent.PAYMENT_SUCCESS: "Payment received",
    OrderEvent.PAYMENT_FAILED: "Payment could not be started",
    OrderEvent.ORDER_EXPIRED: "Pending order expired",
}
