import logging

from sqlmodel import Session

from storefront.database import engine
from storefront.services.order_expiry_service import expire_pending_orders

logger = logging.getLogger(__name__)


def expire_unpaid_orders():
    with Session(engine) as session:
        expired = expire_pending_orders(session)
    return len(expired)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    expire_unpaid_orders()
