import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.config import settings
from storefront.database import create_db_and_tables
from storefront.routes import (
    addresses,
    checkout,
    coupons,
    health,
    payments,
    shipping,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables()
    logger.info(f"Storefront API started (env={settings.ENV})")
    yield


app = FastAPI(title="Storefront Checkout API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(addresses.router, prefix="/addresses", tags=["Addresses"])
app.include_router(addresses.partners_router, prefix="/partners", tags=["Delivery Partners"])
app.include_router(shipping.router, prefix="/shipping", tags=["Shipping"])
app.include_router(coupons.router, prefix="/coupons", tags=["Coupons"])
app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])


@app.get("/")
def root():
    return {
        "address_endpoints": ["/addresses?customerId="],
        "partner_endpoints": ["/partners/active"],
        "shipping_endpoints": ["/shipping/preview", "/shipping/quote"],
        "coupon_endpoints": ["/coupons/{code}/preview"],
        "checkout_endpoints": ["/checkout"],
        "payment_endpoints": ["/payments/verify"],
    }
