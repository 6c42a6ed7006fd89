"""
Shared fixtures: a throwaway SQLite database per test, the FastAPI app wired
to it, and a Razorpay gateway that creates orders locally but checks
signatures with the real SDK utility.
"""
import hashlib
import hmac
import os
from decimal import Decimal
from types import SimpleNamespace

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("DOMESTIC_COUNTRY_ID", "1")
os.environ.setdefault("WHATSAPP_NUMBER", "+91 90000 12345")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from storefront import models  # noqa: F401
from storefront.config import settings
from storefront.database import build_engine, get_session
from storefront.main import app as storefront_app
from storefront.models.address import Address
from storefront.models.coupon import Coupon, DiscountType
from storefront.models.delivery_fee_rule import DeliveryFeeRule, RuleScope
from storefront.models.delivery_partner import DeliveryPartner
from storefront.services.razorpay_gateway import GatewayError, RazorpayGateway, get_payment_gateway
from storefront.utils.token import create_access_token

CUSTOMER_ID = 7
DOMESTIC_STATE_ID = 10
INTERNATIONAL_COUNTRY_ID = 2


def sign(gateway_order_id: str, gateway_payment_id: str, secret: str = None) -> str:
    """Checkout signature exactly as Razorpay computes it."""
    key = (secret or settings.RAZORPAY_KEY_SECRET).encode()
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(key, message, hashlib.sha256).hexdigest()


class FakeRazorpayGateway(RazorpayGateway):
    def __init__(self):
        super().__init__(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
        self.orders = []
        self.fail_next = False

    def create_order(self, *, amount_paise, currency, receipt, notes=None):
        if self.fail_next:
            self.fail_next = False
            raise GatewayError("Razorpay is unavailable")

        order = {
            "id": f"order_test{len(self.orders) + 1:06d}",
            "entity": "order",
            "amount": amount_paise,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
            "status": "created",
        }
        self.orders.append(order)
        return order


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'storefront.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    return FakeRazorpayGateway()


@pytest.fixture
def app(engine, gateway):
    def override_session():
        with Session(engine) as session:
            yield session

    storefront_app.dependency_overrides[get_session] = override_session
    storefront_app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield storefront_app
    storefront_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def token():
    return create_access_token({"sub": str(CUSTOMER_ID)})


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seeded(session):
    """Courier, fee rules, the WELCOME10 coupon and one address per destination class."""
    partner = DeliveryPartner(name="BlueDart", code="BLUEDART")
    rules = [
        DeliveryFeeRule(scope=RuleScope.DEFAULT, scope_id=None, fee_amount=Decimal("80.00")),
        DeliveryFeeRule(scope=RuleScope.STATE, scope_id=DOMESTIC_STATE_ID, fee_amount=Decimal("50.00")),
    ]
    coupon = Coupon(
        code="WELCOME10",
        discount_type=DiscountType.PERCENT,
        discount_value=Decimal("10"),
        min_order_total=Decimal("500"),
    )
    domestic = Address(
        customer_id=CUSTOMER_ID,
        name="Asha Rao",
        phone="9876543210",
        line1="12 MG Road",
        line2="Indiranagar",
        country_id=settings.DOMESTIC_COUNTRY_ID,
        state_id=DOMESTIC_STATE_ID,
        district_id=101,
        pincode="560038",
        is_default=True,
    )
    international = Address(
        customer_id=CUSTOMER_ID,
        name="Asha Rao",
        phone="+44 7700 900123",
        line1="221B Baker Street",
        country_id=INTERNATIONAL_COUNTRY_ID,
        pincode="NW1 6XE",
    )

    session.add(partner)
    session.add(coupon)
    session.add(domestic)
    session.add(international)
    for rule in rules:
        session.add(rule)
    session.commit()
    for obj in (partner, coupon, domestic, international):
        session.refresh(obj)

    return SimpleNamespace(
        partner=partner,
        coupon=coupon,
        domestic=domestic,
        international=international,
    )
