# tests/conftest.py
import os
import tempfile
from datetime import timedelta
from decimal import Decimal

_DB_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ["DB_TYPE"] = "sqlite"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from marketplace.core.db import AsyncSessionLocal, drop_models, engine, init_models  # noqa: E402
from marketplace.core.security import hash_password  # noqa: E402
from marketplace.models.commission_models import CommissionRate  # noqa: E402
from marketplace.models.coupon_models import Coupon  # noqa: E402
from marketplace.models.driver_models import Driver, DriverStatus  # noqa: E402
from marketplace.models.listing_models import Listing  # noqa: E402
from marketplace.models.user_models import User  # noqa: E402
from marketplace.services.auth_services.auth_service import _access_token_for  # noqa: E402
from marketplace.services.order_services.order_state_machine import Actor  # noqa: E402
from marketplace.utils.datetime_utils import utcnow  # noqa: E402

PASSWORD = "secret123"
ADDRESS = {"address_line1": "1 Main St", "city": "Springfield", "province": "IL", "postal_code": "62701"}


@pytest.fixture(autouse=True)
async def fresh_db():
    await drop_models()
    await init_models()
    yield
    await engine.dispose()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


# -----------------------
# Factories
# -----------------------
# Factory rows are detached from the session so a rollback inside a
# service call does not expire them under the test.
async def make_user(db, username, role="buyer", **extra):
    user = User(username=username, password_hash=hash_password(PASSWORD), role=role, is_active=True, **extra)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    db.expunge(user)
    return user


async def make_listing(db, seller, sku="SKU-1", unit_price="100.00", category="electronics",
                       product_id=1, currency="USD", is_active=True):
    listing = Listing(
        seller_id=seller.id,
        product_id=product_id,
        seller_sku=sku,
        name=f"Item {sku}",
        category=category,
        unit_price=Decimal(unit_price),
        currency=currency,
        is_active=is_active,
    )
    db.add(listing)
    await db.commit()
    await db.refresh(listing)
    db.expunge(listing)
    return listing


async def make_driver(db, first_name="Dana", status=DriverStatus.AVAILABLE):
    driver = Driver(first_name=first_name, last_name="Driver", status=status)
    db.add(driver)
    await db.commit()
    await db.refresh(driver)
    db.expunge(driver)
    return driver


async def make_coupon(db, seller, code="SAVE20", discount_value="20", **extra):
    now = utcnow()
    values = dict(
        seller_id=seller.id,
        code=code,
        name="Save 20",
        discount_value=Decimal(discount_value),
        minimum_order_amount=Decimal("0"),
        valid_from=now - timedelta(days=1),
        valid_until=now + timedelta(days=30),
        applicable_products=[],
        usage_count=0,
        is_active=True,
        is_deleted=False,
    )
    values.update(extra)
    coupon = Coupon(**values)
    db.add(coupon)
    await db.commit()
    await db.refresh(coupon)
    db.expunge(coupon)
    return coupon


async def make_rate(db, rate, seller=None, category=None):
    row = CommissionRate(seller_id=seller.id if seller else None, category=category, rate=Decimal(rate))
    db.add(row)
    await db.commit()
    return row


def actor(user) -> Actor:
    return Actor.from_user(user)


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {_access_token_for(user)}"}


# -----------------------
# Common fixtures
# -----------------------
@pytest.fixture
async def admin(db):
    return await make_user(db, "admin", role="admin")


@pytest.fixture
async def seller(db):
    return await make_user(db, "seller", role="seller", business_name="Acme Goods")


@pytest.fixture
async def other_seller(db):
    return await make_user(db, "other_seller", role="seller", business_name="Other Goods")


@pytest.fixture
async def buyer(db):
    return await make_user(db, "buyer", role="buyer")


@pytest.fixture
async def client():
    from main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def place_order(db, buyer, lines, **extra):
    """Checkout ``lines`` of ``(listing, quantity)`` as ``buyer`` with an inline address."""
    from marketplace.schemas.order_schemas import CheckoutItem, CheckoutRequest
    from marketplace.services.order_services.order_service import checkout

    payload = CheckoutRequest(
        items=[CheckoutItem(listing_id=listing.id, quantity=qty) for listing, qty in lines],
        shipping_address=extra.pop("shipping_address", ADDRESS),
        **extra,
    )
    return await checkout(db, payload, actor(buyer))


async def fetch(model, pk):
    """Load a row through a fresh session."""
    async with AsyncSessionLocal() as session:
        return await session.get(model, pk)
