"""
Pytest fixtures for HirePay backend tests.

Provides test database setup, a business with two shops, staff at every
authority level, customers, stocked products and a purchase factory.
"""

from datetime import datetime, timedelta

import pytest
from hirepay import create_app
from hirepay.extensions import db
from hirepay.models import (
    Business, Shop, User, BusinessMember, ShopMember,
    Customer, Product, ShopProduct, Purchase, PurchaseItem,
)
from hirepay.models.auth import ROLE_SHOP_ADMIN, ROLE_SALES_STAFF
from hirepay.services.auth_service import hash_password
from hirepay.services.authority_service import require_shop_authority
from hirepay.services.session_service import create_session


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# TENANCY
# =============================================================================

@pytest.fixture(scope='function')
def business(db_session):
    business = Business(name="Acme Retail", slug="acme", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def shop(db_session, business):
    shop = Shop(business_id=business.id, name="Accra Central", slug="accra")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def other_shop(db_session):
    """Shop in a different business."""
    other = Business(name="Beta Stores", slug="beta", is_active=True)
    db_session.add(other)
    db_session.commit()
    shop = Shop(business_id=other.id, name="Tema", slug="tema")
    db_session.add(shop)
    db_session.commit()
    return shop


# =============================================================================
# USERS
# =============================================================================

def _make_user(db_session, password_hash, email, name, **kwargs):
    user = User(email=email, name=name, password_hash=password_hash, **kwargs)
    db_session.add(user)
    db_session.commit()
    return user


def _make_member(db_session, shop, user, role, can_load_wallet=False):
    member = ShopMember(shop_id=shop.id, user_id=user.id, role=role, can_load_wallet=can_load_wallet)
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture(scope='function')
def shop_admin(db_session, shop, password_hash):
    user = _make_user(db_session, password_hash, "admin@accra.test", "Abena Admin")
    _make_member(db_session, shop, user, ROLE_SHOP_ADMIN, can_load_wallet=True)
    return user


@pytest.fixture(scope='function')
def wallet_staff(db_session, shop, password_hash):
    """Sales staff allowed to load wallets."""
    user = _make_user(db_session, password_hash, "kofi@accra.test", "Kofi Sales")
    _make_member(db_session, shop, user, ROLE_SALES_STAFF, can_load_wallet=True)
    return user


@pytest.fixture(scope='function')
def plain_staff(db_session, shop, password_hash):
    """Sales staff without wallet permission."""
    user = _make_user(db_session, password_hash, "esi@accra.test", "Esi Sales")
    _make_member(db_session, shop, user, ROLE_SALES_STAFF, can_load_wallet=False)
    return user


@pytest.fixture(scope='function')
def business_admin(db_session, business, password_hash):
    user = _make_user(db_session, password_hash, "owner@acme.test", "Owner")
    db_session.add(BusinessMember(business_id=business.id, user_id=user.id))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def super_admin(db_session, password_hash):
    return _make_user(db_session, password_hash, "root@hirepay.test", "Root", is_super_admin=True)


@pytest.fixture(scope='function')
def authority_for(db_session):
    """Resolve a user's authority over a shop: authority_for(user, shop)."""
    def _resolve(user, shop):
        return require_shop_authority(shop.slug, user)
    return _resolve


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Bearer headers for a user: auth_headers(user)."""
    def _headers(user):
        _, token = create_session(user.id)
        return {"Authorization": f"Bearer {token}"}
    return _headers


# =============================================================================
# CUSTOMERS, CATALOG, PURCHASES
# =============================================================================

@pytest.fixture(scope='function')
def customer(db_session, shop):
    customer = Customer(
        shop_id=shop.id,
        first_name="Ama",
        last_name="Mensah",
        phone="+233200000001",
        address="12 Ring Road",
        city="Accra",
        region="Greater Accra",
        wallet_balance_cents=0,
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product(db_session, business, shop):
    """Television stocked 10 units in the shop."""
    product = Product(business_id=business.id, sku="TV-32", name="32in Television", price_cents=10000)
    db_session.add(product)
    db_session.commit()
    db_session.add(ShopProduct(shop_id=shop.id, product_id=product.id, stock_quantity=10))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def make_purchase(db_session):
    """
    Insert a purchase directly, bypassing the service.

    make_purchase(customer, total_cents, paid_cents=0, due_in_days=30,
                  purchase_type="CREDIT", product=None, quantity=1,
                  created_at=None, number=None)
    """
    counter = {"n": 0}

    def _make(
        customer,
        total_cents,
        paid_cents=0,
        due_in_days=30,
        purchase_type="CREDIT",
        product=None,
        quantity=1,
        created_at=None,
        number=None,
    ):
        counter["n"] += 1
        outstanding = max(0, total_cents - paid_cents)
        if outstanding == 0:
            status = "COMPLETED"
        elif paid_cents > 0:
            status = "ACTIVE"
        else:
            status = "PENDING"
        base = datetime(2026, 1, 1, 12, 0, 0)
        purchase = Purchase(
            shop_id=customer.shop_id,
            customer_id=customer.id,
            purchase_number=number or f"P-TEST-{counter['n']:04d}",
            total_amount_cents=total_cents,
            amount_paid_cents=paid_cents,
            outstanding_balance_cents=outstanding,
            status=status,
            purchase_type=purchase_type,
            due_date=None if due_in_days is None else base + timedelta(days=due_in_days),
            created_at=created_at or base + timedelta(minutes=counter["n"]),
        )
        db_session.add(purchase)
        db_session.flush()
        db_session.add(PurchaseItem(
            purchase_id=purchase.id,
            product_id=product.id if product else None,
            product_name=product.name if product else "Item",
            quantity=quantity,
            unit_price_cents=total_cents // quantity,
            line_total_cents=total_cents,
        ))
        db_session.commit()
        return purchase

    return _make
