import os

# Настройки должны быть заданы до импорта приложения
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["GUEST_CART_CLEANUP_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from storefront.database import Base, SessionLocal, engine
from storefront.main import app
from storefront.models import Product
from storefront.services.auth import create_access_token

from fakes import InMemoryCartRepository, InMemoryProductLookup


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def make_product(db):
    def _make(name="Premium Laptop Pro", price="10.00", stock=10, category="Laptops",
              featured=False, active=True, description=None):
        product = Product(
            name=name,
            description=description,
            price=Decimal(price),
            category=category,
            stock=stock,
            featured=featured,
            active=active,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


def bearer(user_id: str, role: str = "USER") -> dict:
    token = create_access_token(user_id, email=f"{user_id}@example.com", role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return bearer


@pytest.fixture
def user_headers():
    return bearer("user-1")


@pytest.fixture
def admin_headers():
    return bearer("admin-1", role="ADMIN")


@pytest.fixture
def products():
    return InMemoryProductLookup()


@pytest.fixture
def carts():
    return InMemoryCartRepository()


@pytest.fixture
def events():
    return AsyncMock()
