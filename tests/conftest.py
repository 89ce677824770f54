from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from backend.db import Base, make_engine, make_session_factory
from backend.main import create_app
from backend.models import Product

CATALOG = [
    # product_id, name, category, price, stock
    (1, "Classic Milk Tea", "Drink", "4.50", 50),
    (4, "Wintermelon Tea", "Drink", "4.25", 3),
    (5, "Thai Tea", "Drink", "4.75", 35),
    (10, "Boba (Add-on)", "Add-on", "0.75", 500),
    (12, "Lychee Jelly (Add-on)", "Add-on", "0.75", 300),
    (30, "Seasonal Special", "Drink", "6.00", None),
]


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = make_session_factory(engine)
    with factory() as db:
        for pid, name, category, price, stock in CATALOG:
            db.add(Product(product_id=pid, product_name=name, category=category, price=Decimal(price), stock=stock))
        db.commit()
    return factory


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def stock(session_factory):
    def read(product_id):
        with session_factory() as s:
            return s.get(Product, product_id).stock
    return read


@pytest.fixture
def client(session_factory):
    return TestClient(create_app(session_factory=session_factory, strict_stock=False))


@pytest.fixture
def strict_client(session_factory):
    return TestClient(create_app(session_factory=session_factory, strict_stock=True))
