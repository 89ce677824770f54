from sqlalchemy import inspect, select
from sqlalchemy.pool import StaticPool

from backend import init_db, seed
from backend.db import make_engine, make_session_factory
from backend.models import Product


def test_init_and_seed(monkeypatch):
    engine = make_engine("sqlite://", poolclass=StaticPool)
    factory = make_session_factory(engine)
    monkeypatch.setattr(init_db, "engine", engine)
    monkeypatch.setattr(seed, "SessionLocal", factory)

    init_db.init()
    assert {"products", "orders", "items"} <= set(inspect(engine).get_table_names())

    seed.seed()
    seed.seed()  # 이미 있으면 건너뜀
    with factory() as s:
        products = s.scalars(select(Product)).all()
    assert len(products) == len(seed.PRODUCTS)
    assert {p.category for p in products} == {"Drink", "Add-on", "Side", "Supply"}
    assert [p.stock for p in products if p.category == "Supply"] == [None]
