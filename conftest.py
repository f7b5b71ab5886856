# conftest.py
import os

# settings are read at import time
os.environ.setdefault("APP_SECRET", "test-secret")
os.environ["DB_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import poscore.models  # noqa: F401
from poscore.db import Base, SessionLocal, engine
from poscore.models.core import ItemModifierGroup, MenuItem, Modifier, ModifierGroup
from poscore.models.enums import PaymentRestriction
from poscore.schemas.catalog import Extra, Item, Option, OptionGroup, Removable
from poscore.services.catalog import MemoryCatalog
from poscore.util.security import create_token


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client():
    from poscore.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    tok = create_token("cashier-1")
    return {"Authorization": f"Bearer {tok}"}


@pytest.fixture
def manager_headers():
    tok = create_token("manager-1", perms=["PAYMENT_EDIT", "SHIFT_CLOSE", "MANAGER_APPROVE"])
    return {"Authorization": f"Bearer {tok}"}


@pytest.fixture
def rng_suffix():
    import random, string
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=6))


# ── catalog ─────────────────────────────────────────────────────────────────
# burger: 1000, required Bread (A/B, radio), Bacon extra +200, "Tomato" removable
# fries:  required Sauces (up to 2, Cheddar +150)
# soda:   500, no modifiers
# promo:  800, cash only

@pytest.fixture
def burger():
    return Item(id="burger", name="Burger", base_price=Decimal("1000"), has_modifiers=True)


@pytest.fixture
def burger_groups():
    return [
        OptionGroup(id="bread", name="Bread", required=True, max_selections=1,
                    options=[Option(id="a", name="A"), Option(id="b", name="B")]),
        Extra(id="bacon", name="Bacon", surcharge=Decimal("200")),
        Removable(id="tomato", name="Tomato"),
    ]


@pytest.fixture
def fries_groups():
    return [
        OptionGroup(id="sauces", name="Sauces", required=True, max_selections=2,
                    options=[Option(id="ketchup", name="Ketchup"), Option(id="mayo", name="Mayo"),
                             Option(id="cheddar", name="Cheddar", price_delta=Decimal("150"))]),
    ]


@pytest.fixture
def catalog(burger, burger_groups, fries_groups):
    c = MemoryCatalog()
    c.add(burger, burger_groups)
    c.add(Item(id="fries", name="Fries", base_price=Decimal("700")), fries_groups)
    c.add(Item(id="soda", name="Soda", base_price=Decimal("500")))
    c.add(Item(id="promo", name="Promo combo", base_price=Decimal("800"),
               payment_restriction=PaymentRestriction.CASH_ONLY))
    return c


@pytest.fixture
def menu(db):
    """Same burger/soda menu, stored in the database."""
    burger = MenuItem(id="burger", name="Burger", base_price=Decimal("1000"))
    soda = MenuItem(id="soda", name="Soda", base_price=Decimal("500"))
    bread = ModifierGroup(id="bread", name="Bread", kind="OPTION_GROUP", required=True, max_sel=1)
    bacon = ModifierGroup(id="bacon", name="Bacon", kind="EXTRA", surcharge=Decimal("200"))
    tomato = ModifierGroup(id="tomato", name="Tomato", kind="REMOVABLE")
    db.add_all([burger, soda, bread, bacon, tomato])
    db.add_all([
        Modifier(id="a", group_id="bread", name="A", position=0),
        Modifier(id="b", group_id="bread", name="B", position=1),
        ItemModifierGroup(item_id="burger", group_id="bread", position=0),
        ItemModifierGroup(item_id="burger", group_id="bacon", position=1),
        ItemModifierGroup(item_id="burger", group_id="tomato", position=2),
    ])
    db.commit()
    return {"burger": "burger", "soda": "soda"}
