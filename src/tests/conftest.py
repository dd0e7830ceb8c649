"""Pytest configuration and fixtures for service layer tests."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models import Product, RawMaterial, RecipeLine, SalesOrder
from src.models.base import Base
from src.services import locking, production_order_service
from src.utils.config import reset_config


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset configuration, locks and the completion hand-off around every test."""
    reset_config()
    locking.clear_locks()
    production_order_service.set_completion_handoff(None)
    yield
    production_order_service.set_completion_handoff(None)
    reset_config()


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = create_engine("sqlite:///:memory:", echo=False)

    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)

    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def file_db(tmp_path):
    """File-backed SQLite database with one session per call, for threaded tests."""
    import src.services.database as db_module

    engine = db_module.create_database_engine(f"sqlite:///{tmp_path / 'fulfillment.db'}")
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: session_factory

    yield session_factory

    db_module.get_session_factory = original_get_session
    engine.dispose()


# =============================================================================
# Catalog builders
# =============================================================================


def add_raw_material(session, name, stock_unit="kg", minimum_stock="0", standard_cost=None):
    material = RawMaterial(
        name=name,
        stock_unit=stock_unit,
        stock_quantity=Decimal("0"),
        minimum_stock=Decimal(minimum_stock),
        standard_cost=Decimal(standard_cost) if standard_cost is not None else None,
    )
    session.add(material)
    session.flush()
    return material


def add_product(session, name, recipe=(), code=None):
    """Create a product; recipe is a sequence of (material, rate, rate_unit)."""
    product = Product(name=name, code=code, unit_of_measure="m")
    session.add(product)
    session.flush()
    for material, rate, rate_unit in recipe:
        session.add(
            RecipeLine(
                product_id=product.id,
                raw_material_id=material.id,
                consumption_rate=Decimal(rate),
                rate_unit=rate_unit,
            )
        )
    session.flush()
    return product


def add_sales_order(session, number="PV-1001", status="aprovado", pallet_count=None):
    sales_order = SalesOrder(order_number=number, status=status, pallet_count=pallet_count)
    session.add(sales_order)
    session.flush()
    return sales_order


@pytest.fixture
def lot_dates():
    """Distinct, increasing receipt timestamps."""
    base = datetime(2024, 3, 1, 8, 0, 0)
    return [base + timedelta(days=offset) for offset in range(10)]


@pytest.fixture
def catalog(test_db):
    """Two raw materials and a profile product.

    PVC (kg) and Pigment (kg); the product "Perfil U 20mm" uses 500 g of PVC
    and 10 g of pigment per meter.
    """
    session = test_db()
    pvc = add_raw_material(session, "PVC", minimum_stock="20", standard_cost="5.00")
    pigment = add_raw_material(session, "Pigmento Branco", minimum_stock="1")
    product = add_product(
        session,
        "Perfil U 20mm",
        recipe=[(pvc, "500", "g"), (pigment, "10", "g")],
        code="PU20",
    )
    session.commit()
    return {"pvc": pvc, "pigment": pigment, "product": product}


@pytest.fixture
def make_raw_material(test_db):
    """Builder fixture: make_raw_material(name, stock_unit="kg", ...) -> committed RawMaterial."""

    def _make(*args, **kwargs):
        session = test_db()
        material = add_raw_material(session, *args, **kwargs)
        session.commit()
        return material

    return _make


@pytest.fixture
def make_product(test_db):
    """Builder fixture: make_product(name, recipe=[(material, rate, unit)]) -> committed Product."""

    def _make(*args, **kwargs):
        session = test_db()
        product = add_product(session, *args, **kwargs)
        session.commit()
        return product

    return _make


@pytest.fixture
def make_sales_order(test_db):
    """Builder fixture: make_sales_order(number, status, pallet_count) -> committed SalesOrder."""

    def _make(*args, **kwargs):
        session = test_db()
        sales_order = add_sales_order(session, *args, **kwargs)
        session.commit()
        return sales_order

    return _make
