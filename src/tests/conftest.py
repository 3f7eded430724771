"""Pytest configuration and fixtures for service layer tests."""

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

import src.models  # noqa: F401
from src.models.base import Base


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Create in-memory SQLite database for testing
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def business(test_db):
    """Provide a sample business."""
    from src.services import business_service

    return business_service.create_business("Cafe Central")


@pytest.fixture(scope="function")
def supplier(test_db, business):
    """Provide a catalog supplier of the sample business."""
    from src.services import supplier_service

    return supplier_service.create_supplier(business["id"], "Metro Cash & Carry")


@pytest.fixture(scope="function")
def flour(test_db, business, supplier):
    """Flour: 50.00 per 10 kg sack, so 5.00 per kg; contains gluten."""
    from src.services import supplier_good_service

    return supplier_good_service.create_supplier_good(
        business["id"],
        supplier["id"],
        {
            "name": "Flour",
            "main_category": "Food",
            "measurement_unit": "kg",
            "total_quantity_per_unit": Decimal("10"),
            "whole_sale_price": Decimal("50"),
            "allergens": ["gluten"],
        },
    )


@pytest.fixture(scope="function")
def milk(test_db, business, supplier):
    """Milk: 30.00 per 10 l crate, so 3.00 per l; no allergens listed."""
    from src.services import supplier_good_service

    return supplier_good_service.create_supplier_good(
        business["id"],
        supplier["id"],
        {
            "name": "Milk",
            "main_category": "Beverage",
            "measurement_unit": "l",
            "total_quantity_per_unit": Decimal("10"),
            "whole_sale_price": Decimal("30"),
        },
    )


@pytest.fixture(scope="function")
def pancake(test_db, business, flour, milk):
    """Ingredient-based good: 2 kg flour + 1 l milk, cost 13.00."""
    from src.services import business_good_service

    return business_good_service.create_business_good(
        business["id"],
        {
            "name": "Pancake Stack",
            "main_category": "Food",
            "selling_price": Decimal("18"),
            "ingredients": [
                {"supplier_good_id": flour["id"], "required_quantity": Decimal("2"), "measurement_unit": "kg"},
                {"supplier_good_id": milk["id"], "required_quantity": Decimal("1"), "measurement_unit": "l"},
            ],
        },
    )


@pytest.fixture(scope="function")
def stocked(test_db, business, flour, milk):
    """Run one count cycle so flour stands at 4 kg and milk at 6 l.

    Returns the id of a freshly opened inventory seeded from those counts.
    """
    from src.services import inventory_service

    first = inventory_service.open_inventory(business["id"])
    inventory_service.close_inventory(
        first["id"], {flour["id"]: Decimal("4"), milk["id"]: Decimal("6")}
    )
    return inventory_service.open_inventory(business["id"])["id"]


@pytest.fixture(scope="function")
def table(test_db, business):
    """Provide an occupied table."""
    from src.services import table_service

    return table_service.open_table(business["id"], "T1", guests=2, opened_by_user_id=1)
