"""
Pytest fixtures for catalog backend tests.

Provides test database setup, catalog fixtures, and test client.
"""

import pytest

from mercantile import create_app
from mercantile.extensions import db
from mercantile.services import attribute_service, products_service, store_service, unit_service


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


@pytest.fixture(scope='function')
def store(db_session):
    return store_service.create_store("Main Store", "MAIN")


@pytest.fixture(scope='function')
def piece(db_session):
    return unit_service.create_unit("Piece")


@pytest.fixture(scope='function')
def box(db_session):
    return unit_service.create_unit("Box")


@pytest.fixture(scope='function')
def color(db_session):
    return attribute_service.create_attribute("Color", ["Red", "Blue"])


@pytest.fixture(scope='function')
def size(db_session):
    return attribute_service.create_attribute("Size", ["S", "M", "L"])


@pytest.fixture(scope='function')
def standard_product(db_session, store, piece, box):
    """Standard item sold by the piece or by the box of 12, 10 pieces on hand."""
    return products_service.create_product({
        "name": "Notebook A5",
        "sku": "NB-A5",
        "item_type": "Standard",
        "base_unit_id": piece.id,
        "store_id": store.id,
        "cost_price": "2.50",
        "retail_price": "4.00",
        "unit_configs": [
            {"unit_id": piece.id, "conversion_factor": 1, "is_sales_unit": True},
            {"unit_id": box.id, "conversion_factor": 12, "is_purchase_unit": True},
        ],
        "stock_quantity": "10",
    })


@pytest.fixture(scope='function')
def variable_product(db_session, store, piece, color, size):
    """T-shirt in Red/Blue x S/M with 3 units of Red/S on hand."""
    return products_service.create_product({
        "name": "T Shirt",
        "sku": "TSHIRT",
        "item_type": "Variable",
        "base_unit_id": piece.id,
        "store_id": store.id,
        "retail_price": "20.00",
        "unit_configs": [{"unit_id": piece.id, "conversion_factor": 1}],
        "attributes_config": [
            {"attribute_id": color.id, "values": ["Red", "Blue"]},
            {"attribute_id": size.id, "values": ["S", "M"]},
        ],
        "variations": [
            {"sku": "TSHIRT-RED-S", "attribute_combination": {"Color": "Red", "Size": "S"}, "stock_quantity": 3},
            {"sku": "TSHIRT-RED-M", "attribute_combination": {"Color": "Red", "Size": "M"}},
            {"sku": "TSHIRT-BLUE-S", "attribute_combination": {"Color": "Blue", "Size": "S"}},
            {"sku": "TSHIRT-BLUE-M", "attribute_combination": {"Color": "Blue", "Size": "M"}},
        ],
    })
