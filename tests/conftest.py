import pytest

from config import TestConfig
from delivery_notes import create_app
from delivery_notes.database import get_session, create_all, drop_all
from delivery_notes.models import Product
from delivery_notes.services import catalog_service
from delivery_notes.services.note_service import NoteHeader


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application instance on a throwaway SQLite file."""
    db_file = tmp_path_factory.mktemp('data') / 'notes.db'

    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{db_file}'

    return create_app(_Config)


@pytest.fixture(scope='function')
def session(app):
    """Create database session with fresh tables for every test."""
    with app.app_context():
        create_all()
        session = get_session()
        yield session
        session.rollback()
        session.remove()
        drop_all()


@pytest.fixture(scope='function')
def cli_runner(app):
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def warehouse(session):
    return catalog_service.create_warehouse(session, 'Main Warehouse', '12 Dock Road')


@pytest.fixture(scope='function')
def product_p1(session, warehouse):
    """Quantity 50, price 10.00."""
    return catalog_service.create_product(session, warehouse.id, 'P1', 'Widget', '10.00', 50)


@pytest.fixture(scope='function')
def product_p2(session, warehouse):
    """Quantity 100, price 2.50."""
    return catalog_service.create_product(session, warehouse.id, 'P2', 'Gadget', '2.50', 100)


@pytest.fixture(scope='function')
def make_header():
    def _make(code='DN-0001', **overrides):
        fields = {
            'code': code,
            'creator_name': 'Alex Warehouse',
            'customer_name': 'Acme Ltd',
            'customer_address': '1 Market Street',
            'reason': 'Customer order',
        }
        fields.update(overrides)
        return NoteHeader(**fields)
    return _make


@pytest.fixture(scope='function')
def quantity_of(session):
    """Read a product's quantity straight from the database."""
    def _read(product_id):
        session.expire_all()
        return session.get(Product, product_id).quantity
    return _read
