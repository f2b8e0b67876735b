import pytest
from datetime import date, timedelta
from decimal import Decimal
import uuid

from config import TestingConfig
from stockpos import create_app
from stockpos import database
from stockpos.database import get_session, create_schema
from stockpos.models import Tenant, Product, ProductCategory


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application instance over a fresh SQLite file."""

    class _TestConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'stockpos_test.db'}"

    app = create_app(_TestConfig)
    ctx = app.app_context()
    ctx.push()
    create_schema()

    yield app

    get_session().remove()
    ctx.pop()
    database.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Thread-local database session (scoped_session registry)."""
    session = get_session()
    yield session
    session.rollback()


def _make_tenant(session, label: str) -> Tenant:
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(
        slug=f'test-tenant-{label}-{suffix}',
        name=f'Almacén {label} {suffix}',
        owner_name=f'Dueño {label}',
        email=f'store-{label}-{suffix}@test.com',
        active=True
    )
    tenant.set_password('password123')
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant1(session):
    """Create first test tenant."""
    return _make_tenant(session, '1')


@pytest.fixture(scope='function')
def tenant2(session):
    """Create second test tenant for isolation tests."""
    return _make_tenant(session, '2')


@pytest.fixture
def make_product(session):
    """Factory: create a product for a tenant."""
    counter = {'n': 0}

    def _make(tenant, name='Producto', price='10.00', stock=5, min_stock=2, **kwargs):
        counter['n'] += 1
        product = Product(
            tenant_id=tenant.id,
            barcode=kwargs.pop('barcode', f'779{counter["n"]:010d}'),
            name=name,
            price=Decimal(price),
            stock=stock,
            min_stock=min_stock,
            category=kwargs.pop('category', ProductCategory.ALMACEN),
            active=kwargs.pop('active', True),
            **kwargs
        )
        session.add(product)
        session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product_tenant1(tenant1, make_product):
    """Product P of the reference scenario: stock 5, price 10.00."""
    return make_product(tenant1, name='Yerba Mate 1kg', price='10.00', stock=5)


@pytest.fixture(scope='function')
def product2_tenant1(tenant1, make_product):
    return make_product(tenant1, name='Galletitas', price='2.50', stock=20)


@pytest.fixture(scope='function')
def product_tenant2(tenant2, make_product):
    return make_product(tenant2, name='Producto Tenant 2', price='7.00', stock=10)


@pytest.fixture(scope='function')
def expiring_products(tenant1, make_product):
    """One expired, one near expiration, one far from expiring."""
    today = date.today()
    return {
        'expired': make_product(tenant1, name='Leche vencida', expiration_date=today - timedelta(days=1)),
        'near': make_product(tenant1, name='Yogur', expiration_date=today + timedelta(days=5)),
        'far': make_product(tenant1, name='Fideos', expiration_date=today + timedelta(days=90)),
    }


@pytest.fixture(scope='function')
def authenticated_client(client, tenant1):
    """Test client logged in as tenant1."""
    tenant_id = tenant1.id
    with client.session_transaction() as sess:
        sess['tenant_id'] = tenant_id
    return client
