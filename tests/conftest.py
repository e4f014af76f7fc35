import pytest
import uuid
from decimal import Decimal

from wms import create_app
from wms.database import Base, get_engine, get_session
from wms.models import Product, Pallet, PalletStatus, StockRecord
from wms.services.packaging_service import create_packaging, update_packaging


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no Redis)."""
    app = create_app('config.TestingConfig')
    return app


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client on a fresh schema."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create the schema and yield a database session; drop everything afterwards."""
    engine = get_engine()
    Base.metadata.create_all(bind=engine)

    ctx = app.app_context()
    ctx.push()
    session = get_session()
    yield session

    session.rollback()
    session.remove()
    Base.metadata.drop_all(bind=engine)
    ctx.pop()


@pytest.fixture(scope='function')
def make_product(session):
    """Factory for catalog products."""
    def _make(name='Producto test', weight='0.5', dimensions=None, sku=None):
        product = Product(
            sku=sku or f'SKU-{str(uuid.uuid4())[:8]}',
            name=name,
            unit='un',
            weight=Decimal(weight) if weight is not None else None,
            dimensions=dimensions,
            active=True
        )
        session.add(product)
        session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_packaging(session):
    """Factory that goes through the packaging store (validated writes)."""
    def _make(product, name, base_unit_quantity, level, is_base_unit=False, **extra):
        data = {
            'product_id': product.id,
            'name': name,
            'base_unit_quantity': base_unit_quantity,
            'level': level,
            'is_base_unit': is_base_unit,
        }
        data.update(extra)
        return create_packaging(data, session, user_id=1)
    return _make


@pytest.fixture(scope='function')
def make_pallet(session):
    """Factory for pallets (100x120 cm unless given)."""
    def _make(code=None, max_weight=1000, status=PalletStatus.AVAILABLE.value, width=100, length=120):
        pallet = Pallet(
            code=code or f'PAL-{str(uuid.uuid4())[:8]}',
            type='PBR',
            width=width,
            length=length,
            height=15,
            max_weight=Decimal(str(max_weight)),
            status=status
        )
        session.add(pallet)
        session.commit()
        return pallet
    return _make


@pytest.fixture(scope='function')
def make_stock(session):
    """Factory for stock records (quantity in base units)."""
    def _make(product, packaging, quantity, location='A-01', is_active=True):
        record = StockRecord(
            product_id=product.id,
            packaging_type_id=packaging.id if packaging else None,
            quantity=Decimal(str(quantity)),
            location=location,
            is_active=is_active
        )
        session.add(record)
        session.commit()
        return record
    return _make


@pytest.fixture(scope='function')
def hierarchy(session, make_product, make_packaging):
    """
    Product with Unidad(1) -> Caja(12) -> Pallet(144), linked container = parent.

    Returns a dict with product, unit, box and master.
    """
    product = make_product(name='Agua 500ml', weight='0.5',
                           dimensions={'length': 10, 'width': 10, 'height': 10})
    unit = make_packaging(product, 'Unidad', 1, 1, is_base_unit=True, barcode='779000000001',
                          dimensions={'length': 10, 'width': 10, 'height': 10, 'weight': '0.5'})
    box = make_packaging(product, 'Caja', 12, 2, barcode='779000000012',
                         dimensions={'length': 30, 'width': 40, 'height': 20, 'weight': 6})
    master = make_packaging(product, 'Pallet', 144, 3, barcode='779000000144',
                            dimensions={'length': 120, 'width': 100, 'height': 90, 'weight': 72})

    update_packaging(unit.id, {'parent_packaging_id': box.id}, session)
    update_packaging(box.id, {'parent_packaging_id': master.id}, session)

    return {'product': product, 'unit': unit, 'box': box, 'master': master}


@pytest.fixture(scope='function')
def stocked_hierarchy(hierarchy, make_stock):
    """Hierarchy with 50 / 120 / 288 base units recorded under Unidad / Caja / Pallet."""
    make_stock(hierarchy['product'], hierarchy['unit'], 50, location='A-01')
    make_stock(hierarchy['product'], hierarchy['box'], 120, location='A-02')
    make_stock(hierarchy['product'], hierarchy['master'], 288, location='B-01')
    return hierarchy


@pytest.fixture(scope='function')
def pallets(make_pallet):
    """Two available pallets: small (500 kg) and large (1500 kg)."""
    return {
        'small': make_pallet(code='PBR-S', max_weight=500),
        'large': make_pallet(code='EUR-L', max_weight=1500),
    }
