"""
Flask CLI commands.

Commands:
- flask init-db: Create the database schema
- flask seed-demo: Load a demo product hierarchy, pallets and stock
"""

import click
from decimal import Decimal

from wms.database import Base, get_engine, get_session
from wms.models import Product, Pallet, PalletStatus, StockRecord
from wms.services.packaging_service import create_packaging, update_packaging


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        Base.metadata.create_all(bind=get_engine())
        click.echo(click.style('✅ Esquema creado', fg='green'))

    @app.cli.command('seed-demo')
    @click.option('--sku', default='DEMO-001', show_default=True, help='SKU of the demo product')
    @click.option('--user-id', default=1, show_default=True, type=int, help='Actor recorded as creator')
    def seed_demo(sku, user_id):
        """Load Unit(1) / Box(12) / Pallet(144) with stock and two pallets."""
        db_session = get_session()

        if db_session.query(Product).filter_by(sku=sku).first():
            click.echo(click.style(f'❌ Ya existe un producto con SKU {sku}', fg='red'))
            return

        try:
            product = Product(
                sku=sku,
                name='Producto demo',
                unit='un',
                weight=Decimal('0.5'),
                dimensions={'length': '10', 'width': '10', 'height': '10'},
                active=True
            )
            db_session.add(product)
            db_session.commit()

            unit = create_packaging({
                'product_id': product.id, 'name': 'Unidad', 'base_unit_quantity': 1,
                'is_base_unit': True, 'level': 1, 'barcode': f'{sku}-U',
                'dimensions': {'length': 10, 'width': 10, 'height': 10, 'weight': '0.5'},
            }, db_session, user_id=user_id)
            box = create_packaging({
                'product_id': product.id, 'name': 'Caja', 'base_unit_quantity': 12,
                'level': 2, 'barcode': f'{sku}-C', 'parent_packaging_id': None,
                'dimensions': {'length': 40, 'width': 30, 'height': 20, 'weight': 6},
            }, db_session, user_id=user_id)
            master = create_packaging({
                'product_id': product.id, 'name': 'Pallet completo', 'base_unit_quantity': 144,
                'level': 3, 'barcode': f'{sku}-P',
                'dimensions': {'length': 120, 'width': 100, 'height': 90, 'weight': 72},
            }, db_session, user_id=user_id)

            # Containers can only be linked once every level exists
            update_packaging(unit.id, {'parent_packaging_id': box.id}, db_session)
            update_packaging(box.id, {'parent_packaging_id': master.id}, db_session)

            for packaging, quantity, location in (
                (unit, 50, 'A-01'),
                (box, 120, 'A-02'),
                (master, 288, 'B-01'),
            ):
                db_session.add(StockRecord(
                    product_id=product.id,
                    packaging_type_id=packaging.id,
                    quantity=Decimal(quantity),
                    location=location,
                    is_active=True
                ))

            for code, pallet_type, max_weight in (('PBR-DEMO', 'PBR', 1200), ('EUR-DEMO', 'Europeo', 1500)):
                if not db_session.query(Pallet).filter_by(code=code).first():
                    db_session.add(Pallet(
                        code=code, type=pallet_type, width=100, length=120, height=15,
                        max_weight=Decimal(max_weight), status=PalletStatus.AVAILABLE.value
                    ))

            db_session.commit()

            click.echo(click.style('\n✅ Datos demo cargados', fg='green', bold=True))
            click.echo(f'   Producto: {product.id} ({sku})')
            click.echo(f'   Embalajes: Unidad={unit.id} Caja={box.id} Pallet={master.id}')

        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al cargar datos demo: {str(e)}', fg='red'))
