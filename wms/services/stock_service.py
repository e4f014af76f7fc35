"""
Stock aggregation per product.

Stock records hold quantities in base units. Totals are computed live on
every call; nothing here is cached.
"""
import logging
from decimal import Decimal
from typing import Dict, Any, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from wms.models import StockRecord
from wms.services.packaging_service import get_packagings_by_product
from wms.utils.quantities import to_decimal

logger = logging.getLogger(__name__)


def get_consolidated(product_id: int, session: Session, lock: bool = False) -> Dict[str, Any]:
    """
    Total base units of a product across all active stock records.

    Args:
        product_id: Product ID
        session: SQLAlchemy session
        lock: Lock the product's stock rows (SELECT ... FOR UPDATE) before
            aggregating, so the caller can decide and write in the same transaction

    Returns:
        Dict with product_id, total_base_units, locations_count, records_count
    """
    active_filter = (
        StockRecord.product_id == product_id,
        StockRecord.is_active.is_(True),
    )

    if lock:
        session.query(StockRecord.id).filter(*active_filter).with_for_update().all()

    total, locations, records = session.query(
        func.coalesce(func.sum(StockRecord.quantity), 0),
        func.count(func.distinct(StockRecord.location)),
        func.count(StockRecord.id)
    ).filter(*active_filter).one()

    return {
        'product_id': product_id,
        'total_base_units': Decimal(str(total)),
        'locations_count': int(locations or 0),
        'records_count': int(records or 0),
    }


def get_breakdown(product_id: int, session: Session) -> List[Dict[str, Any]]:
    """
    Stock per active packaging type, as it was recorded.

    Stock received under one packaging type is never counted as packages of
    another type, even when the numbers would allow it.

    Returns:
        One dict per packaging type (ordered by level) with packaging_type_id,
        name, level, base_unit_quantity, total_base_units, available_packages,
        remaining_base_units
    """
    totals = dict(
        session.query(
            StockRecord.packaging_type_id,
            func.coalesce(func.sum(StockRecord.quantity), 0)
        ).filter(
            StockRecord.product_id == product_id,
            StockRecord.is_active.is_(True)
        ).group_by(StockRecord.packaging_type_id).all()
    )

    breakdown = []
    for packaging in get_packagings_by_product(product_id, session):
        total = Decimal(str(totals.get(packaging.id, 0)))
        qty = to_decimal(packaging.base_unit_quantity)
        breakdown.append({
            'packaging_type_id': packaging.id,
            'name': packaging.name,
            'level': packaging.level,
            'base_unit_quantity': qty,
            'total_base_units': total,
            'available_packages': int(total // qty),
            'remaining_base_units': total % qty,
        })

    return breakdown
