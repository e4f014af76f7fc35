"""
Picking plan for a requested base-unit quantity.

Greedy, largest packaging first: it keeps the number of distinct package
types touched low but is not guaranteed to fulfil every request that some
other combination could fulfil.
"""
import logging
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from wms.exceptions import ValidationViolation, ViolationKind
from wms.services.stock_service import get_breakdown
from wms.utils.quantities import to_decimal

logger = logging.getLogger(__name__)


def optimize_picking(product_id: int, requested_base_units: Any, session: Session) -> Dict[str, Any]:
    """
    Build a picking plan from the per-packaging stock breakdown.

    Returns:
        Dict with picking_plan (list of packaging_type_id, name, packages,
        base_units), remaining, total_planned and can_fulfill
    """
    requested = to_decimal(requested_base_units, field='requested_base_units')
    if requested < 0:
        raise ValidationViolation(
            ViolationKind.INVALID_QUANTITY,
            'La cantidad solicitada no puede ser negativa',
            payload={'requested_base_units': str(requested)}
        )

    remaining = requested
    plan = []

    levels = sorted(get_breakdown(product_id, session), key=lambda row: row['base_unit_quantity'], reverse=True)
    for row in levels:
        if remaining == 0:
            break
        qty = row['base_unit_quantity']
        take = min(row['available_packages'], int(remaining // qty))
        if take > 0:
            base_units = qty * take
            plan.append({
                'packaging_type_id': row['packaging_type_id'],
                'name': row['name'],
                'packages': take,
                'base_units': base_units,
            })
            remaining -= base_units

    total_planned = sum((line['base_units'] for line in plan), Decimal('0'))
    can_fulfill = remaining == 0
    if not can_fulfill:
        logger.info(f"Picking for product {product_id}: {remaining} of {requested} base units uncovered")

    return {
        'product_id': product_id,
        'requested_base_units': requested,
        'picking_plan': plan,
        'remaining': remaining,
        'total_planned': total_planned,
        'can_fulfill': can_fulfill,
    }
