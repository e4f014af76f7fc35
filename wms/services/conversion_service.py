"""
Conversion between packaging types of the same product.

All arithmetic is Decimal and pivots through the base unit:
    base_units = quantity * from.base_unit_quantity
    converted  = base_units / to.base_unit_quantity
Results are never rounded here; `is_exact` tells the caller whether the
target packaging holds the quantity in whole packages.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from wms.models import PackagingType
from wms.exceptions import UnsupportedOperationError, ValidationViolation, ViolationKind
from wms.services.packaging_service import get_packaging, get_base_packaging
from wms.utils.quantities import to_decimal


@dataclass(frozen=True)
class ConversionResult:
    converted_quantity: Decimal
    is_exact: bool
    base_units: Decimal
    from_packaging_id: int
    to_packaging_id: int

    def to_dict(self):
        return {
            'converted_quantity': self.converted_quantity,
            'is_exact': self.is_exact,
            'base_units': self.base_units,
            'from_packaging_id': self.from_packaging_id,
            'to_packaging_id': self.to_packaging_id,
        }


def convert(quantity: Any, from_packaging_id: int, to_packaging_id: int, session: Session) -> ConversionResult:
    """
    Convert a quantity expressed in one packaging type into another.

    Raises:
        NotFoundError: If either packaging type does not exist
        UnsupportedOperationError: If the types belong to different products
        ValidationViolation(InvalidQuantity): If the quantity is negative or not numeric
    """
    qty = _parse_quantity(quantity)
    source = get_packaging(from_packaging_id, session)
    target = get_packaging(to_packaging_id, session)
    _ensure_same_product(source, target)
    return _convert_between(qty, source, target)


def to_base_units(quantity: Any, packaging_id: int, session: Session) -> ConversionResult:
    """Convert packages of a type into base units of its product."""
    qty = _parse_quantity(quantity)
    source = get_packaging(packaging_id, session)
    return _convert_between(qty, source, get_base_packaging(source.product_id, session))


def from_base_units(base_units: Any, packaging_id: int, session: Session) -> ConversionResult:
    """Express a base-unit quantity in packages of a type."""
    qty = _parse_quantity(base_units)
    target = get_packaging(packaging_id, session)
    return _convert_between(qty, get_base_packaging(target.product_id, session), target)


def conversion_factor(from_packaging_id: int, to_packaging_id: int, session: Session) -> Decimal:
    """How many `to` packages one `from` package represents."""
    return convert(Decimal('1'), from_packaging_id, to_packaging_id, session).converted_quantity


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _parse_quantity(quantity: Any) -> Decimal:
    qty = to_decimal(quantity)
    if qty < 0:
        raise ValidationViolation(
            ViolationKind.INVALID_QUANTITY,
            'La cantidad a convertir no puede ser negativa',
            payload={'quantity': str(qty)}
        )
    return qty


def _ensure_same_product(source: PackagingType, target: PackagingType) -> None:
    if source.product_id != target.product_id:
        raise UnsupportedOperationError(
            'CrossProductConversion',
            'No es posible convertir entre embalajes de productos distintos',
            payload={
                'from_packaging_id': source.id,
                'from_product_id': source.product_id,
                'to_packaging_id': target.id,
                'to_product_id': target.product_id,
            }
        )


def _base_units(quantity: Decimal, packaging: PackagingType) -> Decimal:
    return quantity * to_decimal(packaging.base_unit_quantity)


def _convert_between(quantity: Decimal, source: PackagingType, target: PackagingType) -> ConversionResult:
    base_units = _base_units(quantity, source)
    target_qty = to_decimal(target.base_unit_quantity)
    return ConversionResult(
        converted_quantity=base_units / target_qty,
        is_exact=base_units % target_qty == 0,
        base_units=base_units,
        from_packaging_id=source.id,
        to_packaging_id=target.id,
    )
