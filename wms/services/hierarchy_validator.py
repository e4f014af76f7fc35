"""
Packaging hierarchy validator.

Checks a candidate packaging type against the product's current hierarchy
before it is persisted. Pure: reads only, never writes.

Convention: the container is the parent. Moving from a node to its parent,
`level` and `base_unit_quantity` strictly increase and every physical
dimension of the child must fit inside the parent.

Checks run in order and stop at the first violation:
    0. field sanity (quantity > 0, level > 0, base unit quantity == 1)
    a. exactly one base unit per product
    b. parent exists, is active and belongs to the same product; an
       unchanged reference to a soft-deleted parent is kept and the node
       is checked as a root
    c. no cycles in the parent chain
    d. level ordering
    e. base-unit quantity ordering
    f. dimensional containment
    g. barcode unique among active packaging types
"""
import logging
from decimal import Decimal
from typing import Optional, List

from sqlalchemy.orm import Session

from wms.models import PackagingType
from wms.exceptions import ValidationViolation, ConflictViolation, ViolationKind
from wms.utils.quantities import parse_dimensions

logger = logging.getLogger(__name__)


def validate_packaging(candidate: dict, session: Session, existing_id: Optional[int] = None) -> None:
    """
    Validate a packaging type before insert or update.

    Args:
        candidate: Normalized packaging data (product_id, name, barcode,
            base_unit_quantity: Decimal, is_base_unit, level,
            parent_packaging_id, dimensions: dict of Decimal)
        session: SQLAlchemy session
        existing_id: ID of the packaging being updated (None on create)

    Raises:
        ValidationViolation: on the first rule broken (see module docstring)
    """
    siblings = _active_types(session, candidate['product_id'])

    _check_fields(candidate)
    _check_base_unit(candidate, siblings, existing_id)
    parent = _check_parent(candidate, session, existing_id)
    if parent is not None:
        _check_cycle(parent, siblings, existing_id)

    children = []
    if existing_id is not None:
        children = [p for p in siblings if p.parent_packaging_id == existing_id and p.id != existing_id]

    _check_levels(candidate, parent, children)
    _check_quantities(candidate, parent, children)
    _check_dimensions(candidate, parent, children)
    _check_barcode(candidate, session, existing_id)


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _active_types(session: Session, product_id: int) -> List[PackagingType]:
    return session.query(PackagingType).filter(
        PackagingType.product_id == product_id,
        PackagingType.is_active.is_(True)
    ).all()


def _check_fields(candidate: dict) -> None:
    qty = candidate['base_unit_quantity']
    if qty <= 0:
        raise ValidationViolation(
            ViolationKind.QUANTITY_INCONSISTENT,
            'La cantidad de unidades base debe ser mayor a 0',
            payload={'base_unit_quantity': str(qty)}
        )
    if candidate['level'] <= 0:
        raise ValidationViolation(
            ViolationKind.LEVEL_INCONSISTENT,
            'El nivel del embalaje debe ser mayor a 0',
            payload={'level': candidate['level']}
        )
    if candidate['is_base_unit'] and qty != Decimal('1'):
        raise ValidationViolation(
            ViolationKind.QUANTITY_INCONSISTENT,
            'La unidad base debe equivaler a exactamente 1 unidad',
            payload={'base_unit_quantity': str(qty)}
        )


def _check_base_unit(candidate: dict, siblings: List[PackagingType], existing_id: Optional[int]) -> None:
    other_base_units = [p for p in siblings if p.is_base_unit and p.id != existing_id]

    if candidate['is_base_unit'] and other_base_units:
        raise ConflictViolation(
            ViolationKind.DUPLICATE_BASE_UNIT,
            'Ya existe una unidad base para este producto',
            payload={'product_id': candidate['product_id'], 'base_packaging_id': other_base_units[0].id}
        )

    if not candidate['is_base_unit'] and not other_base_units:
        # First type of a product, or an update clearing the flag of the current base unit
        raise ValidationViolation(
            ViolationKind.MISSING_BASE_UNIT,
            'El producto debe tener una unidad base antes de definir otros embalajes',
            payload={'product_id': candidate['product_id']}
        )


def _check_parent(candidate: dict, session: Session, existing_id: Optional[int]) -> Optional[PackagingType]:
    parent_id = candidate.get('parent_packaging_id')
    if parent_id is None:
        return None

    if existing_id is not None and parent_id == existing_id:
        raise ValidationViolation(
            ViolationKind.CIRCULAR_REFERENCE,
            'Un embalaje no puede contenerse a sí mismo',
            payload={'packaging_id': existing_id}
        )

    parent = session.get(PackagingType, parent_id)
    if parent is not None and not parent.is_active and _is_stored_parent(session, existing_id, parent_id):
        # Unchanged weak reference to a soft-deleted container: checked as a root
        return None

    if parent is None or not parent.is_active or parent.product_id != candidate['product_id']:
        raise ValidationViolation(
            ViolationKind.PARENT_NOT_FOUND,
            f'Embalaje padre {parent_id} no encontrado para este producto',
            payload={'parent_packaging_id': parent_id, 'product_id': candidate['product_id']}
        )
    return parent


def _is_stored_parent(session: Session, existing_id: Optional[int], parent_id: int) -> bool:
    if existing_id is None:
        return False
    existing = session.get(PackagingType, existing_id)
    return existing is not None and existing.parent_packaging_id == parent_id


def _check_cycle(parent: PackagingType, siblings: List[PackagingType], existing_id: Optional[int]) -> None:
    """Walk parent pointers upward from the proposed parent, bounded by the node count."""
    by_id = {p.id: p for p in siblings}
    max_steps = len(by_id) + 1
    visited = set()

    node_id = parent.id
    while node_id is not None:
        if node_id == existing_id or node_id in visited or len(visited) > max_steps:
            raise ValidationViolation(
                ViolationKind.CIRCULAR_REFERENCE,
                'La jerarquía de embalajes no puede contener ciclos',
                payload={'packaging_id': existing_id, 'parent_packaging_id': parent.id, 'path': sorted(visited)}
            )
        visited.add(node_id)

        node = by_id.get(node_id)
        if node is None:
            # Weak reference to an inactive ancestor ends the chain
            break
        node_id = node.parent_packaging_id


def _check_levels(candidate: dict, parent: Optional[PackagingType], children: List[PackagingType]) -> None:
    level = candidate['level']
    if parent is not None and level >= parent.level:
        raise ValidationViolation(
            ViolationKind.LEVEL_INCONSISTENT,
            f'El nivel ({level}) debe ser menor al del embalaje padre ({parent.level})',
            payload={'level': level, 'parent_level': parent.level}
        )
    for child in children:
        if child.level >= level:
            raise ValidationViolation(
                ViolationKind.LEVEL_INCONSISTENT,
                f'El nivel ({level}) debe ser mayor al del embalaje contenido "{child.name}" ({child.level})',
                payload={'level': level, 'child_packaging_id': child.id, 'child_level': child.level}
            )


def _check_quantities(candidate: dict, parent: Optional[PackagingType], children: List[PackagingType]) -> None:
    qty = candidate['base_unit_quantity']
    if parent is not None and qty >= parent.base_unit_quantity:
        raise ValidationViolation(
            ViolationKind.QUANTITY_INCONSISTENT,
            f'La cantidad ({qty}) debe ser menor a la del embalaje padre ({parent.base_unit_quantity})',
            payload={'base_unit_quantity': str(qty), 'parent_base_unit_quantity': str(parent.base_unit_quantity)}
        )
    for child in children:
        if child.base_unit_quantity >= qty:
            raise ValidationViolation(
                ViolationKind.QUANTITY_INCONSISTENT,
                f'La cantidad ({qty}) debe ser mayor a la del embalaje contenido "{child.name}" ({child.base_unit_quantity})',
                payload={
                    'base_unit_quantity': str(qty),
                    'child_packaging_id': child.id,
                    'child_base_unit_quantity': str(child.base_unit_quantity),
                }
            )


def _overflowing_keys(inner: dict, outer: dict) -> List[str]:
    if not inner or not outer:
        return []
    return [key for key in inner if key in outer and inner[key] > outer[key]]


def _check_dimensions(candidate: dict, parent: Optional[PackagingType], children: List[PackagingType]) -> None:
    dims = candidate.get('dimensions') or {}

    if parent is not None:
        overflow = _overflowing_keys(dims, parse_dimensions(parent.dimensions))
        if overflow:
            raise ValidationViolation(
                ViolationKind.DIMENSION_OVERFLOW,
                f'El embalaje no cabe dentro del embalaje padre ({", ".join(overflow)})',
                payload={'parent_packaging_id': parent.id, 'dimensions': overflow}
            )

    for child in children:
        overflow = _overflowing_keys(parse_dimensions(child.dimensions), dims)
        if overflow:
            raise ValidationViolation(
                ViolationKind.DIMENSION_OVERFLOW,
                f'El embalaje contenido "{child.name}" no cabe en las nuevas dimensiones ({", ".join(overflow)})',
                payload={'child_packaging_id': child.id, 'dimensions': overflow}
            )


def _check_barcode(candidate: dict, session: Session, existing_id: Optional[int]) -> None:
    barcode = candidate.get('barcode')
    if not barcode:
        return

    query = session.query(PackagingType.id).filter(
        PackagingType.barcode == barcode,
        PackagingType.is_active.is_(True)
    )
    if existing_id is not None:
        query = query.filter(PackagingType.id != existing_id)

    clash = query.first()
    if clash:
        raise ConflictViolation(
            ViolationKind.DUPLICATE_BARCODE,
            f'El código de barras "{barcode}" ya existe en otro embalaje',
            payload={'barcode': barcode, 'packaging_id': clash[0]}
        )
