"""
Packaging hierarchy store.

CRUD for per-product packaging types. Every write is validated by
hierarchy_validator before anything is persisted; deletes are soft.
"""
import logging
from typing import Optional, List, Dict, Any

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wms.models import Product, PackagingType, StockRecord
from wms.exceptions import NotFoundError, PackagingInUseError, ValidationViolation, ConflictViolation, ViolationKind
from wms.services.hierarchy_validator import validate_packaging
from wms.services.cache_service import get_cache
from wms.utils.quantities import to_decimal, parse_dimensions, fmt_decimal

logger = logging.getLogger(__name__)

HIERARCHY_CACHE_MODULE = 'packaging'


def get_packaging(packaging_id: int, session: Session) -> PackagingType:
    """Get an active packaging type or raise NotFoundError."""
    packaging = session.get(PackagingType, packaging_id)
    if not packaging or not packaging.is_active:
        raise NotFoundError(f'Embalaje {packaging_id} no encontrado', payload={'packaging_id': packaging_id})
    return packaging


def get_packagings_by_product(product_id: int, session: Session) -> List[PackagingType]:
    """Active packaging types of a product, smallest level first."""
    return session.query(PackagingType).filter(
        PackagingType.product_id == product_id,
        PackagingType.is_active.is_(True)
    ).order_by(PackagingType.level.asc(), PackagingType.id.asc()).all()


def get_packaging_by_barcode(barcode: str, session: Session) -> PackagingType:
    """Find the active packaging type carrying a barcode."""
    packaging = session.query(PackagingType).filter(
        PackagingType.barcode == _normalize_barcode(barcode),
        PackagingType.is_active.is_(True)
    ).first()
    if not packaging:
        raise NotFoundError(
            f'Embalaje no encontrado para el código de barras: {barcode}',
            payload={'barcode': barcode}
        )
    return packaging


def get_base_packaging(product_id: int, session: Session) -> PackagingType:
    """Get the base unit packaging of a product."""
    packaging = session.query(PackagingType).filter(
        PackagingType.product_id == product_id,
        PackagingType.is_base_unit.is_(True),
        PackagingType.is_active.is_(True)
    ).first()
    if not packaging:
        raise NotFoundError(
            f'Unidad base no encontrada para el producto {product_id}',
            payload={'product_id': product_id}
        )
    return packaging


def create_packaging(data: dict, session: Session, user_id: Optional[int] = None) -> PackagingType:
    """
    Create a packaging type for a product.

    Args:
        data: Dict with product_id, name, base_unit_quantity and optionally
            barcode, is_base_unit, level, parent_packaging_id, dimensions
        session: SQLAlchemy session
        user_id: Actor recorded as creator

    Raises:
        NotFoundError: If the product does not exist
        ValidationViolation: If the hierarchy rules are broken
    """
    product_id = data.get('product_id')
    if product_id is None or not session.get(Product, product_id):
        raise NotFoundError(f'Producto {product_id} no encontrado', payload={'product_id': product_id})

    candidate = _build_candidate(data)

    try:
        validate_packaging(candidate, session)

        packaging = PackagingType(
            product_id=candidate['product_id'],
            name=candidate['name'],
            barcode=candidate['barcode'],
            base_unit_quantity=candidate['base_unit_quantity'],
            is_base_unit=candidate['is_base_unit'],
            level=candidate['level'],
            parent_packaging_id=candidate['parent_packaging_id'],
            dimensions=_dump_dimensions(candidate['dimensions']),
            is_active=True,
            created_by=user_id
        )
        session.add(packaging)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        _raise_integrity_conflict(e, candidate)
    except Exception:
        session.rollback()
        raise

    logger.info(f"Packaging created: {packaging.id} '{packaging.name}' for product {product_id}")
    _invalidate_hierarchy_cache(product_id)
    return packaging


def update_packaging(packaging_id: int, data: dict, session: Session) -> PackagingType:
    """
    Update a packaging type. Only the keys present in `data` change;
    the product of a packaging type cannot be changed.
    """
    packaging = get_packaging(packaging_id, session)

    current = {
        'product_id': packaging.product_id,
        'name': packaging.name,
        'barcode': packaging.barcode,
        'base_unit_quantity': packaging.base_unit_quantity,
        'is_base_unit': packaging.is_base_unit,
        'level': packaging.level,
        'parent_packaging_id': packaging.parent_packaging_id,
        'dimensions': packaging.dimensions,
    }
    merged = dict(current)
    merged.update({k: v for k, v in data.items() if k in current and k != 'product_id'})
    candidate = _build_candidate(merged)

    try:
        validate_packaging(candidate, session, existing_id=packaging.id)

        packaging.name = candidate['name']
        packaging.barcode = candidate['barcode']
        packaging.base_unit_quantity = candidate['base_unit_quantity']
        packaging.is_base_unit = candidate['is_base_unit']
        packaging.level = candidate['level']
        packaging.parent_packaging_id = candidate['parent_packaging_id']
        packaging.dimensions = _dump_dimensions(candidate['dimensions'])
        session.commit()
    except IntegrityError as e:
        session.rollback()
        _raise_integrity_conflict(e, candidate)
    except Exception:
        session.rollback()
        raise

    logger.info(f"Packaging updated: {packaging.id} '{packaging.name}'")
    _invalidate_hierarchy_cache(packaging.product_id)
    return packaging


def delete_packaging(packaging_id: int, session: Session) -> None:
    """
    Soft delete a packaging type.

    Raises:
        PackagingInUseError: If active stock was recorded under this packaging
        ValidationViolation(MissingBaseUnit): If it is the base unit and other
            packaging types of the product are still active
    """
    packaging = get_packaging(packaging_id, session)

    records_count = count_stock_references(packaging.id, session)
    if records_count:
        logger.warning(f"Refused to delete packaging {packaging.id}: {records_count} stock records")
        raise PackagingInUseError(packaging.id, records_count)

    if packaging.is_base_unit:
        others = session.query(func.count(PackagingType.id)).filter(
            PackagingType.product_id == packaging.product_id,
            PackagingType.is_active.is_(True),
            PackagingType.id != packaging.id
        ).scalar()
        if others:
            raise ValidationViolation(
                ViolationKind.MISSING_BASE_UNIT,
                'No es posible eliminar la unidad base mientras existan otros embalajes activos',
                payload={'packaging_id': packaging.id, 'active_packagings': others}
            )

    try:
        packaging.is_active = False
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Packaging deleted (soft): {packaging.id}")
    _invalidate_hierarchy_cache(packaging.product_id)


def count_stock_references(packaging_id: int, session: Session) -> int:
    """Number of active stock records recorded under a packaging type."""
    return session.query(func.count(StockRecord.id)).filter(
        StockRecord.packaging_type_id == packaging_id,
        StockRecord.is_active.is_(True)
    ).scalar() or 0


def get_packaging_hierarchy(product_id: int, session: Session) -> List[Dict[str, Any]]:
    """
    Tree of active packaging types for a product.

    Roots are the types without an (active) parent; each node lists the
    packaging types it directly contains under 'children'.
    """
    def loader():
        return _build_hierarchy(get_packagings_by_product(product_id, session))

    cache = _get_cache_or_none()
    if cache is None:
        return loader()

    ttl = current_app.config.get('CACHE_HIERARCHY_TTL') if has_app_context() else None
    return cache.memoize(HIERARCHY_CACHE_MODULE, f'product:{product_id}:hierarchy', loader, ttl)


def packaging_to_dict(packaging: PackagingType) -> Dict[str, Any]:
    """Serialize a packaging type for API responses."""
    return {
        'id': packaging.id,
        'product_id': packaging.product_id,
        'name': packaging.name,
        'barcode': packaging.barcode,
        'base_unit_quantity': packaging.base_unit_quantity,
        'is_base_unit': packaging.is_base_unit,
        'level': packaging.level,
        'parent_packaging_id': packaging.parent_packaging_id,
        'dimensions': packaging.dimensions,
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _normalize_barcode(value: Optional[str]) -> Optional[str]:
    """Normalize barcodes: 'none' or empty -> None."""
    if not value:
        return None
    val_str = str(value).strip()
    if not val_str or val_str.lower() == 'none':
        return None
    return val_str


def _to_level(value: Any) -> int:
    level = to_decimal(1 if value is None else value, field='level')
    if level != level.to_integral_value():
        raise ValidationViolation(
            ViolationKind.LEVEL_INCONSISTENT,
            'El nivel del embalaje debe ser un número entero',
            payload={'level': str(value)}
        )
    return int(level)


def _build_candidate(data: dict) -> dict:
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationViolation(
            ViolationKind.MISSING_FIELD,
            'El nombre del embalaje es requerido',
            payload={'field': 'name'}
        )

    parent_id = data.get('parent_packaging_id')
    return {
        'product_id': data['product_id'],
        'name': name,
        'barcode': _normalize_barcode(data.get('barcode')),
        'base_unit_quantity': to_decimal(data.get('base_unit_quantity'), field='base_unit_quantity'),
        'is_base_unit': bool(data.get('is_base_unit', False)),
        'level': _to_level(data.get('level')),
        'parent_packaging_id': int(parent_id) if parent_id not in (None, '') else None,
        'dimensions': parse_dimensions(data.get('dimensions')),
    }


def _raise_integrity_conflict(error: IntegrityError, candidate: dict) -> None:
    """Translate a unique index violation from a concurrent write into the validator's conflict."""
    error_msg = str(error.orig).lower()
    logger.warning(f"Packaging write rejected by the database: {error_msg}")

    if 'barcode' in error_msg:
        raise ConflictViolation(
            ViolationKind.DUPLICATE_BARCODE,
            f'El código de barras "{candidate["barcode"]}" ya existe en otro embalaje',
            payload={'barcode': candidate['barcode']}
        )
    if 'base_unit' in error_msg or 'product_id' in error_msg:
        raise ConflictViolation(
            ViolationKind.DUPLICATE_BASE_UNIT,
            'Ya existe una unidad base para este producto',
            payload={'product_id': candidate['product_id']}
        )
    raise error


def _dump_dimensions(dims: dict) -> Optional[dict]:
    if not dims:
        return None
    return {key: fmt_decimal(value) for key, value in dims.items()}


def _build_hierarchy(packagings: List[PackagingType]) -> List[Dict[str, Any]]:
    nodes = {p.id: dict(packaging_to_dict(p), children=[]) for p in packagings}
    roots = []
    for p in packagings:
        node = nodes[p.id]
        parent = nodes.get(p.parent_packaging_id)
        if parent is not None:
            parent['children'].append(node)
        else:
            roots.append(node)
    return roots


def _get_cache_or_none():
    try:
        cache = get_cache()
    except RuntimeError:
        return None
    return cache if cache.is_available() else None


def _invalidate_hierarchy_cache(product_id: int) -> None:
    """Gracefully attempt to invalidate the cached hierarchy of a product."""
    cache = _get_cache_or_none()
    if cache is not None:
        cache.delete(HIERARCHY_CACHE_MODULE, f'product:{product_id}:hierarchy')
