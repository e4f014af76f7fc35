"""
Composition lifecycle.

States: draft -> validated -> approved -> executed.
`executed` is only reached through assemble(), and left only through
disassemble() (back to approved).

Stored results are snapshots: reads never recompute them. Live stock is
checked only at assembly time.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from wms.models import Composition, CompositionItem, CompositionStatus
from wms.exceptions import (
    NotFoundError, BusinessRuleViolation, InsufficientStockError,
    ValidationViolation, ViolationKind
)
from wms.services.composition_calculator import calculate_composition
from wms.services.conversion_service import to_base_units
from wms.services.stock_service import get_consolidated
from wms.utils.quantities import to_decimal, to_snapshot

logger = logging.getLogger(__name__)

_NEXT_STATUS = {
    CompositionStatus.DRAFT: CompositionStatus.VALIDATED,
    CompositionStatus.VALIDATED: CompositionStatus.APPROVED,
}


def save_composition(data: dict, session: Session, user_id: int,
                     result: Optional[Dict[str, Any]] = None) -> Composition:
    """
    Persist a draft composition with its calculation snapshot.

    Args:
        data: Dict with name, products and optional description, pallet_id, constraints
        session: SQLAlchemy session
        user_id: Creator
        result: Calculation result to store; computed when not given

    Returns:
        Composition: created composition (status draft)
    """
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationViolation(
            ViolationKind.MISSING_FIELD,
            'El nombre de la composición es requerido',
            payload={'field': 'name'}
        )

    products = data.get('products') or []
    constraints = data.get('constraints') or {}
    if result is None:
        result = calculate_composition(products, session, data.get('pallet_id'), constraints)
    elif not products:
        raise ValidationViolation(
            ViolationKind.EMPTY_COMPOSITION,
            'La composición debe incluir al menos un producto'
        )

    lines = result.get('products') or []

    try:
        composition = Composition(
            name=name,
            description=data.get('description'),
            pallet_id=data.get('pallet_id') or result['pallet']['id'],
            status=CompositionStatus.DRAFT,
            constraints=to_snapshot(constraints),
            result=to_snapshot(result),
            efficiency=to_decimal(result['efficiency'], field='efficiency'),
            total_weight=to_decimal(result['weight']['total'], field='total_weight'),
            total_volume=to_decimal(result['volume']['total'], field='total_volume'),
            total_height=to_decimal(result['height']['total'], field='total_height'),
            created_by=user_id,
            is_active=True
        )
        session.add(composition)
        session.flush()

        for index, item in enumerate(products):
            line = lines[index] if index < len(lines) else {}
            session.add(CompositionItem(
                composition_id=composition.id,
                product_id=item['product_id'],
                packaging_type_id=item.get('packaging_type_id') or line.get('packaging_type_id'),
                quantity=to_decimal(item.get('quantity')),
                layer=int(line.get('layer') or 1),
                sort_order=index,
                added_by=user_id,
                is_active=True
            ))

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Composition created: {composition.id} '{composition.name}' by user {user_id}")
    return composition


def get_composition(composition_id: int, session: Session) -> Composition:
    """Get an active composition or raise NotFoundError."""
    composition = session.get(Composition, composition_id)
    if not composition or not composition.is_active:
        raise NotFoundError(
            f'Composición {composition_id} no encontrada',
            payload={'composition_id': composition_id}
        )
    return composition


def list_compositions(session: Session, page: int = 1, per_page: int = 20,
                      status: Optional[str] = None, created_by: Optional[int] = None) -> Dict[str, Any]:
    """
    List active compositions, newest first.

    Filters combine: status and created_by may be given together.
    """
    page = max(int(page or 1), 1)
    per_page = max(int(per_page or 20), 1)

    query = session.query(Composition).filter(Composition.is_active.is_(True))
    if status:
        query = query.filter(Composition.status == _parse_status(status))
    if created_by is not None:
        query = query.filter(Composition.created_by == created_by)

    total = query.count()
    compositions = query.order_by(
        Composition.created_at.desc(), Composition.id.desc()
    ).offset((page - 1) * per_page).limit(per_page).all()

    return {
        'compositions': compositions,
        'total': total,
        'page': page,
        'per_page': per_page,
        'pages': (total + per_page - 1) // per_page,
    }


def update_status(composition_id: int, target: str, actor_id: Optional[int], session: Session) -> Composition:
    """
    Advance a composition one step: draft -> validated -> approved.

    Approving records approved_by / approved_at.

    Raises:
        BusinessRuleViolation(InvalidStatusTransition): for any other move,
            including anything into or out of executed
    """
    composition = get_composition(composition_id, session)
    target_status = _parse_status(target)

    if _NEXT_STATUS.get(composition.status) != target_status:
        logger.warning(
            f"Rejected status change for composition {composition.id}: "
            f"{composition.status.value} -> {target_status.value}"
        )
        raise BusinessRuleViolation(
            'InvalidStatusTransition',
            f'No es posible pasar de "{composition.status.value}" a "{target_status.value}"',
            payload={
                'composition_id': composition.id,
                'current_status': composition.status.value,
                'target_status': target_status.value,
            }
        )

    try:
        composition.status = target_status
        if target_status == CompositionStatus.APPROVED:
            composition.approved_by = actor_id
            composition.approved_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Composition {composition.id} status -> {target_status.value} (user {actor_id})")
    return composition


def assemble(composition_id: int, target_location: str, actor_id: Optional[int], session: Session) -> Composition:
    """
    Execute an approved composition at a location.

    Required base units are recomputed from the composition items and
    checked against the live stock of each product. Stock rows are locked
    for the rest of the transaction, so the check and the status write
    commit together.

    Raises:
        BusinessRuleViolation(InvalidStatusTransition): if not approved
        InsufficientStockError: on the first product short of stock
    """
    composition = get_composition(composition_id, session)
    _require_status(composition, CompositionStatus.APPROVED, 'ensamblar')

    location = (target_location or '').strip()
    if not location:
        raise ValidationViolation(
            ViolationKind.MISSING_FIELD,
            'La ubicación de destino es requerida',
            payload={'field': 'target_location'}
        )

    try:
        required = _required_base_units(composition, session)
        names = {item.product_id: item.product.name for item in composition.items if item.product}

        for product_id in sorted(required):
            stock = get_consolidated(product_id, session, lock=True)
            available = stock['total_base_units']
            if available < required[product_id]:
                logger.warning(
                    f"Assembly of composition {composition.id} blocked: product {product_id} "
                    f"requires {required[product_id]}, available {available}"
                )
                raise InsufficientStockError(product_id, required[product_id], available, names.get(product_id))

        composition.status = CompositionStatus.EXECUTED
        composition.assembled_location = location
        composition.executed_by = actor_id
        composition.executed_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Composition {composition.id} assembled at {location} by user {actor_id}")
    return composition


def disassemble(composition_id: int, targets: Optional[List[dict]], actor_id: Optional[int],
                session: Session) -> Composition:
    """
    Undo an executed composition, back to approved.

    Args:
        targets: List of dicts with product_id and quantity (in the units of
            the composition items). Empty means everything on the composition.

    Raises:
        BusinessRuleViolation: InvalidStatusTransition if not executed,
            ProductNotInComposition, ExcessiveDisassemblyQuantity
    """
    composition = get_composition(composition_id, session)
    _require_status(composition, CompositionStatus.EXECUTED, 'desarmar')

    recorded = {}
    for item in composition.items:
        recorded[item.product_id] = recorded.get(item.product_id, Decimal('0')) + to_decimal(item.quantity)

    requested = {}
    for target in targets or []:
        product_id = target.get('product_id')
        quantity = to_decimal(target.get('quantity'))
        if quantity <= 0:
            raise ValidationViolation(
                ViolationKind.INVALID_QUANTITY,
                'La cantidad a desarmar debe ser mayor a 0',
                payload={'product_id': product_id, 'quantity': str(quantity)}
            )
        requested[product_id] = requested.get(product_id, Decimal('0')) + quantity

    for product_id, quantity in requested.items():
        if product_id not in recorded:
            raise BusinessRuleViolation(
                'ProductNotInComposition',
                f'El producto {product_id} no forma parte de la composición',
                payload={'composition_id': composition.id, 'product_id': product_id}
            )
        if quantity > recorded[product_id]:
            raise BusinessRuleViolation(
                'ExcessiveDisassemblyQuantity',
                f'No es posible desarmar {quantity} del producto {product_id}: '
                f'la composición registra {recorded[product_id]}',
                payload={
                    'composition_id': composition.id,
                    'product_id': product_id,
                    'requested': str(quantity),
                    'recorded': str(recorded[product_id]),
                }
            )

    try:
        composition.status = CompositionStatus.APPROVED
        composition.assembled_location = None
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Composition {composition.id} disassembled by user {actor_id}")
    return composition


def delete_composition(composition_id: int, session: Session) -> None:
    """Soft delete a composition and its items. Executed compositions cannot be deleted."""
    composition = get_composition(composition_id, session)

    if composition.status == CompositionStatus.EXECUTED:
        raise BusinessRuleViolation(
            'CompositionExecuted',
            'No es posible eliminar una composición ejecutada',
            payload={'composition_id': composition.id}
        )

    try:
        composition.is_active = False
        session.query(CompositionItem).filter(
            CompositionItem.composition_id == composition.id
        ).update({CompositionItem.is_active: False}, synchronize_session=False)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Composition deleted (soft): {composition.id}")


def composition_to_dict(composition: Composition, include_items: bool = True) -> Dict[str, Any]:
    """Serialize a composition (stored snapshot included) for API responses."""
    data = {
        'id': composition.id,
        'name': composition.name,
        'description': composition.description,
        'status': composition.status.value,
        'pallet_id': composition.pallet_id,
        'constraints': composition.constraints,
        'result': composition.result,
        'efficiency': composition.efficiency,
        'total_weight': composition.total_weight,
        'total_volume': composition.total_volume,
        'total_height': composition.total_height,
        'assembled_location': composition.assembled_location,
        'created_by': composition.created_by,
        'approved_by': composition.approved_by,
        'approved_at': composition.approved_at.isoformat() if composition.approved_at else None,
        'executed_by': composition.executed_by,
        'executed_at': composition.executed_at.isoformat() if composition.executed_at else None,
        'created_at': composition.created_at.isoformat() if composition.created_at else None,
    }
    if include_items:
        data['items'] = [{
            'id': item.id,
            'product_id': item.product_id,
            'packaging_type_id': item.packaging_type_id,
            'quantity': item.quantity,
            'layer': item.layer,
            'sort_order': item.sort_order,
        } for item in composition.items]
    return data


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _parse_status(value: Any) -> CompositionStatus:
    if isinstance(value, CompositionStatus):
        return value
    try:
        return CompositionStatus(str(value).strip().lower())
    except ValueError:
        raise BusinessRuleViolation(
            'InvalidStatus',
            f'Estado de composición inválido: {value}',
            payload={'status': str(value), 'allowed': [s.value for s in CompositionStatus]}
        )


def _require_status(composition: Composition, expected: CompositionStatus, action: str) -> None:
    if composition.status != expected:
        raise BusinessRuleViolation(
            'InvalidStatusTransition',
            f'Solo es posible {action} una composición en estado "{expected.value}" '
            f'(estado actual: "{composition.status.value}")',
            payload={
                'composition_id': composition.id,
                'current_status': composition.status.value,
                'required_status': expected.value,
            }
        )


def _required_base_units(composition: Composition, session: Session) -> Dict[int, Decimal]:
    """Base units needed per product, summed over the composition items."""
    required = {}
    for item in composition.items:
        quantity = to_decimal(item.quantity)
        if item.packaging_type_id:
            base_units = to_base_units(quantity, item.packaging_type_id, session).base_units
        else:
            base_units = quantity
        required[item.product_id] = required.get(item.product_id, Decimal('0')) + base_units
    return required
