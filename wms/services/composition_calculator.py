"""
Composition calculator.

Works out whether a set of products fits on a pallet and how it would be
arranged. Read-only: nothing is persisted here (see composition_service).

Units: dimensions in cm, weights in kg, volumes in m3.
"""
import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from wms.models import Product, PackagingType, Pallet, PalletStatus
from wms.exceptions import NotFoundError, NoSuitablePalletError, ValidationViolation, ViolationKind
from wms.utils.quantities import to_decimal, parse_dimensions

logger = logging.getLogger(__name__)

DEFAULT_MAX_HEIGHT_CM = Decimal('200')
DEFAULT_MAX_ITEMS = 10000
CM3_PER_M3 = Decimal('1000000')
RATIO_PLACES = Decimal('0.0001')
VOLUME_PLACES = Decimal('0.000001')

# Advisory thresholds
LOW_EFFICIENCY = Decimal('0.7')
LOW_WEIGHT_UTILIZATION = Decimal('0.5')
MAX_COMFORTABLE_LAYERS = 3
HIGH_HEIGHT_UTILIZATION = Decimal('0.9')
POOR_EFFICIENCY = Decimal('0.6')


def calculate_composition(products: List[dict], session: Session, pallet_id: Optional[int] = None,
                          constraints: Optional[dict] = None) -> Dict[str, Any]:
    """
    Calculate a pallet composition.

    Args:
        products: List of dicts with product_id, quantity and optional packaging_type_id
        session: SQLAlchemy session
        pallet_id: Pallet to load; when None the smallest available pallet
            able to carry the total weight is chosen
        constraints: Optional overrides for max_weight (kg), max_volume (m3)
            and max_height (cm)

    Returns:
        Dict with is_valid, efficiency, pallet, weight, volume, height, layout,
        products, violations, recommendations and warnings

    Raises:
        ValidationViolation: EmptyComposition, InvalidQuantity, InvalidConstraint
        NotFoundError: Unknown product, packaging or pallet, or no suitable pallet
    """
    lines, pallet, calc = _prepare(products, session, pallet_id, constraints)

    layout, oversize = _build_layout(lines, pallet)
    violations = _limit_violations(calc, lines)

    warnings = []
    for line in lines:
        if line['product_id'] in oversize:
            message = f'El embalaje del producto {line["product_id"]} excede la superficie del pallet'
            line['can_fit'] = False
            line['issues'].append(message)
            warnings.append(message)

    recommendations = []
    if calc['efficiency'] < LOW_EFFICIENCY:
        recommendations.append('Considere reorganizar los productos para aprovechar mejor el espacio')
    if calc['weight']['utilization'] < LOW_WEIGHT_UTILIZATION:
        recommendations.append('El pallet está subutilizado en peso: considere agregar más productos')
    if layout['layers'] > MAX_COMFORTABLE_LAYERS:
        warnings.append('Demasiadas capas pueden comprometer la estabilidad de la carga')
    if calc['height']['utilization'] > HIGH_HEIGHT_UTILIZATION:
        warnings.append('Altura cercana al límite: cuidado con la estabilidad')

    is_valid = not any(v['severity'] == 'error' for v in violations)
    logger.debug(
        f"Composition calculated on pallet {pallet.id}: "
        f"efficiency={calc['efficiency']} valid={is_valid} items={layout['total_items']}"
    )

    return {
        'is_valid': is_valid,
        'efficiency': calc['efficiency'],
        'pallet': _pallet_summary(pallet),
        'weight': calc['weight'],
        'volume': calc['volume'],
        'height': calc['height'],
        'layout': layout,
        'products': [_line_summary(line) for line in lines],
        'violations': violations,
        'recommendations': recommendations,
        'warnings': warnings,
    }


def validate_constraints(products: List[dict], session: Session, pallet_id: Optional[int] = None,
                         constraints: Optional[dict] = None) -> Dict[str, Any]:
    """
    Check a composition request against its limits without building a layout.

    Returns:
        Dict with is_valid, violations, warnings and metrics (total_weight,
        total_volume, total_height, efficiency)
    """
    lines, pallet, calc = _prepare(products, session, pallet_id, constraints)
    violations = _limit_violations(calc, lines)

    warnings = []
    if calc['efficiency'] < POOR_EFFICIENCY:
        warnings.append(f'Baja eficiencia de empaquetado ({calc["efficiency"] * 100:.1f}%)')

    return {
        'is_valid': not any(v['severity'] == 'error' for v in violations),
        'pallet_id': pallet.id,
        'violations': violations,
        'warnings': warnings,
        'metrics': {
            'total_weight': calc['weight']['total'],
            'total_volume': calc['volume']['total'],
            'total_height': calc['height']['total'],
            'efficiency': calc['efficiency'],
        },
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _prepare(products, session, pallet_id, constraints):
    if not products:
        raise ValidationViolation(
            ViolationKind.EMPTY_COMPOSITION,
            'La composición debe incluir al menos un producto'
        )
    limits = _parse_constraints(constraints)
    lines = [_resolve_line(item, session) for item in products]
    _check_item_count(lines)

    total_weight = sum((line['total_weight'] for line in lines), Decimal('0'))
    pallet = _resolve_pallet(pallet_id, total_weight, session)
    return lines, pallet, _measure(lines, pallet, limits)


def _configured_max_height() -> Decimal:
    if has_app_context():
        return Decimal(str(current_app.config.get('COMPOSITION_MAX_HEIGHT_CM', DEFAULT_MAX_HEIGHT_CM)))
    return DEFAULT_MAX_HEIGHT_CM


def _check_item_count(lines: List[dict]) -> None:
    """Cap on packages per calculation; each one gets its own layout slot."""
    max_items = DEFAULT_MAX_ITEMS
    if has_app_context():
        max_items = int(current_app.config.get('COMPOSITION_MAX_ITEMS', DEFAULT_MAX_ITEMS))

    total_items = sum(math.ceil(line['quantity']) for line in lines)
    if total_items > max_items:
        raise ValidationViolation(
            ViolationKind.INVALID_QUANTITY,
            f'La composición supera el máximo de {max_items} bultos ({total_items})',
            payload={'total_items': total_items, 'max_items': max_items}
        )


def _parse_constraints(constraints: Optional[dict]) -> Dict[str, Optional[Decimal]]:
    limits = {}
    for key in ('max_weight', 'max_volume', 'max_height'):
        raw = (constraints or {}).get(key)
        if raw is None or raw == '':
            limits[key] = None
            continue
        try:
            value = to_decimal(raw, field=key)
        except ValidationViolation:
            value = None
        if value is None or value <= 0:
            raise ValidationViolation(
                ViolationKind.INVALID_CONSTRAINT,
                f'La restricción "{key}" debe ser un número mayor a 0',
                payload={'constraint': key, 'value': str(raw)}
            )
        limits[key] = value
    return limits


def _resolve_line(item: dict, session: Session) -> Dict[str, Any]:
    product_id = item.get('product_id')
    if product_id is None:
        raise ValidationViolation(
            ViolationKind.MISSING_FIELD,
            'Cada producto de la composición requiere "product_id"',
            payload={'field': 'product_id'}
        )

    quantity = to_decimal(item.get('quantity'))
    if quantity <= 0:
        raise ValidationViolation(
            ViolationKind.INVALID_QUANTITY,
            f'La cantidad del producto {product_id} debe ser mayor a 0',
            payload={'product_id': product_id, 'quantity': str(quantity)}
        )

    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError(f'Producto {product_id} no encontrado', payload={'product_id': product_id})

    packaging = _resolve_packaging(product, item.get('packaging_type_id'), session)
    base_unit_quantity = to_decimal(packaging.base_unit_quantity) if packaging else Decimal('1')

    dims = parse_dimensions(packaging.dimensions) if packaging else {}
    if not all(k in dims for k in ('width', 'length', 'height')):
        product_dims = parse_dimensions(product.dimensions)
        for key in ('width', 'length', 'height'):
            dims.setdefault(key, product_dims.get(key, Decimal('0')))

    unit_weight = dims.get('weight')
    if unit_weight is None:
        unit_weight = to_decimal(product.weight or 0) * base_unit_quantity

    unit_volume = dims['width'] * dims['length'] * dims['height'] / CM3_PER_M3

    return {
        'product_id': product.id,
        'product_name': product.name,
        'packaging_type_id': packaging.id if packaging else None,
        'quantity': quantity,
        'base_units': quantity * base_unit_quantity,
        'dimensions': {'width': dims['width'], 'length': dims['length'], 'height': dims['height']},
        'unit_weight': unit_weight,
        'total_weight': unit_weight * quantity,
        'total_volume': unit_volume * quantity,
        'can_fit': True,
        'issues': [],
    }


def _resolve_packaging(product: Product, packaging_type_id: Optional[int], session: Session) -> Optional[PackagingType]:
    query = session.query(PackagingType).filter(
        PackagingType.product_id == product.id,
        PackagingType.is_active.is_(True)
    )
    if packaging_type_id is not None:
        packaging = query.filter(PackagingType.id == packaging_type_id).first()
        if not packaging:
            raise NotFoundError(
                f'Embalaje {packaging_type_id} no encontrado para el producto {product.id}',
                payload={'product_id': product.id, 'packaging_type_id': packaging_type_id}
            )
        return packaging
    return query.filter(PackagingType.is_base_unit.is_(True)).first()


def _resolve_pallet(pallet_id: Optional[int], total_weight: Decimal, session: Session) -> Pallet:
    if pallet_id is not None:
        pallet = session.get(Pallet, pallet_id)
        if not pallet:
            raise NotFoundError(f'Pallet {pallet_id} no encontrado', payload={'pallet_id': pallet_id})
        return pallet

    pallet = session.query(Pallet).filter(
        Pallet.status == PalletStatus.AVAILABLE.value,
        Pallet.max_weight >= total_weight
    ).order_by(Pallet.max_weight.asc(), Pallet.id.asc()).first()

    if not pallet:
        logger.warning(f"No available pallet supports {total_weight} kg")
        raise NoSuitablePalletError(total_weight)
    return pallet


def _ratio(total: Decimal, limit: Decimal) -> Decimal:
    if limit <= 0:
        return Decimal('0')
    return (total / limit).quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)


def _measure(lines: List[dict], pallet: Pallet, limits: Dict[str, Optional[Decimal]]) -> Dict[str, Any]:
    total_weight = sum((line['total_weight'] for line in lines), Decimal('0'))
    total_volume = sum((line['total_volume'] for line in lines), Decimal('0'))
    max_item_height = max((line['dimensions']['height'] for line in lines), default=Decimal('0'))

    weight_limit = limits['max_weight'] or to_decimal(pallet.max_weight)
    height_limit = limits['max_height'] or _configured_max_height()
    volume_limit = limits['max_volume'] or (
        Decimal(pallet.width) * Decimal(pallet.length) * height_limit / CM3_PER_M3
    )

    weight_util = _ratio(total_weight, weight_limit)
    volume_util = _ratio(total_volume, volume_limit)
    height_util = _ratio(max_item_height, height_limit)

    efficiency = max(Decimal('0'), min(weight_util, volume_util, Decimal('1')))

    return {
        'weight': {'total': total_weight, 'limit': weight_limit, 'utilization': weight_util},
        'volume': {
            'total': total_volume.quantize(VOLUME_PLACES, rounding=ROUND_HALF_UP),
            'limit': volume_limit.quantize(VOLUME_PLACES, rounding=ROUND_HALF_UP),
            'utilization': volume_util,
        },
        'height': {'total': max_item_height, 'limit': height_limit, 'utilization': height_util},
        'efficiency': efficiency,
    }


def _limit_violations(calc: Dict[str, Any], lines: List[dict]) -> List[Dict[str, Any]]:
    labels = {
        'weight': ('Peso total', 'kg'),
        'volume': ('Volumen total', 'm³'),
        'height': ('Altura', 'cm'),
    }
    violations = []
    for key, (label, unit) in labels.items():
        metric = calc[key]
        if metric['utilization'] > 1:
            violations.append({
                'type': key,
                'severity': 'error',
                'message': f'{label} ({metric["total"]} {unit}) excede el límite ({metric["limit"]} {unit})',
                'affected_products': [line['product_id'] for line in lines],
            })
    return violations


def _build_layout(lines: List[dict], pallet: Pallet):
    """
    Shelf packing: items go left to right along the pallet width, a new row
    starts when the width is exceeded and a new layer when the rows exceed
    the pallet length. Layer height is the tallest item in that layer.
    No rotation; the same input always yields the same layout.
    """
    pallet_width = Decimal(pallet.width)
    pallet_length = Decimal(pallet.length)

    arrangement = []
    oversize = set()
    per_layer = {}

    x = y = z = Decimal('0')
    row_depth = Decimal('0')
    layer_height = Decimal('0')
    layer = 1

    for line in lines:
        dims = line['dimensions']
        width, length, height = dims['width'], dims['length'], dims['height']
        if width > pallet_width or length > pallet_length:
            oversize.add(line['product_id'])

        for _ in range(math.ceil(line['quantity'])):
            if x > 0 and x + width > pallet_width:
                x = Decimal('0')
                y += row_depth
                row_depth = Decimal('0')
            if y > 0 and y + length > pallet_length:
                x = y = Decimal('0')
                z += layer_height
                row_depth = layer_height = Decimal('0')
                layer += 1

            arrangement.append({
                'product_id': line['product_id'],
                'packaging_type_id': line['packaging_type_id'],
                'quantity': 1,
                'layer': layer,
                'position': {'x': x, 'y': y, 'z': z},
                'dimensions': dict(dims),
            })
            per_layer[layer] = per_layer.get(layer, 0) + 1

            x += width
            row_depth = max(row_depth, length)
            layer_height = max(layer_height, height)

        line['layer'] = layer

    return {
        'layers': len(per_layer),
        'items_per_layer': max(per_layer.values(), default=0),
        'total_items': len(arrangement),
        'stack_height': z + layer_height if arrangement else Decimal('0'),
        'arrangement': arrangement,
    }, oversize


def _pallet_summary(pallet: Pallet) -> Dict[str, Any]:
    return {
        'id': pallet.id,
        'code': pallet.code,
        'type': pallet.type,
        'width': pallet.width,
        'length': pallet.length,
        'height': pallet.height,
        'max_weight': to_decimal(pallet.max_weight),
    }


def _line_summary(line: dict) -> Dict[str, Any]:
    return {
        'product_id': line['product_id'],
        'product_name': line['product_name'],
        'packaging_type_id': line['packaging_type_id'],
        'quantity': line['quantity'],
        'base_units': line['base_units'],
        'unit_weight': line['unit_weight'],
        'total_weight': line['total_weight'],
        'total_volume': line['total_volume'],
        'layer': line.get('layer', 1),
        'can_fit': line['can_fit'],
        'issues': line['issues'],
    }
