"""Quantity parsing and snapshot helpers."""
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Any

from wms.exceptions import ValidationViolation, ViolationKind


def to_decimal(value: Any, field: str = 'quantity') -> Decimal:
    """
    Parse a quantity coming from a request or a model column into Decimal.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.

    Raises:
        ValidationViolation(InvalidQuantity): if the value is empty or not numeric.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationViolation(
            ViolationKind.INVALID_QUANTITY,
            f'El campo "{field}" es requerido',
            payload={'field': field}
        )
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationViolation(
            ViolationKind.INVALID_QUANTITY,
            f'Valor inválido para "{field}"',
            payload={'field': field}
        )
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationViolation(
            ViolationKind.INVALID_QUANTITY,
            f'Valor inválido para "{field}": {value}',
            payload={'field': field, 'value': str(value)}
        )
    if not parsed.is_finite():
        raise ValidationViolation(
            ViolationKind.INVALID_QUANTITY,
            f'Valor inválido para "{field}": {value}',
            payload={'field': field, 'value': str(value)}
        )
    return parsed


def fmt_decimal(value: Decimal) -> str:
    """Render a Decimal without trailing zeros or exponent (12.000 -> '12')."""
    if value == value.to_integral_value():
        return str(value.quantize(Decimal('1')))
    return format(value.normalize(), 'f')


def to_snapshot(value: Any) -> Any:
    """
    Convert a calculation result into a JSON-safe structure.

    Decimals become strings so stored snapshots keep their exact value.
    """
    if isinstance(value, Decimal):
        return fmt_decimal(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_snapshot(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_snapshot(v) for v in value]
    return value


DIMENSION_KEYS = ('length', 'width', 'height', 'weight')


def parse_dimensions(raw: Any) -> dict:
    """
    Normalize a dimensions mapping to {key: Decimal} with only known keys.

    Missing or empty mappings yield {} (the packaging carries no physical data).
    """
    if not raw:
        return {}
    dims = {}
    for key in DIMENSION_KEYS:
        value = raw.get(key)
        if value is None or value == '':
            continue
        parsed = to_decimal(value, field=key)
        if parsed <= 0:
            raise ValidationViolation(
                ViolationKind.INVALID_QUANTITY,
                f'La dimensión "{key}" debe ser mayor a 0',
                payload={'field': key, 'value': str(value)}
            )
        dims[key] = parsed
    return dims
