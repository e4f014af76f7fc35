"""Request helpers shared by the JSON blueprints."""
from typing import Optional

from flask import request

from wms.exceptions import ValidationViolation, ViolationKind


def parse_int(value) -> Optional[int]:
    """Parse integer from string, return None if invalid."""
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def get_actor_id(required: bool = False) -> Optional[int]:
    """
    Acting user taken from the X-User-Id header.

    Authentication happens upstream; this only reads the identity it forwards.
    """
    actor_id = parse_int(request.headers.get('X-User-Id'))
    if actor_id is None and required:
        raise ValidationViolation(
            ViolationKind.MISSING_FIELD,
            'El encabezado X-User-Id es requerido',
            payload={'field': 'X-User-Id'}
        )
    return actor_id


def get_json_body() -> dict:
    """JSON body of the request, {} when empty."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationViolation(
            ViolationKind.MISSING_FIELD,
            'El cuerpo de la solicitud debe ser un objeto JSON'
        )
    return payload
