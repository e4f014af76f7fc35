"""Custom exceptions for the packaging and composition engine."""
import enum


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.3f}".rstrip('0').rstrip('.')


class ViolationKind(enum.Enum):
    """Structural and input violations detected before any write."""
    # Packaging hierarchy
    DUPLICATE_BASE_UNIT = "DuplicateBaseUnit"
    MISSING_BASE_UNIT = "MissingBaseUnit"
    PARENT_NOT_FOUND = "ParentNotFound"
    CIRCULAR_REFERENCE = "CircularReference"
    LEVEL_INCONSISTENT = "LevelInconsistent"
    QUANTITY_INCONSISTENT = "QuantityInconsistent"
    DIMENSION_OVERFLOW = "DimensionOverflow"
    DUPLICATE_BARCODE = "DuplicateBarcode"

    # Requests
    MISSING_FIELD = "MissingField"
    EMPTY_COMPOSITION = "EmptyComposition"
    INVALID_QUANTITY = "InvalidQuantity"
    INVALID_CONSTRAINT = "InvalidConstraint"


class WmsError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationViolation(WmsError):
    """Raised when a write or request breaks a structural rule."""
    def __init__(self, kind: ViolationKind, message, payload=None, status_code=422):
        # Explicit base call: ConflictViolation mixes in ConflictError after us
        WmsError.__init__(self, message, status_code, payload)
        self.kind = kind

    def to_dict(self):
        rv = super().to_dict()
        rv['violation'] = self.kind.value
        return rv


class NotFoundError(WmsError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class NoSuitablePalletError(NotFoundError):
    """Raised when no available pallet can carry the requested load."""
    def __init__(self, total_weight):
        super().__init__(
            f'Ningún pallet disponible soporta el peso total de la carga ({_fmt_qty(total_weight)} kg)',
            payload={'code': 'NoSuitablePallet', 'total_weight': str(total_weight)}
        )


class ConflictError(WmsError):
    """Raised when a write collides with existing data."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class ConflictViolation(ValidationViolation, ConflictError):
    """Uniqueness violations: both a structural violation and a conflict."""
    def __init__(self, kind: ViolationKind, message, payload=None):
        super().__init__(kind, message, payload, status_code=409)


class PackagingInUseError(ConflictError):
    """Raised when deleting a packaging type still referenced by live stock."""
    def __init__(self, packaging_id, records_count):
        super().__init__(
            'No es posible eliminar un embalaje que tiene stock asociado',
            payload={'code': 'PackagingInUse', 'packaging_id': packaging_id, 'records_count': records_count}
        )


class BusinessRuleViolation(WmsError):
    """Exception raised for business rule violations."""
    def __init__(self, code, message, payload=None):
        super().__init__(message, 422, dict(payload or {}, code=code))
        self.code = code


class InsufficientStockError(BusinessRuleViolation):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_id, required, available, product_name=None):
        label = product_name or f'producto {product_id}'
        deficit = required - available
        message = (
            f"Stock insuficiente para {label}: se requieren {_fmt_qty(required)}, "
            f"disponible {_fmt_qty(available)} (faltan {_fmt_qty(deficit)})"
        )
        super().__init__('InsufficientStock', message, payload={
            'product_id': product_id,
            'required': str(required),
            'available': str(available),
            'deficit': str(deficit),
        })
        self.status_code = 409
        self.product_id = product_id
        self.required = required
        self.available = available
        self.deficit = deficit


class UnsupportedOperationError(WmsError):
    """Raised for operations the engine refuses to perform."""
    def __init__(self, code, message, payload=None):
        super().__init__(message, 400, dict(payload or {}, code=code))
        self.code = code
