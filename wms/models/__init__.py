"""Models package - exports all SQLAlchemy models."""
# Catalog (read-only collaborators)
from wms.models.product import Product
from wms.models.pallet import Pallet, PalletStatus
from wms.models.stock_record import StockRecord

# Packaging hierarchy
from wms.models.packaging_type import PackagingType

# Compositions
from wms.models.composition import Composition, CompositionItem, CompositionReport, CompositionStatus

__all__ = [
    'Product', 'Pallet', 'PalletStatus', 'StockRecord',
    'PackagingType',
    'Composition', 'CompositionItem', 'CompositionReport', 'CompositionStatus',
]
