"""Packaging Type model."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey, Boolean, DateTime, JSON, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from wms.database import Base, BigIntId


class PackagingType(Base):
    """
    Packaging level of a product (e.g., Unidad, Caja x 12, Pallet x 144).

    The tree grows towards the containers: the base unit is the leaf and
    `parent_packaging_id` points to the next larger level. `level` and
    `base_unit_quantity` strictly increase moving from a child to its parent.
    """
    __tablename__ = 'packaging_type'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    name = Column(String(100), nullable=False)  # e.g., "Caja x 12"
    barcode = Column(String(255), nullable=True, index=True)
    base_unit_quantity = Column(Numeric(12, 3), nullable=False)  # e.g., 12
    is_base_unit = Column(Boolean, nullable=False, default=False)
    level = Column(Integer, nullable=False, default=1)
    # Weak reference: the parent may later be soft-deleted
    parent_packaging_id = Column(BigInteger, ForeignKey('packaging_type.id'), nullable=True)
    dimensions = Column(JSON, nullable=True)  # {"length", "width", "height", "weight"}
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('base_unit_quantity > 0', name='ck_packaging_type_qty_positive'),
        CheckConstraint('level > 0', name='ck_packaging_type_level_positive'),
        # One active base unit per product and unique active barcodes, also under concurrent writes
        Index(
            'uq_packaging_type_base_unit', 'product_id', unique=True,
            postgresql_where=text('is_active AND is_base_unit'),
            sqlite_where=text('is_active AND is_base_unit')
        ),
        Index(
            'uq_packaging_type_barcode', 'barcode', unique=True,
            postgresql_where=text('is_active AND barcode IS NOT NULL'),
            sqlite_where=text('is_active AND barcode IS NOT NULL')
        ),
    )

    # Relationships
    product = relationship('Product', back_populates='packagings')
    parent = relationship('PackagingType', remote_side=[id])

    def __repr__(self):
        return f"<PackagingType(id={self.id}, name='{self.name}', qty={self.base_unit_quantity}, level={self.level})>"
