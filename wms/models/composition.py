"""Composition models (pallet load plans)."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, Text, Numeric, Boolean, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from wms.database import Base, BigIntId


class CompositionStatus(enum.Enum):
    """Composition status enum, in lifecycle order."""
    DRAFT = "draft"
    VALIDATED = "validated"
    APPROVED = "approved"
    EXECUTED = "executed"


class Composition(Base):
    """
    Planned arrangement of products on a pallet.

    `result` is the calculation snapshot taken when the composition was saved;
    it is returned as-is and never recomputed.
    """

    __tablename__ = 'composition'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    pallet_id = Column(BigInteger, ForeignKey('pallet.id'), nullable=False)
    status = Column(Enum(CompositionStatus, name='composition_status'), nullable=False, default=CompositionStatus.DRAFT)
    constraints = Column(JSON, nullable=True)
    result = Column(JSON, nullable=True)
    efficiency = Column(Numeric(6, 4), nullable=True)
    total_weight = Column(Numeric(12, 3), nullable=True)  # kg
    total_volume = Column(Numeric(12, 6), nullable=True)  # m3
    total_height = Column(Numeric(8, 2), nullable=True)  # cm
    assembled_location = Column(String(64), nullable=True)
    created_by = Column(BigInteger, nullable=False)
    approved_by = Column(BigInteger, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    executed_by = Column(BigInteger, nullable=True)
    executed_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    pallet = relationship('Pallet')
    items = relationship(
        'CompositionItem',
        order_by='CompositionItem.sort_order',
        primaryjoin='and_(Composition.id == CompositionItem.composition_id, CompositionItem.is_active == True)',
        viewonly=True,
    )

    def __repr__(self):
        return f"<Composition(id={self.id}, name='{self.name}', status={self.status.value})>"


class CompositionItem(Base):
    """Product line of a composition; quantity is in the line's packaging units."""

    __tablename__ = 'composition_item'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    composition_id = Column(BigInteger, ForeignKey('composition.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    packaging_type_id = Column(BigInteger, ForeignKey('packaging_type.id'), nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    layer = Column(Integer, nullable=False, default=1)
    sort_order = Column(Integer, nullable=False, default=0)
    added_by = Column(BigInteger, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    composition = relationship('Composition')
    product = relationship('Product')
    packaging_type = relationship('PackagingType')

    def __repr__(self):
        return f"<CompositionItem(composition_id={self.composition_id}, product_id={self.product_id}, qty={self.quantity})>"


class CompositionReport(Base):
    """Report generated from a composition snapshot."""

    __tablename__ = 'composition_report'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    composition_id = Column(BigInteger, ForeignKey('composition.id'), nullable=False, index=True)
    report_type = Column(String(50), nullable=False, default='detailed')
    title = Column(String(255), nullable=False)
    report_data = Column(JSON, nullable=False)
    generated_by = Column(BigInteger, nullable=True)
    generated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    composition = relationship('Composition')

    def __repr__(self):
        return f"<CompositionReport(id={self.id}, composition_id={self.composition_id}, type='{self.report_type}')>"
