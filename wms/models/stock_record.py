"""Stock Record model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Date, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from wms.database import Base, BigIntId


class StockRecord(Base):
    """
    Stock held at a location (container/UCP).

    `quantity` is ALWAYS expressed in base units; `packaging_type_id` only
    records the packaging the goods were received in.
    """

    __tablename__ = 'stock_record'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    packaging_type_id = Column(BigInteger, ForeignKey('packaging_type.id'), nullable=True, index=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    location = Column(String(64), nullable=False)
    lot = Column(String(64), nullable=True)
    expiry_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    product = relationship('Product')
    packaging_type = relationship('PackagingType')

    def __repr__(self):
        return f"<StockRecord(id={self.id}, product_id={self.product_id}, qty={self.quantity}, location='{self.location}')>"
