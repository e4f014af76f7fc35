"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from wms.database import Base, BigIntId


class Product(Base):
    """
    Product catalog entry.

    Weight (kg) and dimensions (cm) describe ONE base unit and are used as a
    fallback when a packaging type carries no physical data of its own.
    """

    __tablename__ = 'product'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    sku = Column(String(64), nullable=False, unique=True)
    name = Column(String, nullable=False)
    unit = Column(String(16), nullable=False, default='un')  # un, kg, l...
    weight = Column(Numeric(10, 3), nullable=True)  # kg
    dimensions = Column(JSON, nullable=True)  # {"length", "width", "height"} in cm
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    packagings = relationship('PackagingType', back_populates='product')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"
