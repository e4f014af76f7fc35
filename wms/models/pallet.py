"""Pallet model."""
import enum
from sqlalchemy import Column, String, Integer, Numeric, DateTime
from sqlalchemy.sql import func
from wms.database import Base, BigIntId


class PalletStatus(enum.Enum):
    """Pallet status enum."""
    AVAILABLE = "available"
    IN_USE = "in_use"
    DEFECTIVE = "defective"
    RECOVERY = "recovery"
    DISCARDED = "discarded"


class Pallet(Base):
    """Physical pallet (PBR, Europeo, Chep...)."""

    __tablename__ = 'pallet'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    code = Column(String(64), nullable=False, unique=True)
    type = Column(String(32), nullable=False)
    width = Column(Integer, nullable=False)  # cm
    length = Column(Integer, nullable=False)  # cm
    height = Column(Integer, nullable=False)  # cm
    max_weight = Column(Numeric(10, 2), nullable=False)  # kg
    status = Column(String(20), nullable=False, default=PalletStatus.AVAILABLE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Pallet(id={self.id}, code='{self.code}', max_weight={self.max_weight})>"
