"""
StockLot model for dated, costed batches of a raw material.

Lots are consumed FIFO: ascending received_at, ties broken by id. A lot
that reaches zero is kept with status "esgotado" so stock movements keep a
valid reference.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import LotStatus
from src.utils.datetime_utils import utc_now


class StockLot(BaseModel):
    """
    StockLot model.

    Attributes:
        raw_material_id: Owning raw material
        lot_code: Supplier/lot reference (optional)
        received_at: Receipt timestamp, the FIFO precedence key
        initial_quantity: Quantity received
        remaining_quantity: Quantity still available (>= 0)
        unit_cost: Real cost per stock unit (> 0)
        status: "ativo" or "esgotado"
    """

    __tablename__ = "stock_lots"

    raw_material_id = Column(
        Integer, ForeignKey("raw_materials.id", ondelete="CASCADE"), nullable=False
    )
    lot_code = Column(String(100), nullable=True)
    received_at = Column(DateTime, nullable=False, default=utc_now)
    initial_quantity = Column(Numeric(14, 4), nullable=False)
    remaining_quantity = Column(Numeric(14, 4), nullable=False)
    unit_cost = Column(Numeric(12, 4), nullable=False)
    status = Column(String(20), nullable=False, default=LotStatus.ATIVO.value)

    raw_material = relationship("RawMaterial", back_populates="lots")
    movements = relationship("StockMovement", back_populates="lot")

    __table_args__ = (
        Index("idx_stock_lot_material_received", "raw_material_id", "received_at", "id"),
        Index("idx_stock_lot_status", "status"),
        CheckConstraint("remaining_quantity >= 0", name="ck_stock_lot_remaining_non_negative"),
        CheckConstraint("initial_quantity > 0", name="ck_stock_lot_initial_positive"),
        CheckConstraint("unit_cost > 0", name="ck_stock_lot_unit_cost_positive"),
    )

    @property
    def is_exhausted(self) -> bool:
        return self.remaining_quantity is not None and self.remaining_quantity <= Decimal("0")

    def __repr__(self) -> str:
        return (
            f"StockLot(id={self.id}, raw_material_id={self.raw_material_id}, "
            f"remaining={self.remaining_quantity}, unit_cost={self.unit_cost})"
        )
