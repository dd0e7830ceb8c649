"""
StockMovement model: audit trail of raw material stock changes.

One row is written per lot touched. quantity_moved is negative for
deductions; quantity_before/quantity_after are the material's total stock
around the movement.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, Numeric
from sqlalchemy.orm import relationship

from .base import BaseModel


class StockMovement(BaseModel):
    """
    StockMovement model.

    Attributes:
        raw_material_id: Material whose stock moved
        lot_id: Lot the quantity came from or went to
        reason: MovementReason value
        quantity_before: Material stock before this movement
        quantity_moved: Signed quantity (negative = out)
        quantity_after: Material stock after this movement
        unit_cost: Lot unit cost at the time of movement
        reference: Reference document (e.g. "OP-0003")
        notes: Optional free text
    """

    __tablename__ = "stock_movements"

    raw_material_id = Column(
        Integer, ForeignKey("raw_materials.id", ondelete="CASCADE"), nullable=False
    )
    lot_id = Column(Integer, ForeignKey("stock_lots.id", ondelete="SET NULL"), nullable=True)
    reason = Column(String(30), nullable=False)
    quantity_before = Column(Numeric(14, 4), nullable=False)
    quantity_moved = Column(Numeric(14, 4), nullable=False)
    quantity_after = Column(Numeric(14, 4), nullable=False)
    unit_cost = Column(Numeric(12, 4), nullable=True)
    reference = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    raw_material = relationship("RawMaterial", back_populates="movements")
    lot = relationship("StockLot", back_populates="movements")

    __table_args__ = (
        Index("idx_stock_movement_material", "raw_material_id"),
        Index("idx_stock_movement_lot", "lot_id"),
        Index("idx_stock_movement_reference", "reference"),
    )

    def __repr__(self) -> str:
        return (
            f"StockMovement(id={self.id}, raw_material_id={self.raw_material_id}, "
            f"moved={self.quantity_moved}, reason='{self.reason}')"
        )
