"""
StandardCostChange model: history of a raw material's standard cost.

A row is appended every time the administrative standard cost is set,
most often after a lot-change alert shows that the lots now cost more or
less than the material's standard.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, Numeric
from sqlalchemy.orm import relationship

from .base import BaseModel


class StandardCostChange(BaseModel):
    """
    StandardCostChange model.

    Attributes:
        raw_material_id: Material whose standard cost changed
        previous_cost: Standard cost before the change (None if unset)
        new_cost: Standard cost after the change
        reason: Why the cost changed (e.g. "Troca de lote (PEPS)")
        notes: Optional free text
    """

    __tablename__ = "standard_cost_changes"

    raw_material_id = Column(
        Integer, ForeignKey("raw_materials.id", ondelete="CASCADE"), nullable=False
    )
    previous_cost = Column(Numeric(12, 4), nullable=True)
    new_cost = Column(Numeric(12, 4), nullable=False)
    reason = Column(String(200), nullable=False)
    notes = Column(Text, nullable=True)

    raw_material = relationship("RawMaterial", back_populates="cost_changes")

    __table_args__ = (Index("idx_cost_change_material", "raw_material_id"),)

    def __repr__(self) -> str:
        return (
            f"StandardCostChange(id={self.id}, raw_material_id={self.raw_material_id}, "
            f"{self.previous_cost} -> {self.new_cost})"
        )
