"""
Pallet model for dispatch confirmation.

Each pallet of a sales order carries an opaque, unguessable token printed
as a QR code. Scanning it confirms the pallet; confirming the last one marks
the sales order delivered.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import PalletStatus


class Pallet(BaseModel):
    """
    Pallet model.

    Attributes:
        sales_order_id: Owning sales order
        pallet_number: 1-based sequence within the order
        token: Confirmation token (unique)
        status: PalletStatus value
        confirmed_at: Confirmation timestamp
        confirmed_by: Actor who confirmed (optional)
        notes: Optional free text
    """

    __tablename__ = "pallets"

    sales_order_id = Column(
        Integer, ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False
    )
    pallet_number = Column(Integer, nullable=False)
    token = Column(String(64), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=PalletStatus.PENDENTE.value)
    confirmed_at = Column(DateTime, nullable=True)
    confirmed_by = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    sales_order = relationship("SalesOrder", back_populates="pallets")

    __table_args__ = (
        Index("idx_pallet_sales_order", "sales_order_id"),
        UniqueConstraint("sales_order_id", "pallet_number", name="uq_pallet_order_number"),
        CheckConstraint("pallet_number > 0", name="ck_pallet_number_positive"),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == PalletStatus.CONFERIDO.value

    def __repr__(self) -> str:
        return (
            f"Pallet(id={self.id}, sales_order_id={self.sales_order_id}, "
            f"number={self.pallet_number}, status='{self.status}')"
        )
