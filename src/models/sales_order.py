"""
SalesOrder model: the customer order production and dispatch serve.

Only the fields this core reads or writes are mapped; pricing, billing and
customer data belong to the surrounding ERP.
"""

from sqlalchemy import Column, Integer, String, DateTime, Index, CheckConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import SalesOrderStatus


class SalesOrder(BaseModel):
    """
    SalesOrder model.

    Attributes:
        order_number: Human-facing number
        status: SalesOrderStatus value
        pallet_count: Pallets to generate when production completes
        delivered_at: Set when the last pallet is confirmed
    """

    __tablename__ = "sales_orders"

    order_number = Column(String(50), nullable=False, unique=True)
    status = Column(String(30), nullable=False, default=SalesOrderStatus.APROVADO.value)
    pallet_count = Column(Integer, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    production_orders = relationship("ProductionOrder", back_populates="sales_order")
    pallets = relationship(
        "Pallet",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="Pallet.pallet_number",
    )

    __table_args__ = (
        Index("idx_sales_order_status", "status"),
        CheckConstraint(
            "pallet_count IS NULL OR pallet_count > 0", name="ck_sales_order_pallet_count_positive"
        ),
    )

    def __repr__(self) -> str:
        return f"SalesOrder(id={self.id}, number='{self.order_number}', status='{self.status}')"
