"""
ProductionOrder and ProductionOrderItem models.

An order (OP) either carries line items, in which case its status is derived
from the items' statuses, or none (legacy/simple mode), in which case the
order's own product and quantity are produced as a single unit.

Quantities are lengths in meters. When only a piece count and per-piece
length (mm) are given, the meters to produce are derived from them.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import ProductionOrderStatus, ProductionItemStatus

MM_PER_METER = Decimal("1000")


def _length_in_meters(
    quantity_meters: Optional[Decimal],
    piece_count: Optional[int],
    piece_length_mm: Optional[Decimal],
) -> Decimal:
    if quantity_meters is not None and Decimal(quantity_meters) > 0:
        return Decimal(quantity_meters)
    if piece_count and piece_length_mm:
        return Decimal(piece_count) * Decimal(piece_length_mm) / MM_PER_METER
    return Decimal("0")


class ProductionOrder(BaseModel):
    """
    ProductionOrder model.

    Attributes:
        order_number: Sequential number, e.g. "OP-0001"
        sales_order_id: Originating sales order (optional)
        product_id: Product for legacy single-product orders (optional)
        quantity_meters: Length to produce in legacy mode
        piece_count: Number of pieces (optional)
        piece_length_mm: Length of each piece in mm (optional)
        status: ProductionOrderStatus value
        scheduled_for: Planned production date
        started_at: First start timestamp
        completed_at: Completion timestamp
        notes: Technical instructions / notes
    """

    __tablename__ = "production_orders"

    order_number = Column(String(20), nullable=False, unique=True)
    sales_order_id = Column(
        Integer, ForeignKey("sales_orders.id", ondelete="RESTRICT"), nullable=True
    )
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=True)

    quantity_meters = Column(Numeric(14, 4), nullable=True)
    piece_count = Column(Integer, nullable=True)
    piece_length_mm = Column(Numeric(12, 2), nullable=True)

    status = Column(String(20), nullable=False, default=ProductionOrderStatus.AGUARDANDO.value)
    scheduled_for = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    sales_order = relationship("SalesOrder", back_populates="production_orders")
    product = relationship("Product")
    items = relationship(
        "ProductionOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="ProductionOrderItem.id",
    )

    __table_args__ = (
        Index("idx_production_order_status", "status"),
        Index("idx_production_order_sales_order", "sales_order_id"),
        CheckConstraint(
            "quantity_meters IS NULL OR quantity_meters >= 0",
            name="ck_production_order_quantity_non_negative",
        ),
    )

    @property
    def has_items(self) -> bool:
        return len(self.items) > 0

    @property
    def quantity_to_produce(self) -> Decimal:
        """Meters to produce in legacy mode."""
        return _length_in_meters(self.quantity_meters, self.piece_count, self.piece_length_mm)

    def __repr__(self) -> str:
        return (
            f"ProductionOrder(id={self.id}, number='{self.order_number}', "
            f"status='{self.status}', items={len(self.items)})"
        )


class ProductionOrderItem(BaseModel):
    """
    ProductionOrderItem model: one product line of a production order.

    Attributes:
        production_order_id: Owning order
        product_id: Product to produce
        quantity_meters: Length to produce
        piece_count: Number of pieces (optional)
        piece_length_mm: Length of each piece in mm (optional)
        status: ProductionItemStatus value
        started_at: Start timestamp
        finished_at: End timestamp
        notes: Optional free text
    """

    __tablename__ = "production_order_items"

    production_order_id = Column(
        Integer, ForeignKey("production_orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    quantity_meters = Column(Numeric(14, 4), nullable=True)
    piece_count = Column(Integer, nullable=True)
    piece_length_mm = Column(Numeric(12, 2), nullable=True)

    status = Column(String(20), nullable=False, default=ProductionItemStatus.AGUARDANDO.value)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    order = relationship("ProductionOrder", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        Index("idx_production_item_order", "production_order_id"),
        Index("idx_production_item_status", "status"),
        CheckConstraint(
            "quantity_meters IS NULL OR quantity_meters >= 0",
            name="ck_production_item_quantity_non_negative",
        ),
    )

    @property
    def quantity_to_produce(self) -> Decimal:
        return _length_in_meters(self.quantity_meters, self.piece_count, self.piece_length_mm)

    def __repr__(self) -> str:
        return (
            f"ProductionOrderItem(id={self.id}, order_id={self.production_order_id}, "
            f"product_id={self.product_id}, status='{self.status}')"
        )
