"""
RawMaterial model for stocked production inputs.

stock_quantity is a cached aggregate: it must always equal the sum of the
material's lots' remaining quantities. Only the lot ledger writes it, in the
same unit of work that mutates the lots.

The version column is an optimistic lock (SQLAlchemy version_id_col): a
writer that loaded a stale row fails its flush with StaleDataError instead
of overwriting a concurrent update.
"""

from decimal import Decimal

from sqlalchemy import Column, Integer, String, Numeric, CheckConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel


class RawMaterial(BaseModel):
    """
    RawMaterial model.

    Attributes:
        name: Display name
        stock_unit: Unit stock and lots are kept in (e.g. "kg")
        stock_quantity: Sum of remaining lot quantities
        minimum_stock: Threshold used for stock level alerts
        standard_cost: Administrative cost per stock unit
        version: Optimistic lock counter
    """

    __tablename__ = "raw_materials"

    name = Column(String(200), nullable=False, unique=True)
    stock_unit = Column(String(20), nullable=False, default="kg")
    stock_quantity = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    minimum_stock = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    standard_cost = Column(Numeric(12, 4), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    lots = relationship(
        "StockLot",
        back_populates="raw_material",
        cascade="all, delete-orphan",
    )
    recipe_lines = relationship("RecipeLine", back_populates="raw_material")
    movements = relationship(
        "StockMovement", back_populates="raw_material", cascade="all, delete-orphan"
    )
    cost_changes = relationship(
        "StandardCostChange",
        back_populates="raw_material",
        cascade="all, delete-orphan",
        order_by="StandardCostChange.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_raw_material_stock_non_negative"),
        CheckConstraint("minimum_stock >= 0", name="ck_raw_material_minimum_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"RawMaterial(id={self.id}, name='{self.name}', "
            f"stock={self.stock_quantity} {self.stock_unit})"
        )
