"""
RecipeLine model: raw material consumption per unit of product output.

A product's recipe is the set of its RecipeLine rows. The rate is expressed
per unit of the product's unit of measure (usually per meter) in rate_unit,
which must be convertible to the raw material's stock unit.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Index,
    Numeric,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class RecipeLine(BaseModel):
    """
    One raw material requirement of a product recipe.

    Attributes:
        product_id: Product this line belongs to
        raw_material_id: Raw material consumed
        consumption_rate: Quantity of raw material per unit of product (>= 0)
        rate_unit: Unit of consumption_rate (e.g. "g" for grams per meter)
    """

    __tablename__ = "recipe_lines"

    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    raw_material_id = Column(
        Integer, ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False
    )
    consumption_rate = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    rate_unit = Column(String(20), nullable=False, default="g")

    product = relationship("Product", back_populates="recipe_lines")
    raw_material = relationship("RawMaterial", back_populates="recipe_lines")

    __table_args__ = (
        Index("idx_recipe_line_product", "product_id"),
        Index("idx_recipe_line_raw_material", "raw_material_id"),
        UniqueConstraint("product_id", "raw_material_id", name="uq_recipe_line_product_material"),
        CheckConstraint("consumption_rate >= 0", name="ck_recipe_line_rate_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"RecipeLine(product_id={self.product_id}, raw_material_id={self.raw_material_id}, "
            f"rate={self.consumption_rate} {self.rate_unit})"
        )
