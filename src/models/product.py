"""
Product model for finished goods manufactured by the plant.

Products are catalog records owned by the surrounding ERP; this core only
reads them to resolve recipes and to label production orders.
"""

from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship

from .base import BaseModel


class Product(BaseModel):
    """
    Product model representing a manufactured item.

    Attributes:
        code: Catalog code (unique)
        name: Display name
        unit_of_measure: Unit the product is produced in (e.g. "m")
        description: Optional free text
    """

    __tablename__ = "products"

    code = Column(String(50), nullable=True, unique=True)
    name = Column(String(200), nullable=False)
    unit_of_measure = Column(String(20), nullable=False, default="m")
    description = Column(Text, nullable=True)

    recipe_lines = relationship(
        "RecipeLine",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="RecipeLine.raw_material_id",
    )

    def __repr__(self) -> str:
        return f"Product(id={self.id}, name='{self.name}', unit='{self.unit_of_measure}')"
