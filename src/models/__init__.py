"""
Database models package.

This package contains all SQLAlchemy ORM models for the fulfillment core.
"""

from .base import Base, BaseModel
from .enums import (
    ProductionOrderStatus,
    ProductionItemStatus,
    SalesOrderStatus,
    PalletStatus,
    LotStatus,
    MovementReason,
    StockLevel,
)
from .product import Product
from .raw_material import RawMaterial
from .recipe import RecipeLine
from .stock_lot import StockLot
from .stock_movement import StockMovement
from .cost_change import StandardCostChange
from .sales_order import SalesOrder
from .production_order import ProductionOrder, ProductionOrderItem
from .pallet import Pallet

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "ProductionOrderStatus",
    "ProductionItemStatus",
    "SalesOrderStatus",
    "PalletStatus",
    "LotStatus",
    "MovementReason",
    "StockLevel",
    # Catalog (read-only to the core)
    "Product",
    "RecipeLine",
    # Stock
    "RawMaterial",
    "StockLot",
    "StockMovement",
    "StandardCostChange",
    # Orders
    "SalesOrder",
    "ProductionOrder",
    "ProductionOrderItem",
    # Dispatch
    "Pallet",
]
