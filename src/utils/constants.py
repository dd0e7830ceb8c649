"""
Constants and enumerations for the Production Fulfillment core.

This module defines all system-wide constants including:
- Application metadata
- Unit types (mass, length, count)
- Lot consumption defaults
- Dispatch defaults
"""

from decimal import Decimal
from typing import Dict, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Production Fulfillment Core"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "fulfillment.db"
DATABASE_VERSION = "1.0"

# ============================================================================
# Unit Types
# ============================================================================

# Mass units, factor to grams
MASS_TO_GRAMS: Dict[str, Decimal] = {
    "g": Decimal("1"),
    "kg": Decimal("1000"),
    "t": Decimal("1000000"),
}

# Length units, factor to millimeters
LENGTH_TO_MM: Dict[str, Decimal] = {
    "mm": Decimal("1"),
    "cm": Decimal("10"),
    "m": Decimal("1000"),
}

# Discrete units
COUNT_TO_ITEMS: Dict[str, Decimal] = {
    "un": Decimal("1"),
    "pc": Decimal("1"),
}

# ============================================================================
# Lot Consumption
# ============================================================================

# Percentage difference between consecutive lot costs above which a
# lot-change alert is raised. 0 means any difference alerts.
DEFAULT_LOT_COST_TOLERANCE_PERCENT = Decimal("0")

# Stock quantities are stored with four decimal places
QUANTITY_QUANTUM = Decimal("0.0001")

# Lot-change alert percentages are reported with two decimal places
PERCENT_QUANTUM = Decimal("0.01")

# Shortfall handling when starting production
SHORTFALL_POLICY_BLOCK = "block"
SHORTFALL_POLICY_WARN = "warn"
SHORTFALL_POLICIES: List[str] = [SHORTFALL_POLICY_BLOCK, SHORTFALL_POLICY_WARN]
DEFAULT_SHORTFALL_POLICY = SHORTFALL_POLICY_BLOCK

# Reason recorded when the standard cost follows a lot change
LOT_CHANGE_COST_REASON = "Troca de lote (PEPS)"

# Stock level classification: below this fraction of the minimum is critical
CRITICAL_STOCK_FRACTION = Decimal("0.5")

# ============================================================================
# Production Orders
# ============================================================================

PRODUCTION_ORDER_PREFIX = "OP"
PRODUCTION_ORDER_NUMBER_WIDTH = 4

# ============================================================================
# Dispatch
# ============================================================================

DEFAULT_PALLET_COUNT = 1
PALLET_TOKEN_BYTES = 24
