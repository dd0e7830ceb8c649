"""Services package - Business logic layer for the fulfillment core.

This package contains all service modules that provide business logic
and database operations for production and dispatch.

Architecture:
- Services: Stateless functions organized by domain (recipe, lots, production, dispatch)
- Transactions: Managed via session_scope() context manager
- Concurrency: Per-entity in-process locks (locking) held through commit
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- recipe_service: Product -> raw material requirements
- lot_service: Stock lots, FIFO consumption, stock movements
- consumption_service: Recipe x quantity consumption and availability checks
- production_order_service: Production order and item lifecycle
- dispatch_service: Pallet batches and confirm-by-token delivery

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- dto: Value objects (alerts, shortfalls, consumption reports)
- workflow: Status transition tables and order status derivation
- locking: Keyed re-entrant locks
- logging_utils: Structured service logging
- unit_converter: Unit conversion utilities
"""

from . import (
    database,
    unit_converter,
    workflow,
    recipe_service,
    lot_service,
    consumption_service,
    dispatch_service,
    production_order_service,
)

from .dto import (
    AvailabilityLine,
    ConsumptionResult,
    LotChangeAlert,
    LotConsumption,
    ProductionConsumptionReport,
    RecipeRequirement,
    Shortfall,
)

from .exceptions import (
    ServiceError,
    NotFound,
    ProductNotFound,
    RecipeNotFound,
    RawMaterialNotFound,
    ProductionOrderNotFound,
    ProductionOrderItemNotFound,
    SalesOrderNotFound,
    PalletNotFound,
    InvalidTransition,
    InsufficientStock,
    AlreadyConfirmed,
    ValidationError,
    PersistenceFailure,
)

from .recipe_service import resolve_recipe, compute_requirements

from .lot_service import (
    receive_lot,
    consume,
    get_lots,
    get_stock_quantity,
    recompute_stock,
    classify_stock_level,
    get_stock_level,
    update_standard_cost,
    get_cost_history,
    get_movements,
)

from .consumption_service import consume_for_production, check_availability

from .workflow import (
    derive_order_status,
    can_edit_order,
    can_delete_order,
)

from .production_order_service import (
    create_production_order,
    get_production_order,
    list_production_orders,
    delete_production_order,
    get_allowed_transitions,
    start_item,
    finish_item,
    cancel_item,
    start_order,
    finish_order,
    cancel_order,
    set_completion_handoff,
)

from .dispatch_service import (
    create_pallets,
    confirm_pallet,
    list_pallets,
    get_pallet_summary,
    prepare_dispatch,
)

__all__ = [
    # Service modules
    "database",
    "unit_converter",
    "workflow",
    "recipe_service",
    "lot_service",
    "consumption_service",
    "dispatch_service",
    "production_order_service",
    # Value objects
    "AvailabilityLine",
    "ConsumptionResult",
    "LotChangeAlert",
    "LotConsumption",
    "ProductionConsumptionReport",
    "RecipeRequirement",
    "Shortfall",
    # Exceptions
    "ServiceError",
    "NotFound",
    "ProductNotFound",
    "RecipeNotFound",
    "RawMaterialNotFound",
    "ProductionOrderNotFound",
    "ProductionOrderItemNotFound",
    "SalesOrderNotFound",
    "PalletNotFound",
    "InvalidTransition",
    "InsufficientStock",
    "AlreadyConfirmed",
    "ValidationError",
    "PersistenceFailure",
    # Recipe
    "resolve_recipe",
    "compute_requirements",
    # Lots
    "receive_lot",
    "consume",
    "get_lots",
    "get_stock_quantity",
    "recompute_stock",
    "classify_stock_level",
    "get_stock_level",
    "update_standard_cost",
    "get_cost_history",
    "get_movements",
    # Consumption
    "consume_for_production",
    "check_availability",
    # Workflow
    "derive_order_status",
    "can_edit_order",
    "can_delete_order",
    # Production orders
    "create_production_order",
    "get_production_order",
    "list_production_orders",
    "delete_production_order",
    "get_allowed_transitions",
    "start_item",
    "finish_item",
    "cancel_item",
    "start_order",
    "finish_order",
    "cancel_order",
    "set_completion_handoff",
    # Dispatch
    "create_pallets",
    "confirm_pallet",
    "list_pallets",
    "get_pallet_summary",
    "prepare_dispatch",
]
