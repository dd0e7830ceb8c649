"""Service layer exception classes for the fulfillment core.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across production, stock and dispatch operations.

Exception Hierarchy:
    ServiceError (base)
    ├── NotFound
    │   ├── ProductNotFound
    │   ├── RecipeNotFound
    │   ├── RawMaterialNotFound
    │   ├── ProductionOrderNotFound
    │   ├── ProductionOrderItemNotFound
    │   ├── SalesOrderNotFound
    │   └── PalletNotFound
    ├── InvalidTransition
    ├── InsufficientStock
    ├── AlreadyConfirmed
    ├── ValidationError
    └── PersistenceFailure

Stock shortfalls and lot cost changes are normally reported as data
(see dto); InsufficientStock is raised only when the
shortfall policy blocks a transition.
"""

from typing import Any, List, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    pass


# =============================================================================
# Not Found
# =============================================================================


class NotFound(ServiceError):
    """Raised when a referenced entity does not exist.

    Args:
        entity: Human-readable entity name
        identifier: The identifier that was looked up
    """

    def __init__(self, entity: str, identifier: Any, message: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity} {identifier!r} not found")


class ProductNotFound(NotFound):
    """Raised when a product cannot be found by ID.

    Example:
        >>> raise ProductNotFound(123)
        ProductNotFound: Product 123 not found
    """

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__("Product", product_id)


class RecipeNotFound(NotFound):
    """Raised when a product has no recipe lines."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__("Product", product_id, f"Product {product_id} has no recipe lines")


class RawMaterialNotFound(NotFound):
    """Raised when a raw material cannot be found by ID."""

    def __init__(self, raw_material_id: int):
        self.raw_material_id = raw_material_id
        super().__init__("Raw material", raw_material_id)


class ProductionOrderNotFound(NotFound):
    """Raised when a production order cannot be found by ID."""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Production order", order_id)


class ProductionOrderItemNotFound(NotFound):
    """Raised when an item does not exist or does not belong to the given order.

    Example:
        >>> raise ProductionOrderItemNotFound(7, 42)
        ProductionOrderItemNotFound: Item 42 of production order 7 not found
    """

    def __init__(self, order_id: int, item_id: int):
        self.order_id = order_id
        self.item_id = item_id
        super().__init__(
            "Production order item",
            item_id,
            f"Item {item_id} of production order {order_id} not found",
        )


class SalesOrderNotFound(NotFound):
    """Raised when a sales order cannot be found by ID."""

    def __init__(self, sales_order_id: int):
        self.sales_order_id = sales_order_id
        super().__init__("Sales order", sales_order_id)


class PalletNotFound(NotFound):
    """Raised when no pallet matches a confirmation token.

    The token itself is not echoed in the message.
    """

    def __init__(self, token: str):
        self.token = token
        super().__init__("Pallet", token, "No pallet matches the given token")


# =============================================================================
# State machine and stock
# =============================================================================


class InvalidTransition(ServiceError):
    """Raised when a state machine rule would be violated.

    Args:
        entity: Entity kind (e.g. "production order item")
        identifier: Entity ID
        current_status: Status the entity is in
        target_status: Status that was requested
        reason: Human-readable explanation

    Example:
        >>> raise InvalidTransition("item", 3, "em_producao", "em_producao",
        ...                         "item already in status Em Produção")
    """

    def __init__(
        self,
        entity: str,
        identifier: Any,
        current_status: Optional[str],
        target_status: Optional[str],
        reason: str,
    ):
        self.entity = entity
        self.identifier = identifier
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(f"Cannot change {entity} {identifier}: {reason}")


class InsufficientStock(ServiceError):
    """Raised when the shortfall policy blocks a production start.

    Args:
        shortfalls: List of Shortfall values, one per raw material short
    """

    def __init__(self, shortfalls: List[Any]):
        self.shortfalls = list(shortfalls)
        details = "; ".join(
            f"{s.raw_material_name}: required {s.required}, missing {s.missing} {s.unit}"
            for s in self.shortfalls
        )
        super().__init__(f"Insufficient stock: {details}")


class AlreadyConfirmed(ServiceError):
    """Raised when a pallet that is already confirmed is confirmed again.

    Distinct from PalletNotFound so a client can tell a stale scan from an
    unknown token.
    """

    def __init__(self, pallet_id: int, pallet_number: int, confirmed_at: Any = None):
        self.pallet_id = pallet_id
        self.pallet_number = pallet_number
        self.confirmed_at = confirmed_at
        super().__init__(f"Pallet {pallet_number} (id {pallet_id}) was already confirmed")


class ValidationError(ServiceError):
    """Raised when input validation fails."""

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class PersistenceFailure(ServiceError):
    """Opaque wrapper for errors raised by the underlying store."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Persistence failure: {message}")
