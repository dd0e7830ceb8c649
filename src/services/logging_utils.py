"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across stock consumption, production
transitions and dispatch confirmation.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="start_item",
        outcome="success",
        production_order_id=12,
        item_id=31,
    )

    # Log a lot cost change
    log_operation(
        logger,
        operation="consume",
        outcome="lot_cost_changed",
        level=logging.WARNING,
        raw_material_id=4,
        difference_percent="60.00",
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "fulfillment.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance with the 'fulfillment.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'fulfillment.services.lot_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging
    and appended to the message so plain-text handlers show it too.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "start_item", "confirm_pallet")
        outcome: Outcome description (e.g., "success", "shortfall", "error")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (entity IDs, error details, etc.)
            Keys must not clash with LogRecord attributes such as
            "name", "message" or "msg".

    Example:
        >>> log_operation(
        ...     logger,
        ...     operation="confirm_pallet",
        ...     outcome="already_confirmed",
        ...     level=logging.WARNING,
        ...     pallet_id=9,
        ... )
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    if context:
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        logger.log(level, f"{operation}: {outcome} ({details})", extra=extra)
    else:
        logger.log(level, f"{operation}: {outcome}", extra=extra)
