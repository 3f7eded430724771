"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across purchasing, inventory, costing
and order operations.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="create_purchase",
        outcome="success",
        purchase_id=123,
        business_id=4,
    )

    # Log a secondary failure after a persisted write
    log_operation(
        logger,
        operation="reconcile_purchase_items",
        outcome="partial",
        level=logging.WARNING,
        business_id=4,
        unmatched_supplier_good_ids=[17],
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "backoffice.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named under the 'backoffice.services' prefix.

    Example:
        >>> logger = get_service_logger("src.services.inventory_service")
        >>> logger.name
        'backoffice.services.inventory_service'
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

    The message is "<operation>: <outcome>"; the operation, outcome and
    every context field are passed through 'extra' for structured handlers.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "create_purchase", "close_inventory")
        outcome: Outcome description (e.g., "success", "partial", "error")
        level: Log level (default: INFO)
        **context: Additional context fields (entity IDs, error details, etc.)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
