"""Services package - Business logic layer for the Back Office.

This package contains all service modules that provide business logic
and database operations for the application.

Architecture:
- Services: Stateless functions organized by domain (suppliers, costing,
  purchases, inventory, orders)
- Transactions: Managed via session_scope() context manager, or joined by
  passing session=
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- business_service: Business records and ownership checks
- supplier_service: Suppliers and the one-time-purchase supplier
- supplier_good_service: Supplier goods, ingredient resolution, dynamic counts
- business_good_service: Composite cost calculation and menu goods
- purchase_service: Purchase validation and recording
- inventory_service: Inventory cycles and purchase reconciliation
- order_service: Orders and stock mutation
- table_service: Table open/close

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- logging_utils: Structured operation logging
- unit_converter: Unit conversion utilities
"""

# Service modules
from . import (
    database,
    unit_converter,
    business_service,
    supplier_service,
    supplier_good_service,
    business_good_service,
    inventory_service,
    purchase_service,
    order_service,
    table_service,
)

# Exceptions
from .exceptions import (
    ServiceError,
    ValidationError,
    NotFoundError,
    ConflictError,
    ReconciliationError,
    StoreError,
)

__all__ = [
    # Modules
    "database",
    "unit_converter",
    "business_service",
    "supplier_service",
    "supplier_good_service",
    "business_good_service",
    "inventory_service",
    "purchase_service",
    "order_service",
    "table_service",
    # Exceptions
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ReconciliationError",
    "StoreError",
]
