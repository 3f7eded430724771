"""Service layer exception classes for the Back Office.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError          malformed input, rejected before any write
    ├── NotFoundError            missing record, no side effects
    │   ├── BusinessNotFound
    │   ├── SupplierNotFound
    │   ├── SupplierGoodNotFound
    │   ├── BusinessGoodNotFound
    │   ├── InventoryNotFound
    │   ├── OpenInventoryNotFound
    │   ├── PurchaseNotFound
    │   ├── TableNotFound
    │   └── OrderNotFound
    ├── ConflictError            uniqueness violation, rejected before any write
    │   ├── DuplicateReceipt
    │   ├── DuplicateName
    │   └── InventoryAlreadyOpen
    ├── ReconciliationError      secondary count update matched nothing
    └── StoreError               underlying database failure

ReconciliationError is warning-class: it is raised after the primary write
(a Purchase or an Order) has been persisted, and callers report it without
undoing that write.
"""

from typing import Iterable, List, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when input validation fails.

    Args:
        errors: List of human-readable problems (a single string is accepted)

    Example:
        >>> raise ValidationError(["Quantity purchased: Must be greater than zero"])
        ValidationError: Validation failed: Quantity purchased: Must be greater than zero
    """

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        error_msg = "; ".join(self.errors)
        super().__init__(f"Validation failed: {error_msg}")


class NotFoundError(ServiceError):
    """Base class for lookups that resolve to nothing."""

    pass


class BusinessNotFound(NotFoundError):
    """Raised when a business cannot be found by ID."""

    def __init__(self, business_id: int):
        self.business_id = business_id
        super().__init__(f"Business with ID {business_id} not found")


class SupplierNotFound(NotFoundError):
    """Raised when a supplier cannot be found within a business.

    Example:
        >>> raise SupplierNotFound(123)
        SupplierNotFound: Supplier with ID 123 not found
    """

    def __init__(self, supplier_id: int):
        self.supplier_id = supplier_id
        super().__init__(f"Supplier with ID {supplier_id} not found")


class SupplierGoodNotFound(NotFoundError):
    """Raised when a supplier good cannot be found within a business."""

    def __init__(self, supplier_good_id, business_id: Optional[int] = None):
        self.supplier_good_id = supplier_good_id
        self.business_id = business_id
        scope = f" for business {business_id}" if business_id is not None else ""
        super().__init__(f"Supplier good with ID {supplier_good_id} not found{scope}")


class BusinessGoodNotFound(NotFoundError):
    """Raised when a business good cannot be found."""

    def __init__(self, business_good_id):
        self.business_good_id = business_good_id
        super().__init__(f"Business good with ID {business_good_id} not found")


class InventoryNotFound(NotFoundError):
    """Raised when an inventory cannot be found by ID."""

    def __init__(self, inventory_id: int):
        self.inventory_id = inventory_id
        super().__init__(f"Inventory with ID {inventory_id} not found")


class OpenInventoryNotFound(NotFoundError):
    """Raised when a business has no open inventory to reconcile against.

    Inventories are never created implicitly; a count cycle has to be
    started explicitly with open_inventory().
    """

    def __init__(self, business_id: int):
        self.business_id = business_id
        super().__init__(f"No open inventory for business {business_id}")


class PurchaseNotFound(NotFoundError):
    """Raised when a purchase record cannot be found by ID."""

    def __init__(self, purchase_id: int):
        self.purchase_id = purchase_id
        super().__init__(f"Purchase with ID {purchase_id} not found")


class TableNotFound(NotFoundError):
    """Raised when a table is missing, or closed when an open one is required."""

    def __init__(self, table_id: int, closed: bool = False):
        self.table_id = table_id
        self.closed = closed
        state = "is closed" if closed else "not found"
        super().__init__(f"Table with ID {table_id} {state}")


class OrderNotFound(NotFoundError):
    """Raised when an order cannot be found by ID."""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order with ID {order_id} not found")


class ConflictError(ServiceError):
    """Base class for writes rejected by a uniqueness rule."""

    pass


class DuplicateReceipt(ConflictError):
    """Raised when a receipt id is reused for the same business and supplier."""

    def __init__(self, receipt_id: str, business_id: int, supplier_id: int):
        self.receipt_id = receipt_id
        self.business_id = business_id
        self.supplier_id = supplier_id
        super().__init__(
            f"Receipt '{receipt_id}' already exists for business {business_id} "
            f"and supplier {supplier_id}"
        )


class DuplicateName(ConflictError):
    """Raised when a name must be unique within a business and is not."""

    def __init__(self, entity: str, name: str):
        self.entity = entity
        self.name = name
        super().__init__(f"{entity} '{name}' already exists")


class InventoryAlreadyOpen(ConflictError):
    """Raised when opening an inventory while another one is still open."""

    def __init__(self, business_id: int, inventory_id: Optional[int] = None):
        self.business_id = business_id
        self.inventory_id = inventory_id
        super().__init__(
            f"Business {business_id} already has an open inventory (ID {inventory_id})"
        )


class ReconciliationError(ServiceError):
    """Raised when a count update after a persisted write modified nothing.

    Args:
        message: Description of the failure
        unmatched_ids: Supplier good ids that could not be applied
    """

    def __init__(self, message: str, unmatched_ids: Iterable[int] = ()):
        self.unmatched_ids = list(unmatched_ids)
        super().__init__(message)


class StoreError(ServiceError):
    """Raised when a database operation fails.

    Args:
        message: What the service was doing
        original_error: The underlying SQLAlchemy exception
    """

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
