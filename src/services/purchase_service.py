"""Purchase Service - recording supplier purchases.

This module provides business logic for purchases:
- validate_purchase_items: shape check of purchase lines before any write
- create_purchase: record a purchase, then reconcile it into the open
  inventory
- get_purchase / get_purchases: read recorded purchases

A purchase is either itemized (bought from a catalog supplier, every line
references a supplier good) or one-time (ad-hoc, recorded against the
business's "One Time Purchase" supplier, lines are free text).

create_purchase works in two phases. The purchase is committed first;
reconciliation of an itemized purchase then runs on its own. A failed
reconciliation is reported in PurchaseResult.reconciliation_error and logged,
but never removes the purchase: inventory_service.reconcile_purchase()
replays it once an inventory is open.

Example Usage:
    >>> from src.services.purchase_service import create_purchase
    >>> result = create_purchase(
    ...     business_id=1,
    ...     supplier_id=2,
    ...     purchased_by_user_id=7,
    ...     total_amount="60.00",
    ...     purchase_items=[
    ...         {"supplier_good_id": 5, "quantity_purchased": 10, "purchase_price": "60.00"},
    ...     ],
    ... )
    >>> result.reconciliation.matched_ids
    [5]
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.models import Purchase, PurchaseItem, SupplierGood
from src.services.business_service import require_business
from src.services.database import session_scope
from src.services.exceptions import (
    DuplicateReceipt,
    PurchaseNotFound,
    ServiceError,
    StoreError,
    SupplierGoodNotFound,
    ValidationError,
)
from src.services.inventory_service import ReconciliationResult, reconcile_purchase
from src.services.logging_utils import get_service_logger, log_operation
from src.services.supplier_service import (
    get_or_create_one_time_purchase_supplier,
    require_supplier,
)
from src.utils.constants import ONE_TIME_PURCHASE_SUPPLIER_NAME
from src.utils.datetime_utils import receipt_timestamp
from src.utils.validators import (
    sanitize_string,
    to_decimal,
    validate_positive_number,
    validate_reference_id,
)

logger = get_service_logger(__name__)


@dataclass
class PurchaseResult:
    """A recorded purchase and the outcome of its reconciliation.

    reconciliation is None for one-time purchases and when reconciliation
    failed; in the latter case reconciliation_error holds the error.
    """

    purchase: Dict[str, Any]
    reconciliation: Optional[ReconciliationResult] = None
    reconciliation_error: Optional[ServiceError] = None

    @property
    def fully_reconciled(self) -> bool:
        return (
            self.reconciliation is not None
            and self.reconciliation_error is None
            and not self.reconciliation.is_partial
        )


# ============================================================================
# Validation
# ============================================================================


def validate_purchase_items(items: Any, one_time_purchase: bool) -> Tuple[bool, str]:
    """Validate purchase lines before anything is written.

    Args:
        items: Purchase lines (dicts with supplier_good_id, quantity_purchased,
            purchase_price)
        one_time_purchase: True for ad-hoc purchases, whose lines need no
            supplier good reference

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(items, (list, tuple)) or not items:
        return False, "Purchase items: Must be a non-empty list"

    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            return False, f"Purchase item {index}: Must be an object"

        if not one_time_purchase:
            is_valid, error = validate_reference_id(
                item.get("supplier_good_id"), f"Purchase item {index} supplier good"
            )
            if not is_valid:
                return False, error

        is_valid, error = validate_positive_number(
            item.get("quantity_purchased"), f"Purchase item {index} quantity purchased"
        )
        if not is_valid:
            return False, error

        is_valid, error = validate_positive_number(
            item.get("purchase_price"), f"Purchase item {index} purchase price"
        )
        if not is_valid:
            return False, error

    return True, ""


# ============================================================================
# Create
# ============================================================================


def create_purchase(
    business_id: int,
    supplier_id: Union[int, str],
    purchased_by_user_id: int,
    total_amount: Any,
    purchase_items: List[Dict[str, Any]],
    purchase_date: Optional[date] = None,
    receipt_id: Optional[str] = None,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> PurchaseResult:
    """Record a purchase and reconcile it into the open inventory.

    Args:
        business_id: Purchasing business
        supplier_id: Catalog supplier id, or "One Time Purchase" for an
            ad-hoc purchase
        purchased_by_user_id: User who made the purchase
        total_amount: Receipt total (must be > 0)
        purchase_items: Lines (see validate_purchase_items)
        purchase_date: Defaults to today
        receipt_id: Supplier receipt number; defaults to a timestamp
        notes: Optional notes
        session: Optional database session. When given, both phases run in
            it and the caller owns the transaction.

    Returns:
        PurchaseResult

    Raises:
        ValidationError: If fields or lines are invalid
        BusinessNotFound: If business_id doesn't exist
        SupplierNotFound: If the supplier is not in the business
        SupplierGoodNotFound: If a line's supplier good is not in the business
        DuplicateReceipt: If the receipt is already recorded for the supplier
        StoreError: If the database write fails
    """
    one_time_purchase = supplier_id == ONE_TIME_PURCHASE_SUPPLIER_NAME

    errors = []
    for value, label in (
        (business_id, "Business"),
        (purchased_by_user_id, "Purchased by user"),
    ):
        is_valid, error = validate_reference_id(value, label)
        if not is_valid:
            errors.append(error)
    if not one_time_purchase:
        is_valid, error = validate_reference_id(supplier_id, "Supplier")
        if not is_valid:
            errors.append(error)
    is_valid, error = validate_positive_number(total_amount, "Total amount")
    if not is_valid:
        errors.append(error)
    is_valid, error = validate_purchase_items(purchase_items, one_time_purchase)
    if not is_valid:
        errors.append(error)
    if receipt_id is not None and not isinstance(receipt_id, str):
        errors.append("Receipt id: Must be text")
    if errors:
        raise ValidationError(errors)

    args = (
        business_id,
        None if one_time_purchase else supplier_id,
        purchased_by_user_id,
        total_amount,
        purchase_items,
        purchase_date,
        receipt_id,
        notes,
    )

    if session is not None:
        purchase = _record_purchase(*args, session=session)
        return _reconcile_recorded(purchase, session)

    with session_scope() as session:
        purchase = _record_purchase(*args, session=session)
    if purchase["one_time_purchase"]:
        return PurchaseResult(purchase=purchase)
    try:
        with session_scope() as session:
            return _reconcile_recorded(purchase, session)
    except SQLAlchemyError as e:
        return _reconciliation_failed(purchase, StoreError("Reconciliation failed", e))


def _find_receipt_purchase_id(
    session: Session, business_id: int, supplier_id: int, receipt_id: str
) -> Optional[int]:
    row = (
        session.query(Purchase.id)
        .filter(
            Purchase.business_id == business_id,
            Purchase.supplier_id == supplier_id,
            Purchase.receipt_id == receipt_id,
        )
        .first()
    )
    return row[0] if row else None


def _record_purchase(
    business_id: int,
    supplier_id: Optional[int],
    purchased_by_user_id: int,
    total_amount: Any,
    purchase_items: List[Dict[str, Any]],
    purchase_date: Optional[date],
    receipt_id: Optional[str],
    notes: Optional[str],
    session: Session,
) -> Dict[str, Any]:
    """Phase one: validate references and persist the purchase."""
    require_business(session, business_id)

    if supplier_id is None:
        supplier_id = get_or_create_one_time_purchase_supplier(business_id, session=session)
        one_time_purchase = True
    else:
        supplier = require_supplier(session, business_id, supplier_id)
        one_time_purchase = supplier.is_one_time_purchase

    if not one_time_purchase:
        ids = {item["supplier_good_id"] for item in purchase_items}
        found = {
            row[0]
            for row in session.query(SupplierGood.id)
            .filter(SupplierGood.id.in_(ids), SupplierGood.business_id == business_id)
            .all()
        }
        missing = sorted(ids - found)
        if missing:
            raise SupplierGoodNotFound(missing[0], business_id)

    receipt_id = sanitize_string(receipt_id) or receipt_timestamp()
    if _find_receipt_purchase_id(session, business_id, supplier_id, receipt_id) is not None:
        raise DuplicateReceipt(receipt_id, business_id, supplier_id)

    purchase = Purchase(
        business_id=business_id,
        supplier_id=supplier_id,
        purchased_by_user_id=purchased_by_user_id,
        purchase_date=purchase_date or date.today(),
        receipt_id=receipt_id,
        total_amount=to_decimal(total_amount),
        one_time_purchase=one_time_purchase,
        notes=notes,
    )
    purchase.purchase_items = [
        PurchaseItem(
            supplier_good_id=None if one_time_purchase else item.get("supplier_good_id"),
            description=sanitize_string(item.get("description")),
            quantity_purchased=to_decimal(item["quantity_purchased"]),
            purchase_price=to_decimal(item["purchase_price"]),
        )
        for item in purchase_items
    ]

    try:
        with session.begin_nested():
            session.add(purchase)
            session.flush()
    except IntegrityError as e:
        # Same receipt committed between the check and the insert
        if _find_receipt_purchase_id(session, business_id, supplier_id, receipt_id) is not None:
            raise DuplicateReceipt(receipt_id, business_id, supplier_id)
        raise StoreError(f"Failed to record purchase: {e}", original_error=e)
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to record purchase: {e}", original_error=e)

    log_operation(
        logger,
        operation="create_purchase",
        outcome="success",
        purchase_id=purchase.id,
        business_id=business_id,
        supplier_id=supplier_id,
        one_time_purchase=one_time_purchase,
        item_count=len(purchase.purchase_items),
    )
    return purchase.to_dict()


def _reconciliation_failed(purchase: Dict[str, Any], error: ServiceError) -> PurchaseResult:
    log_operation(
        logger,
        operation="create_purchase",
        outcome="reconciliation_failed",
        level=logging.WARNING,
        purchase_id=purchase["id"],
        business_id=purchase["business_id"],
        error=str(error),
    )
    return PurchaseResult(purchase=purchase, reconciliation_error=error)


def _reconcile_recorded(purchase: Dict[str, Any], session: Session) -> PurchaseResult:
    """Phase two: reconcile a recorded purchase, capturing failures."""
    if purchase["one_time_purchase"]:
        return PurchaseResult(purchase=purchase)
    try:
        reconciliation = reconcile_purchase(purchase["id"], session=session)
    except ServiceError as e:
        return _reconciliation_failed(purchase, e)
    return PurchaseResult(purchase=purchase, reconciliation=reconciliation)


# ============================================================================
# Read
# ============================================================================


def get_purchase(purchase_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get a purchase with its lines.

    Raises:
        PurchaseNotFound: If purchase_id doesn't exist
    """
    if session is not None:
        return _get_purchase_impl(purchase_id, session)
    with session_scope() as session:
        return _get_purchase_impl(purchase_id, session)


def _get_purchase_impl(purchase_id: int, session: Session) -> Dict[str, Any]:
    purchase = session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFound(purchase_id)
    return purchase.to_dict()


def get_purchases(
    business_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """Get a business's purchases, newest first, optionally by date range.

    Raises:
        ValidationError: If start_date is after end_date
    """
    if start_date and end_date and start_date > end_date:
        raise ValidationError(["Start date must be on or before end date"])
    if session is not None:
        return _get_purchases_impl(business_id, start_date, end_date, session)
    with session_scope() as session:
        return _get_purchases_impl(business_id, start_date, end_date, session)


def _get_purchases_impl(
    business_id: int,
    start_date: Optional[date],
    end_date: Optional[date],
    session: Session,
) -> List[Dict[str, Any]]:
    query = session.query(Purchase).filter(Purchase.business_id == business_id)
    if start_date:
        query = query.filter(Purchase.purchase_date >= start_date)
    if end_date:
        query = query.filter(Purchase.purchase_date <= end_date)
    purchases = query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).all()
    return [p.to_dict() for p in purchases]
