"""Supplier Service - suppliers and the one-time-purchase sentinel.

This module provides business logic for managing suppliers, including the
lazily created per-business "One Time Purchase" supplier that ad-hoc
purchases are recorded against.

All functions follow the session pattern: pass a session to join the
caller's transaction, or omit it to run in a fresh session_scope().

Key Features:
- Create/read suppliers scoped by business
- Idempotent get-or-create of the one-time-purchase sentinel, guarded by a
  partial unique index so concurrent first calls cannot leave duplicates

Example Usage:
    >>> from src.services.supplier_service import (
    ...     create_supplier,
    ...     get_or_create_one_time_purchase_supplier,
    ... )
    >>> supplier = create_supplier(business_id=1, trade_name="Metro Cash & Carry")
    >>> sentinel_id = get_or_create_one_time_purchase_supplier(business_id=1)
    >>> sentinel_id == get_or_create_one_time_purchase_supplier(business_id=1)
    True
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models import Supplier
from src.services.business_service import require_business
from src.services.database import session_scope
from src.services.exceptions import SupplierNotFound, StoreError, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import ONE_TIME_PURCHASE_SUPPLIER_NAME
from src.utils.validators import sanitize_string

logger = get_service_logger(__name__)


def create_supplier(
    business_id: int,
    trade_name: str,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a new supplier for a business.

    Args:
        business_id: Owning business
        trade_name: Supplier trade name (required)
        notes: Additional notes (optional)
        session: Optional database session for transactional atomicity

    Returns:
        Dict[str, Any]: Created supplier as dictionary

    Raises:
        BusinessNotFound: If business_id doesn't exist
        ValidationError: If trade_name is blank or is the reserved sentinel name
    """
    if session is not None:
        return _create_supplier_impl(business_id, trade_name, notes, session)
    with session_scope() as session:
        return _create_supplier_impl(business_id, trade_name, notes, session)


def _create_supplier_impl(
    business_id: int,
    trade_name: str,
    notes: Optional[str],
    session: Session,
) -> Dict[str, Any]:
    """Implementation of create_supplier."""
    clean_name = sanitize_string(trade_name)
    if clean_name is None:
        raise ValidationError(["Trade name: This field is required"])
    if clean_name == ONE_TIME_PURCHASE_SUPPLIER_NAME:
        raise ValidationError(
            [f"Trade name: '{ONE_TIME_PURCHASE_SUPPLIER_NAME}' is reserved for ad-hoc purchases"]
        )

    require_business(session, business_id)

    supplier = Supplier(business_id=business_id, trade_name=clean_name, notes=notes)
    session.add(supplier)
    session.flush()
    return supplier.to_dict()


def get_supplier(supplier_id: int, session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
    """Get supplier by ID.

    Returns:
        Dict[str, Any]: Supplier data as dictionary, or None if not found
    """
    if session is not None:
        return _get_supplier_impl(supplier_id, session)
    with session_scope() as session:
        return _get_supplier_impl(supplier_id, session)


def _get_supplier_impl(supplier_id: int, session: Session) -> Optional[Dict[str, Any]]:
    """Implementation of get_supplier."""
    supplier = session.get(Supplier, supplier_id)
    return supplier.to_dict() if supplier else None


def get_suppliers(
    business_id: int,
    include_inactive: bool = False,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """Get a business's suppliers, sorted by trade name.

    The one-time-purchase sentinel is included; callers building a supplier
    picker can filter on is_one_time_purchase.
    """
    if session is not None:
        return _get_suppliers_impl(business_id, include_inactive, session)
    with session_scope() as session:
        return _get_suppliers_impl(business_id, include_inactive, session)


def _get_suppliers_impl(
    business_id: int, include_inactive: bool, session: Session
) -> List[Dict[str, Any]]:
    query = session.query(Supplier).filter(Supplier.business_id == business_id)
    if not include_inactive:
        query = query.filter(Supplier.is_active == True)  # noqa: E712
    return [s.to_dict() for s in query.order_by(Supplier.trade_name).all()]


def require_supplier(session: Session, business_id: int, supplier_id: int) -> Supplier:
    """Load a supplier of the given business or raise SupplierNotFound."""
    supplier = (
        session.query(Supplier)
        .filter(Supplier.id == supplier_id, Supplier.business_id == business_id)
        .first()
    )
    if supplier is None:
        raise SupplierNotFound(supplier_id)
    return supplier


def get_or_create_one_time_purchase_supplier(
    business_id: int, session: Optional[Session] = None
) -> int:
    """Return the business's one-time-purchase supplier id, creating it if absent.

    Safe to call repeatedly: the sentinel is created at most once. When two
    first calls race, the partial unique index rejects the second insert and
    the loser re-reads the winner's row.

    Args:
        business_id: Business the sentinel belongs to
        session: Optional database session

    Returns:
        int: Sentinel supplier id

    Raises:
        BusinessNotFound: If business_id doesn't exist
        StoreError: If the insert failed and no sentinel exists afterwards
    """
    if session is not None:
        return _get_or_create_one_time_purchase_supplier_impl(business_id, session)
    with session_scope() as session:
        return _get_or_create_one_time_purchase_supplier_impl(business_id, session)


def _find_one_time_purchase_supplier_id(session: Session, business_id: int) -> Optional[int]:
    row = (
        session.query(Supplier.id)
        .filter(
            Supplier.business_id == business_id,
            Supplier.is_one_time_purchase == True,  # noqa: E712
        )
        .first()
    )
    return row[0] if row else None


def _get_or_create_one_time_purchase_supplier_impl(business_id: int, session: Session) -> int:
    """Implementation of get_or_create_one_time_purchase_supplier."""
    require_business(session, business_id)

    supplier_id = _find_one_time_purchase_supplier_id(session, business_id)
    if supplier_id is not None:
        return supplier_id

    supplier = Supplier(
        business_id=business_id,
        trade_name=ONE_TIME_PURCHASE_SUPPLIER_NAME,
        notes="Created automatically for purchases without a catalog supplier",
        is_one_time_purchase=True,
    )
    try:
        with session.begin_nested():
            session.add(supplier)
            session.flush()
    except IntegrityError as e:
        # Lost the race: another request created the sentinel first
        supplier_id = _find_one_time_purchase_supplier_id(session, business_id)
        if supplier_id is None:
            raise StoreError("Failed to create one-time-purchase supplier", original_error=e)
        log_operation(
            logger,
            operation="get_or_create_one_time_purchase_supplier",
            outcome="race_resolved",
            level=logging.DEBUG,
            business_id=business_id,
            supplier_id=supplier_id,
        )
        return supplier_id

    log_operation(
        logger,
        operation="get_or_create_one_time_purchase_supplier",
        outcome="created",
        business_id=business_id,
        supplier_id=supplier.id,
    )
    return supplier.id
