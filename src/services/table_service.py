"""Table Service - opening and closing dining tables.

A table collects the orders of one sitting. Closing follows three rules:
- a table that never received an order is deleted
- a table whose orders are all billed (or voided) is closed
- a table with any order still in Open billing cannot be closed
"""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from src.models import Order, Table
from src.services.business_service import require_business
from src.services.database import session_scope
from src.services.exceptions import TableNotFound, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import BILLING_STATUS_OPEN, TABLE_STATUS_CLOSED
from src.utils.datetime_utils import utc_now
from src.utils.validators import sanitize_string, validate_required_string

logger = get_service_logger(__name__)


def open_table(
    business_id: int,
    table_reference: str,
    guests: int = 1,
    opened_by_user_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Open a table for a new sitting.

    Raises:
        ValidationError: If table_reference is blank or guests < 1
        BusinessNotFound: If business_id doesn't exist
    """
    if session is not None:
        return _open_table_impl(business_id, table_reference, guests, opened_by_user_id, session)
    with session_scope() as session:
        return _open_table_impl(business_id, table_reference, guests, opened_by_user_id, session)


def _open_table_impl(
    business_id: int,
    table_reference: str,
    guests: int,
    opened_by_user_id: Optional[int],
    session: Session,
) -> Dict[str, Any]:
    errors = []
    is_valid, error = validate_required_string(table_reference, "Table reference")
    if not is_valid:
        errors.append(error)
    if not isinstance(guests, int) or isinstance(guests, bool) or guests < 1:
        errors.append("Guests: Must be at least 1")
    if errors:
        raise ValidationError(errors)

    require_business(session, business_id)
    table = Table(
        business_id=business_id,
        table_reference=sanitize_string(table_reference),
        guests=guests,
        opened_by_user_id=opened_by_user_id,
    )
    session.add(table)
    session.flush()
    return table.to_dict()


def get_table(table_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get a table by ID, including its running totals.

    Raises:
        TableNotFound: If table_id doesn't exist
    """
    if session is not None:
        return _get_table_impl(table_id, session)
    with session_scope() as session:
        return _get_table_impl(table_id, session)


def _get_table_impl(table_id: int, session: Session) -> Dict[str, Any]:
    table = session.get(Table, table_id)
    if table is None:
        raise TableNotFound(table_id)
    return table.to_dict()


def close_table(
    table_id: int, closed_by_user_id: int, session: Optional[Session] = None
) -> Dict[str, Any]:
    """Close (or delete) a table at the end of a sitting.

    Returns:
        {"table_id": ..., "action": "deleted"} for a table without orders,
        otherwise {"table_id": ..., "action": "closed", "table": {...}}

    Raises:
        TableNotFound: If table_id doesn't exist
        ValidationError: If the table is already closed or has open orders
    """
    if session is not None:
        return _close_table_impl(table_id, closed_by_user_id, session)
    with session_scope() as session:
        return _close_table_impl(table_id, closed_by_user_id, session)


def _close_table_impl(table_id: int, closed_by_user_id: int, session: Session) -> Dict[str, Any]:
    table = session.get(Table, table_id)
    if table is None:
        raise TableNotFound(table_id)
    if table.status == TABLE_STATUS_CLOSED:
        raise ValidationError([f"Table {table_id} is already closed"])

    order_count = session.query(Order.id).filter(Order.table_id == table_id).count()
    if order_count == 0:
        session.delete(table)
        session.flush()
        log_operation(
            logger, operation="close_table", outcome="deleted", table_id=table_id
        )
        return {"table_id": table_id, "action": "deleted"}

    open_orders = (
        session.query(Order.id)
        .filter(Order.table_id == table_id, Order.billing_status == BILLING_STATUS_OPEN)
        .count()
    )
    if open_orders:
        raise ValidationError(
            [f"Table {table_id} has {open_orders} order(s) with open billing"]
        )

    table.status = TABLE_STATUS_CLOSED
    table.closed_by_user_id = closed_by_user_id
    table.closed_at = utc_now()
    session.flush()

    log_operation(
        logger,
        operation="close_table",
        outcome="closed",
        table_id=table_id,
        closed_by_user_id=closed_by_user_id,
    )
    return {"table_id": table_id, "action": "closed", "table": table.to_dict()}
