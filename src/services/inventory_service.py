"""Inventory Service - count cycles and purchase reconciliation.

This module provides business logic for the per-business inventory cycle:
- open_inventory: start a cycle, seeding each supplier good's system count
  from its current dynamic count
- reconcile_purchase_items / reconcile_purchase: raise system counts, and
  the supplier goods' dynamic counts, by purchased quantities
- apply_sales_to_open_inventory: lower system counts by order consumption
- close_inventory: record physical counts, deviations, and reset the
  supplier goods' dynamic counts

All count changes are SQL-side increments
(dynamic_system_count = dynamic_system_count + qty) so concurrent purchases
against the same good never lose an update.

Reconciliation runs after its purchase is committed. Failures surface as
OpenInventoryNotFound or ReconciliationError for the caller to report; the
purchase stays recorded and reconcile_purchase() can replay it later. Lines
of a replayed purchase are claimed first, so each line is applied to an
inventory exactly once.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models import Inventory, InventoryGood, Purchase, PurchaseItem, SupplierGood
from src.services.business_service import require_business
from src.services.database import session_scope
from src.services.exceptions import (
    InventoryAlreadyOpen,
    InventoryNotFound,
    OpenInventoryNotFound,
    PurchaseNotFound,
    ReconciliationError,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.datetime_utils import utc_now
from src.utils.validators import (
    to_decimal,
    validate_non_negative_number,
    validate_positive_number,
)

logger = get_service_logger(__name__)


@dataclass
class ReconciliationResult:
    """Outcome of applying purchase lines to the open inventory.

    Attributes:
        inventory_id: Inventory the lines were applied to
        matched_ids: Supplier goods whose count was raised
        unmatched_ids: Supplier goods absent from the inventory snapshot
        already_reconciled_ids: Lines skipped on replay, applied earlier
        skipped: True when nothing was eligible (one-time purchases)
    """

    inventory_id: Optional[int] = None
    matched_ids: List[int] = field(default_factory=list)
    unmatched_ids: List[int] = field(default_factory=list)
    already_reconciled_ids: List[int] = field(default_factory=list)
    skipped: bool = False

    @property
    def is_partial(self) -> bool:
        return bool(self.unmatched_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inventory_id": self.inventory_id,
            "matched_ids": list(self.matched_ids),
            "unmatched_ids": list(self.unmatched_ids),
            "already_reconciled_ids": list(self.already_reconciled_ids),
            "skipped": self.skipped,
        }


# ============================================================================
# Lifecycle
# ============================================================================


def find_open_inventory_id(session: Session, business_id: int) -> Optional[int]:
    """Id of the business's open inventory, or None."""
    row = (
        session.query(Inventory.id)
        .filter(
            Inventory.business_id == business_id,
            Inventory.set_final_count == False,  # noqa: E712
        )
        .first()
    )
    return row[0] if row else None


def open_inventory(
    business_id: int, notes: Optional[str] = None, session: Optional[Session] = None
) -> Dict[str, Any]:
    """Open a new inventory cycle for a business.

    Every supplier good in use gets an inventory line whose system count
    starts at the good's current dynamic count.

    Args:
        business_id: Business to open the cycle for
        notes: Optional notes
        session: Optional database session

    Returns:
        Dict[str, Any]: The inventory with its lines

    Raises:
        BusinessNotFound: If business_id doesn't exist
        InventoryAlreadyOpen: If the business already has an open inventory
    """
    if session is not None:
        return _open_inventory_impl(business_id, notes, session)
    with session_scope() as session:
        return _open_inventory_impl(business_id, notes, session)


def _open_inventory_impl(
    business_id: int, notes: Optional[str], session: Session
) -> Dict[str, Any]:
    require_business(session, business_id)

    existing_id = find_open_inventory_id(session, business_id)
    if existing_id is not None:
        raise InventoryAlreadyOpen(business_id, existing_id)

    goods = (
        session.query(SupplierGood)
        .filter(
            SupplierGood.business_id == business_id,
            SupplierGood.currently_in_use == True,  # noqa: E712
        )
        .order_by(SupplierGood.id)
        .all()
    )
    inventory = Inventory(business_id=business_id, notes=notes)
    inventory.inventory_goods = [
        InventoryGood(
            supplier_good_id=good.id,
            dynamic_system_count=good.dynamic_count_from_last_inventory or Decimal("0"),
        )
        for good in goods
    ]

    try:
        with session.begin_nested():
            session.add(inventory)
            session.flush()
    except IntegrityError:
        # Another request opened one between the check and the insert
        raise InventoryAlreadyOpen(business_id, find_open_inventory_id(session, business_id))

    log_operation(
        logger,
        operation="open_inventory",
        outcome="success",
        business_id=business_id,
        inventory_id=inventory.id,
        line_count=len(goods),
    )
    return _inventory_to_dict(inventory)


def _inventory_to_dict(inventory: Inventory) -> Dict[str, Any]:
    result = inventory.to_dict()
    result["inventory_goods"] = [line.to_dict() for line in inventory.inventory_goods]
    return result


def get_open_inventory(business_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get the business's open inventory with its lines.

    Raises:
        OpenInventoryNotFound: If no inventory is open
    """
    if session is not None:
        return _get_open_inventory_impl(business_id, session)
    with session_scope() as session:
        return _get_open_inventory_impl(business_id, session)


def _get_open_inventory_impl(business_id: int, session: Session) -> Dict[str, Any]:
    inventory_id = find_open_inventory_id(session, business_id)
    if inventory_id is None:
        raise OpenInventoryNotFound(business_id)
    return _inventory_to_dict(session.get(Inventory, inventory_id))


def get_inventory(inventory_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get an inventory (open or closed) with its lines.

    Raises:
        InventoryNotFound: If inventory_id doesn't exist
    """
    if session is not None:
        return _inventory_to_dict(_require_inventory(session, inventory_id))
    with session_scope() as session:
        return _inventory_to_dict(_require_inventory(session, inventory_id))


def _require_inventory(session: Session, inventory_id: int) -> Inventory:
    inventory = session.get(Inventory, inventory_id)
    if inventory is None:
        raise InventoryNotFound(inventory_id)
    return inventory


def close_inventory(
    inventory_id: int,
    counts: Mapping[int, Any],
    finalized_by_user_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Finalize an inventory with physical counts.

    For each counted supplier good the physical count and the deviation
    ((system - physical) / system * 100) are recorded, and the good's dynamic
    count is reset to the physical count. Goods left uncounted keep their
    dynamic count. The inventory is closed and never reopened.

    Args:
        inventory_id: Open inventory to finalize
        counts: Physical count per supplier good id
        finalized_by_user_id: User entering the counts
        session: Optional database session

    Returns:
        Dict[str, Any]: The closed inventory with its lines

    Raises:
        InventoryNotFound: If inventory_id doesn't exist
        ValidationError: If the inventory is closed, a count is invalid, or a
            counted good is not part of the inventory
    """
    if session is not None:
        return _close_inventory_impl(inventory_id, counts, finalized_by_user_id, session)
    with session_scope() as session:
        return _close_inventory_impl(inventory_id, counts, finalized_by_user_id, session)


def _deviation_percent(system_count: Decimal, physical_count: Decimal) -> Optional[Decimal]:
    if not system_count:
        return None
    return (system_count - physical_count) / system_count * 100


def _close_inventory_impl(
    inventory_id: int,
    counts: Mapping[int, Any],
    finalized_by_user_id: Optional[int],
    session: Session,
) -> Dict[str, Any]:
    inventory = _require_inventory(session, inventory_id)
    if not inventory.is_open:
        raise ValidationError([f"Inventory {inventory_id} is closed"])

    lines = {line.supplier_good_id: line for line in inventory.inventory_goods}
    errors = []
    for supplier_good_id, count in counts.items():
        if supplier_good_id not in lines:
            errors.append(f"Supplier good {supplier_good_id}: Not part of inventory {inventory_id}")
            continue
        is_valid, error = validate_non_negative_number(count, f"Count for {supplier_good_id}")
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    now = utc_now()
    for supplier_good_id, count in counts.items():
        physical = to_decimal(count)
        line = lines[supplier_good_id]
        line.current_count_quantity = physical
        line.deviation_percent = _deviation_percent(line.dynamic_system_count, physical)
        session.execute(
            update(SupplierGood)
            .where(SupplierGood.id == supplier_good_id)
            .values(
                dynamic_count_from_last_inventory=physical,
                last_inventory_count_date=now,
            )
            .execution_options(synchronize_session=False)
        )

    inventory.set_final_count = True
    inventory.finalized_at = now
    inventory.finalized_by_user_id = finalized_by_user_id
    session.flush()

    log_operation(
        logger,
        operation="close_inventory",
        outcome="success",
        inventory_id=inventory_id,
        business_id=inventory.business_id,
        counted=len(counts),
        uncounted=len(lines) - len(counts),
    )
    return _inventory_to_dict(inventory)


# ============================================================================
# Reconciliation
# ============================================================================


def _increment_inventory_good(
    session: Session, inventory_id: int, supplier_good_id: int, quantity: Decimal
) -> bool:
    result = session.execute(
        update(InventoryGood)
        .where(
            InventoryGood.inventory_id == inventory_id,
            InventoryGood.supplier_good_id == supplier_good_id,
        )
        .values(dynamic_system_count=InventoryGood.dynamic_system_count + quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def _receive_stock(
    session: Session,
    business_id: int,
    inventory_id: int,
    supplier_good_id: int,
    quantity: Decimal,
) -> bool:
    """Raise both the inventory line and the supplier good's dynamic count.

    The supplier good only moves when the inventory line matched, so both
    counts carry the same deliveries.
    """
    if not _increment_inventory_good(session, inventory_id, supplier_good_id, quantity):
        return False
    session.execute(
        update(SupplierGood)
        .where(
            SupplierGood.id == supplier_good_id,
            SupplierGood.business_id == business_id,
        )
        .values(
            dynamic_count_from_last_inventory=(
                SupplierGood.dynamic_count_from_last_inventory + quantity
            )
        )
        .execution_options(synchronize_session=False)
    )
    return True


def apply_sales_to_open_inventory(
    session: Session, business_id: int, deltas: Mapping[int, Decimal]
) -> List[int]:
    """Add signed stock deltas to the open inventory's system counts.

    Order consumption moves the open cycle's counts along with the supplier
    goods' dynamic counts, so a later close_inventory() measures deviation
    against sales as well as purchases. Without an open inventory nothing is
    written.

    Returns:
        Supplier good ids whose inventory line was updated
    """
    inventory_id = find_open_inventory_id(session, business_id)
    if inventory_id is None:
        return []
    updated = [
        supplier_good_id
        for supplier_good_id, delta in deltas.items()
        if delta and _increment_inventory_good(session, inventory_id, supplier_good_id, delta)
    ]
    session.expire_all()
    return updated


def _finish_reconciliation(
    operation: str, business_id: int, result: ReconciliationResult
) -> ReconciliationResult:
    # A replay whose lines were all applied earlier is not a failure
    if not result.matched_ids and not result.already_reconciled_ids:
        log_operation(
            logger,
            operation=operation,
            outcome="failed",
            level=logging.WARNING,
            business_id=business_id,
            inventory_id=result.inventory_id,
            unmatched_supplier_good_ids=result.unmatched_ids,
        )
        raise ReconciliationError(
            "Inventory not found or update failed", unmatched_ids=result.unmatched_ids
        )

    if result.unmatched_ids:
        log_operation(
            logger,
            operation=operation,
            outcome="partial",
            level=logging.WARNING,
            business_id=business_id,
            inventory_id=result.inventory_id,
            unmatched_supplier_good_ids=result.unmatched_ids,
        )
    else:
        log_operation(
            logger,
            operation=operation,
            outcome="success",
            business_id=business_id,
            inventory_id=result.inventory_id,
            matched=len(result.matched_ids),
        )
    return result


def _require_open_inventory_id(session: Session, business_id: int, operation: str) -> int:
    inventory_id = find_open_inventory_id(session, business_id)
    if inventory_id is None:
        log_operation(
            logger,
            operation=operation,
            outcome="no_open_inventory",
            level=logging.WARNING,
            business_id=business_id,
        )
        raise OpenInventoryNotFound(business_id)
    return inventory_id


def reconcile_purchase_items(
    business_id: int,
    items: Iterable[Mapping[str, Any]],
    session: Optional[Session] = None,
) -> ReconciliationResult:
    """Raise the open inventory's system counts by purchased quantities.

    Each line is one atomic increment of the matching inventory line and of
    the supplier good's dynamic count. Lines without a supplier good are
    ignored; goods missing from the inventory snapshot are reported in
    unmatched_ids.

    Args:
        business_id: Business whose open inventory is updated
        items: Lines with supplier_good_id and quantity_purchased
        session: Optional database session

    Returns:
        ReconciliationResult

    Raises:
        ValidationError: If a line's quantity is missing or not positive;
            nothing is written
        OpenInventoryNotFound: If the business has no open inventory
        ReconciliationError: If no line modified the inventory
    """
    if session is not None:
        return _reconcile_purchase_items_impl(business_id, items, session)
    with session_scope() as session:
        return _reconcile_purchase_items_impl(business_id, items, session)


def _validate_reconciliation_lines(items: Iterable[Mapping[str, Any]]) -> List[Tuple[int, Decimal]]:
    lines = []
    errors = []
    for index, item in enumerate(items, start=1):
        supplier_good_id = item.get("supplier_good_id")
        if supplier_good_id is None:
            continue
        quantity = item.get("quantity_purchased")
        is_valid, error = validate_positive_number(quantity, f"Line {index} quantity")
        if not is_valid:
            errors.append(error)
            continue
        lines.append((supplier_good_id, to_decimal(quantity)))
    if errors:
        raise ValidationError(errors)
    return lines


def _reconcile_purchase_items_impl(
    business_id: int, items: Iterable[Mapping[str, Any]], session: Session
) -> ReconciliationResult:
    lines = _validate_reconciliation_lines(items)
    inventory_id = _require_open_inventory_id(session, business_id, "reconcile_purchase_items")
    result = ReconciliationResult(inventory_id=inventory_id)

    for supplier_good_id, quantity in lines:
        if _receive_stock(session, business_id, inventory_id, supplier_good_id, quantity):
            result.matched_ids.append(supplier_good_id)
        else:
            result.unmatched_ids.append(supplier_good_id)

    session.expire_all()
    return _finish_reconciliation("reconcile_purchase_items", business_id, result)


def reconcile_purchase(purchase_id: int, session: Optional[Session] = None) -> ReconciliationResult:
    """Apply a recorded purchase to the business's open inventory.

    Safe to replay: each line is claimed by stamping reconciled_inventory_id
    before its count is raised, and lines already claimed are skipped. A line
    whose good is missing from the inventory is released again so a later
    replay can retry it.

    Raises:
        PurchaseNotFound: If purchase_id doesn't exist
        OpenInventoryNotFound: If the business has no open inventory
        ReconciliationError: If no pending line could be applied
    """
    if session is not None:
        return _reconcile_purchase_impl(purchase_id, session)
    with session_scope() as session:
        return _reconcile_purchase_impl(purchase_id, session)


def _reconcile_purchase_impl(purchase_id: int, session: Session) -> ReconciliationResult:
    purchase = session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFound(purchase_id)

    # Snapshot the lines before any bulk update expires the instances
    lines = [
        (item.id, item.supplier_good_id, item.quantity_purchased)
        for item in purchase.purchase_items
        if item.supplier_good_id is not None
    ]
    business_id = purchase.business_id
    if purchase.one_time_purchase or not lines:
        return ReconciliationResult(skipped=True)

    inventory_id = _require_open_inventory_id(session, business_id, "reconcile_purchase")
    result = ReconciliationResult(inventory_id=inventory_id)

    for item_id, supplier_good_id, quantity in lines:
        claimed = session.execute(
            update(PurchaseItem)
            .where(
                PurchaseItem.id == item_id,
                PurchaseItem.reconciled_inventory_id.is_(None),
            )
            .values(reconciled_inventory_id=inventory_id)
            .execution_options(synchronize_session=False)
        )
        if not claimed.rowcount:
            result.already_reconciled_ids.append(supplier_good_id)
            continue

        if _receive_stock(session, business_id, inventory_id, supplier_good_id, quantity):
            result.matched_ids.append(supplier_good_id)
        else:
            session.execute(
                update(PurchaseItem)
                .where(PurchaseItem.id == item_id)
                .values(reconciled_inventory_id=None)
                .execution_options(synchronize_session=False)
            )
            result.unmatched_ids.append(supplier_good_id)

    session.expire_all()
    return _finish_reconciliation("reconcile_purchase", business_id, result)
