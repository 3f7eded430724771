"""Order Service - orders and the stock they consume.

This module provides:
- update_dynamic_count_supplier_goods: move supplier goods' dynamic counts
  for the business goods of an order
- create_order / cancel_order / get_order

Stock directions:
- "add": goods were sold, so their ingredients are consumed and the
  dynamic counts go down
- "remove": a sale is reversed, the counts go back up

An ingredient-based good consumes each ingredient's required_quantity
(converted to the supplier good's unit). A set menu consumes the
ingredients of each of its components. Supplier goods sold as-is consume
one unit each. Deltas are summed per supplier good and applied as one
atomic increment per good. The business's open inventory, if any, moves
by the same deltas.

Orders are committed before their stock is moved. A stock failure is
reported in OrderResult.stock_error and logged; the order stands.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from src.models import BusinessGood, Order, OrderLine, SetMenuItem, SupplierGood, Table
from src.services.database import session_scope
from src.services.exceptions import (
    BusinessGoodNotFound,
    OrderNotFound,
    ServiceError,
    StoreError,
    SupplierGoodNotFound,
    TableNotFound,
    ValidationError,
)
from src.services.inventory_service import apply_sales_to_open_inventory
from src.services.logging_utils import get_service_logger, log_operation
from src.services.supplier_good_service import (
    apply_dynamic_count_deltas,
    convert_to_supplier_unit,
)
from src.utils.constants import (
    BILLING_STATUS_OPEN,
    BILLING_STATUS_VOID,
    COMPOSITION_SET_MENU,
    ON_SPOT_BEVERAGE_ROLES,
    ORDER_STATUS_CANCEL,
    ORDER_STATUS_DONE,
    ORDER_STATUS_SENT,
    STOCK_DIRECTION_ADD,
    STOCK_DIRECTION_REMOVE,
    STOCK_DIRECTIONS,
    TABLE_STATUS_CLOSED,
    ZERO,
)
from src.utils.validators import (
    to_decimal,
    validate_non_negative_number,
    validate_reference_id,
)

logger = get_service_logger(__name__)


@dataclass
class StockMutationResult:
    """Outcome of moving dynamic counts.

    Attributes:
        direction: "add" or "remove"
        deltas: Signed change per supplier good id
        updated_ids: Supplier goods actually updated
        missing_ids: Supplier goods with a delta that no row matched
        inventory_ids: Supplier goods whose open inventory line also moved
    """

    direction: str
    deltas: Dict[int, Decimal] = field(default_factory=dict)
    updated_ids: List[int] = field(default_factory=list)
    missing_ids: List[int] = field(default_factory=list)
    inventory_ids: List[int] = field(default_factory=list)


@dataclass
class OrderResult:
    """An order and the outcome of its stock movement."""

    order: Dict[str, Any]
    stock_mutation: Optional[StockMutationResult] = None
    stock_error: Optional[ServiceError] = None


# ============================================================================
# Stock Mutator
# ============================================================================


def _add_ingredient_usage(usage: Dict[int, Decimal], good: BusinessGood) -> None:
    for line in good.ingredients:
        usage[line.supplier_good_id] += convert_to_supplier_unit(
            line.required_quantity, line.measurement_unit, line.supplier_good
        )


def calculate_stock_usage(
    session: Session,
    business_id: int,
    business_good_ids: Sequence[int],
    supplier_good_ids: Sequence[int] = (),
) -> Dict[int, Decimal]:
    """Supplier good quantities consumed by selling the given goods once each.

    Duplicated ids are consumed once per occurrence.

    Raises:
        BusinessGoodNotFound: If a business good is not in the business
        SupplierGoodNotFound: If a supplier good is not in the business
    """
    goods = {
        good.id: good
        for good in session.query(BusinessGood)
        .options(
            selectinload(BusinessGood.ingredients),
            selectinload(BusinessGood.set_menu_items)
            .selectinload(SetMenuItem.component)
            .selectinload(BusinessGood.ingredients),
        )
        .filter(
            BusinessGood.id.in_(set(business_good_ids)),
            BusinessGood.business_id == business_id,
        )
        .all()
    }
    for good_id in business_good_ids:
        if good_id not in goods:
            raise BusinessGoodNotFound(good_id)

    if supplier_good_ids:
        found = {
            row[0]
            for row in session.query(SupplierGood.id)
            .filter(
                SupplierGood.id.in_(set(supplier_good_ids)),
                SupplierGood.business_id == business_id,
            )
            .all()
        }
        for supplier_good_id in supplier_good_ids:
            if supplier_good_id not in found:
                raise SupplierGoodNotFound(supplier_good_id, business_id)

    usage = defaultdict(lambda: ZERO)
    for good_id in business_good_ids:
        good = goods[good_id]
        if good.composition_type == COMPOSITION_SET_MENU:
            for item in good.set_menu_items:
                _add_ingredient_usage(usage, item.component)
        else:
            _add_ingredient_usage(usage, good)

    for supplier_good_id in supplier_good_ids:
        usage[supplier_good_id] += Decimal("1")

    return dict(usage)


def update_dynamic_count_supplier_goods(
    business_id: int,
    business_good_ids: Sequence[int],
    direction: str,
    supplier_good_ids: Sequence[int] = (),
    session: Optional[Session] = None,
) -> StockMutationResult:
    """Move supplier goods' dynamic counts for sold (or unsold) goods.

    Args:
        business_id: Business owning the goods
        business_good_ids: Business goods of the order, duplicates counted
        direction: "add" consumes stock, "remove" gives it back
        supplier_good_ids: Supplier goods sold as-is, one unit each
        session: Optional database session

    Returns:
        StockMutationResult

    Raises:
        ValidationError: If direction is not "add" or "remove"
        BusinessGoodNotFound / SupplierGoodNotFound: Unknown goods; nothing
            is written
    """
    if direction not in STOCK_DIRECTIONS:
        raise ValidationError([f"Direction: Must be one of {', '.join(STOCK_DIRECTIONS)}"])
    if session is not None:
        return _update_dynamic_count_impl(
            business_id, business_good_ids, direction, supplier_good_ids, session
        )
    with session_scope() as session:
        return _update_dynamic_count_impl(
            business_id, business_good_ids, direction, supplier_good_ids, session
        )


def _update_dynamic_count_impl(
    business_id: int,
    business_good_ids: Sequence[int],
    direction: str,
    supplier_good_ids: Sequence[int],
    session: Session,
) -> StockMutationResult:
    usage = calculate_stock_usage(session, business_id, business_good_ids, supplier_good_ids)
    sign = -1 if direction == STOCK_DIRECTION_ADD else 1
    deltas = {sg_id: sign * quantity for sg_id, quantity in usage.items() if quantity}

    updated = apply_dynamic_count_deltas(session, business_id, deltas)
    in_inventory = apply_sales_to_open_inventory(
        session, business_id, {sg_id: deltas[sg_id] for sg_id in updated}
    )
    result = StockMutationResult(
        direction=direction,
        deltas=deltas,
        updated_ids=sorted(updated),
        missing_ids=sorted(set(deltas) - updated),
        inventory_ids=sorted(in_inventory),
    )

    log_operation(
        logger,
        operation="update_dynamic_count_supplier_goods",
        outcome="partial" if result.missing_ids else "success",
        level=logging.WARNING if result.missing_ids else logging.DEBUG,
        business_id=business_id,
        direction=direction,
        updated=len(result.updated_ids),
        missing_supplier_good_ids=result.missing_ids,
    )
    return result


# ============================================================================
# Orders
# ============================================================================


def _validate_order_data(data: Dict[str, Any]) -> List[str]:
    errors = []
    for key, label in (
        ("business_id", "Business"),
        ("table_id", "Table"),
        ("user_id", "User"),
    ):
        is_valid, error = validate_reference_id(data.get(key), label)
        if not is_valid:
            errors.append(error)

    business_goods = data.get("business_goods")
    if not isinstance(business_goods, (list, tuple)) or not business_goods:
        errors.append("Business goods: Must be a non-empty list")
    else:
        for index, good_id in enumerate(business_goods, start=1):
            is_valid, error = validate_reference_id(good_id, f"Business good {index}")
            if not is_valid:
                errors.append(error)

    for key in ("order_price", "order_net_price", "order_cost_price"):
        is_valid, error = validate_non_negative_number(
            data.get(key), key.replace("_", " ").capitalize()
        )
        if not is_valid:
            errors.append(error)

    if data.get("promotion_applied") and data.get("discount_percentage"):
        errors.append("Cannot apply promotion and discount at the same time")

    if data.get("discount_percentage") is not None:
        discount = to_decimal(data["discount_percentage"])
        if discount is None or not ZERO <= discount <= 100:
            errors.append("Discount percentage: Must be between 0 and 100")
    return errors


def _initial_order_status(user_role: Optional[str], category: Optional[str]) -> str:
    """Beverages made on the spot by bar staff are done when ordered."""
    if category == "Beverage" and user_role in ON_SPOT_BEVERAGE_ROLES:
        return ORDER_STATUS_DONE
    return ORDER_STATUS_SENT


def _add_to_table_totals(session: Session, table_id: int, price: Decimal, net_price: Decimal):
    session.execute(
        update(Table)
        .where(Table.id == table_id)
        .values(
            table_total_price=Table.table_total_price + price,
            table_total_net_price=Table.table_total_net_price + net_price,
        )
        .execution_options(synchronize_session=False)
    )


def _move_stock(order: Dict[str, Any], direction: str, session: Session) -> OrderResult:
    try:
        mutation = update_dynamic_count_supplier_goods(
            order["business_id"],
            order["business_goods"],
            direction,
            session=session,
        )
    except ServiceError as e:
        log_operation(
            logger,
            operation="update_dynamic_count_supplier_goods",
            outcome="failed",
            level=logging.WARNING,
            order_id=order["id"],
            direction=direction,
            error=str(e),
        )
        return OrderResult(order=order, stock_error=e)
    return OrderResult(order=order, stock_mutation=mutation)


def _move_stock_in_new_session(order: Dict[str, Any], direction: str) -> OrderResult:
    try:
        with session_scope() as session:
            return _move_stock(order, direction, session)
    except SQLAlchemyError as e:
        error = StoreError("Stock update failed", e)
        log_operation(
            logger,
            operation="update_dynamic_count_supplier_goods",
            outcome="failed",
            level=logging.WARNING,
            order_id=order["id"],
            direction=direction,
            error=str(error),
        )
        return OrderResult(order=order, stock_error=error)


def create_order(order_data: Dict[str, Any], session: Optional[Session] = None) -> OrderResult:
    """Record an order on an open table, then consume its stock.

    Args:
        order_data: business_id, table_id, user_id, business_goods,
            order_price, order_net_price, order_cost_price (required);
            user_role, business_goods_category, day_reference_number,
            allergens, promotion_applied, discount_percentage, comments
        session: Optional database session. When given, both steps run in it.

    Returns:
        OrderResult

    Raises:
        ValidationError: Invalid fields, or promotion and discount together
        TableNotFound: If the table is missing, in another business, or closed
        BusinessGoodNotFound: If an ordered good is not in the business
    """
    errors = _validate_order_data(order_data)
    if errors:
        raise ValidationError(errors)

    if session is not None:
        order = _record_order(order_data, session)
        return _move_stock(order, STOCK_DIRECTION_ADD, session)

    with session_scope() as session:
        order = _record_order(order_data, session)
    return _move_stock_in_new_session(order, STOCK_DIRECTION_ADD)


def _record_order(data: Dict[str, Any], session: Session) -> Dict[str, Any]:
    business_id = data["business_id"]
    table = session.get(Table, data["table_id"])
    if table is None or table.business_id != business_id:
        raise TableNotFound(data["table_id"])
    if table.status == TABLE_STATUS_CLOSED:
        raise TableNotFound(data["table_id"], closed=True)

    good_ids = list(data["business_goods"])
    found = {
        row[0]
        for row in session.query(BusinessGood.id)
        .filter(BusinessGood.id.in_(set(good_ids)), BusinessGood.business_id == business_id)
        .all()
    }
    for good_id in good_ids:
        if good_id not in found:
            raise BusinessGoodNotFound(good_id)

    order = Order(
        business_id=business_id,
        table_id=table.id,
        user_id=data["user_id"],
        user_role=data.get("user_role"),
        day_reference_number=data.get("day_reference_number"),
        business_goods_category=data.get("business_goods_category"),
        order_price=to_decimal(data["order_price"]),
        order_net_price=to_decimal(data["order_net_price"]),
        order_cost_price=to_decimal(data["order_cost_price"]),
        order_status=_initial_order_status(
            data.get("user_role"), data.get("business_goods_category")
        ),
        billing_status=BILLING_STATUS_OPEN,
        allergens=data.get("allergens"),
        promotion_applied=data.get("promotion_applied"),
        discount_percentage=to_decimal(data.get("discount_percentage")),
        comments=data.get("comments"),
    )
    order.lines = [
        OrderLine(business_good_id=good_id, position=position)
        for position, good_id in enumerate(good_ids)
    ]
    session.add(order)
    session.flush()

    _add_to_table_totals(session, table.id, order.order_price, order.order_net_price)
    result = order.to_dict()
    session.expire(table)

    log_operation(
        logger,
        operation="create_order",
        outcome="success",
        order_id=order.id,
        table_id=table.id,
        business_id=business_id,
        order_status=order.order_status,
    )
    return result


def cancel_order(order_id: int, session: Optional[Session] = None) -> OrderResult:
    """Cancel an order with open billing and give its stock back.

    The order's prices are taken off the table totals.

    Raises:
        OrderNotFound: If order_id doesn't exist
        ValidationError: If the order is already cancelled or billed
    """
    if session is not None:
        order = _cancel_order_record(order_id, session)
        return _move_stock(order, STOCK_DIRECTION_REMOVE, session)

    with session_scope() as session:
        order = _cancel_order_record(order_id, session)
    return _move_stock_in_new_session(order, STOCK_DIRECTION_REMOVE)


def _cancel_order_record(order_id: int, session: Session) -> Dict[str, Any]:
    order = session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    if order.order_status == ORDER_STATUS_CANCEL:
        raise ValidationError([f"Order {order_id} is already cancelled"])
    if order.billing_status != BILLING_STATUS_OPEN:
        raise ValidationError([f"Order {order_id} is {order.billing_status} and cannot be cancelled"])

    order.order_status = ORDER_STATUS_CANCEL
    order.billing_status = BILLING_STATUS_VOID
    session.flush()
    _add_to_table_totals(session, order.table_id, -order.order_price, -order.order_net_price)
    result = order.to_dict()

    log_operation(
        logger,
        operation="cancel_order",
        outcome="success",
        order_id=order_id,
        table_id=result["table_id"],
    )
    return result


def get_order(order_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get an order by ID.

    Raises:
        OrderNotFound: If order_id doesn't exist
    """
    if session is not None:
        return _get_order_impl(order_id, session)
    with session_scope() as session:
        return _get_order_impl(order_id, session)


def _get_order_impl(order_id: int, session: Session) -> Dict[str, Any]:
    order = session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return order.to_dict()


def get_table_orders(table_id: int, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """Orders of a table in the order they were placed."""
    if session is not None:
        return _get_table_orders_impl(table_id, session)
    with session_scope() as session:
        return _get_table_orders_impl(table_id, session)


def _get_table_orders_impl(table_id: int, session: Session) -> List[Dict[str, Any]]:
    orders = session.query(Order).filter(Order.table_id == table_id).order_by(Order.id).all()
    return [o.to_dict() for o in orders]
