"""Supplier Good Service - catalog goods, ingredient resolution and stock counts.

This module provides:
- Create/read/reprice supplier goods scoped by business
- resolve_ingredient: unit cost, line cost and allergens of one ingredient
  reference of a business good
- apply_dynamic_count_deltas: the atomic stock primitive used by order
  stock mutation

price_per_unit is never taken from callers; it is derived on the model from
whole_sale_price / total_quantity_per_unit.

Example Usage:
    >>> from decimal import Decimal
    >>> from src.services.supplier_good_service import resolve_ingredient
    >>> resolved = resolve_ingredient(1, 17, Decimal("0.2"), unit="kg")
    >>> resolved.cost_of_required_quantity
    Decimal('1.0000')
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Set

from sqlalchemy import update
from sqlalchemy.orm import Session

from src.models import SupplierGood
from src.services.business_service import require_business
from src.services.database import session_scope
from src.services.exceptions import (
    DuplicateName,
    SupplierGoodNotFound,
    ValidationError,
)
from src.services.logging_utils import get_service_logger
from src.services.supplier_service import require_supplier
from src.services.unit_converter import convert_standard_units
from src.utils.constants import DEFAULT_SUB_CATEGORY, SUPPLIER_GOOD_CATEGORIES
from src.utils.validators import (
    sanitize_string,
    to_decimal,
    validate_non_negative_number,
    validate_positive_number,
    validate_required_string,
    validate_unit,
)

logger = get_service_logger(__name__)

_DERIVED_FIELDS = ("price_per_unit", "dynamic_count_from_last_inventory")

_OPTIONAL_DECIMAL_FIELDS = (
    "total_quantity_per_unit",
    "whole_sale_price",
    "par_level",
    "minimum_quantity_required",
)


@dataclass
class ResolvedIngredient:
    """Cost and allergen facts for one ingredient reference."""

    supplier_good_id: int
    measurement_unit: Optional[str]
    required_quantity: Decimal
    unit_cost: Decimal
    cost_of_required_quantity: Decimal
    allergens: List[str] = field(default_factory=list)


# ============================================================================
# Create / Read / Update
# ============================================================================


def _validate_supplier_good_data(data: Dict[str, Any]) -> List[str]:
    errors = []

    for derived in _DERIVED_FIELDS:
        if derived in data:
            errors.append(f"{derived}: Derived field cannot be set")

    is_valid, error = validate_required_string(data.get("name"), "Name")
    if not is_valid:
        errors.append(error)

    category = data.get("main_category")
    if category not in SUPPLIER_GOOD_CATEGORIES:
        errors.append(f"Main category: Must be one of {', '.join(SUPPLIER_GOOD_CATEGORIES)}")

    unit = data.get("measurement_unit")
    if unit is not None:
        is_valid, error = validate_unit(unit, "Measurement unit")
        if not is_valid:
            errors.append(error)

    if data.get("total_quantity_per_unit") is not None:
        is_valid, error = validate_positive_number(
            data["total_quantity_per_unit"], "Total quantity per unit"
        )
        if not is_valid:
            errors.append(error)

    for name in ("whole_sale_price", "par_level", "minimum_quantity_required"):
        if data.get(name) is not None:
            is_valid, error = validate_non_negative_number(
                data[name], name.replace("_", " ").capitalize()
            )
            if not is_valid:
                errors.append(error)

    allergens = data.get("allergens")
    if allergens is not None and not isinstance(allergens, (list, tuple)):
        errors.append("Allergens: Must be a list of allergen tags")

    return errors


def create_supplier_good(
    business_id: int,
    supplier_id: int,
    data: Dict[str, Any],
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a supplier good in a business's catalog.

    Args:
        business_id: Owning business
        supplier_id: Supplier the good is bought from (same business)
        data: Good fields: name, main_category (required); keyword,
            sub_category, description, allergens, measurement_unit,
            total_quantity_per_unit, whole_sale_price, par_level,
            minimum_quantity_required, currently_in_use (optional)
        session: Optional database session

    Returns:
        Dict[str, Any]: Created supplier good, with derived price_per_unit

    Raises:
        ValidationError: If data is invalid or sets a derived field
        BusinessNotFound: If business_id doesn't exist
        SupplierNotFound: If the supplier is not in the business
        DuplicateName: If the business already has a good with this name
    """
    if session is not None:
        return _create_supplier_good_impl(business_id, supplier_id, data, session)
    with session_scope() as session:
        return _create_supplier_good_impl(business_id, supplier_id, data, session)


def _create_supplier_good_impl(
    business_id: int,
    supplier_id: int,
    data: Dict[str, Any],
    session: Session,
) -> Dict[str, Any]:
    errors = _validate_supplier_good_data(data)
    if errors:
        raise ValidationError(errors)

    require_business(session, business_id)
    require_supplier(session, business_id, supplier_id)

    name = sanitize_string(data["name"])
    existing = (
        session.query(SupplierGood.id)
        .filter(SupplierGood.business_id == business_id, SupplierGood.name == name)
        .first()
    )
    if existing:
        raise DuplicateName("Supplier good", name)

    good = SupplierGood(
        business_id=business_id,
        supplier_id=supplier_id,
        name=name,
        keyword=sanitize_string(data.get("keyword")),
        main_category=data["main_category"],
        sub_category=sanitize_string(data.get("sub_category")) or DEFAULT_SUB_CATEGORY,
        description=data.get("description"),
        allergens=sorted(set(data.get("allergens") or [])),
        measurement_unit=data.get("measurement_unit"),
        currently_in_use=data.get("currently_in_use", True),
    )
    for name in _OPTIONAL_DECIMAL_FIELDS:
        if data.get(name) is not None:
            setattr(good, name, to_decimal(data[name]))

    session.add(good)
    session.flush()
    return good.to_dict()


def get_supplier_good(
    supplier_good_id: int,
    business_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Get a supplier good by ID, optionally restricted to one business.

    Raises:
        SupplierGoodNotFound: If not found (or not in the business)
    """
    if session is not None:
        return require_supplier_good(session, supplier_good_id, business_id).to_dict()
    with session_scope() as session:
        return require_supplier_good(session, supplier_good_id, business_id).to_dict()


def require_supplier_good(
    session: Session, supplier_good_id: int, business_id: Optional[int] = None
) -> SupplierGood:
    """Load a supplier good, scoped by business when given."""
    query = session.query(SupplierGood).filter(SupplierGood.id == supplier_good_id)
    if business_id is not None:
        query = query.filter(SupplierGood.business_id == business_id)
    good = query.first()
    if good is None:
        raise SupplierGoodNotFound(supplier_good_id, business_id)
    return good


def update_supplier_good_pricing(
    supplier_good_id: int,
    whole_sale_price=None,
    total_quantity_per_unit=None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Reprice a supplier good; price_per_unit is recomputed.

    Business goods that use the good keep their stored cost until they are
    recalculated (see business_good_service.recalculate_business_good_cost).

    Raises:
        SupplierGoodNotFound: If the good doesn't exist
        ValidationError: If a value is invalid or nothing is given
    """
    if session is not None:
        return _update_supplier_good_pricing_impl(
            supplier_good_id, whole_sale_price, total_quantity_per_unit, session
        )
    with session_scope() as session:
        return _update_supplier_good_pricing_impl(
            supplier_good_id, whole_sale_price, total_quantity_per_unit, session
        )


def _update_supplier_good_pricing_impl(
    supplier_good_id: int,
    whole_sale_price,
    total_quantity_per_unit,
    session: Session,
) -> Dict[str, Any]:
    if whole_sale_price is None and total_quantity_per_unit is None:
        raise ValidationError(["Nothing to update"])

    errors = []
    if whole_sale_price is not None:
        is_valid, error = validate_non_negative_number(whole_sale_price, "Whole sale price")
        if not is_valid:
            errors.append(error)
    if total_quantity_per_unit is not None:
        is_valid, error = validate_positive_number(
            total_quantity_per_unit, "Total quantity per unit"
        )
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    good = require_supplier_good(session, supplier_good_id)
    if whole_sale_price is not None:
        good.whole_sale_price = to_decimal(whole_sale_price)
    if total_quantity_per_unit is not None:
        good.total_quantity_per_unit = to_decimal(total_quantity_per_unit)
    session.flush()
    return good.to_dict()


def get_supplier_goods_below_minimum(
    business_id: int, session: Optional[Session] = None
) -> List[Dict[str, Any]]:
    """Supplier goods in use whose dynamic count is under the reorder threshold."""
    if session is not None:
        return _get_supplier_goods_below_minimum_impl(business_id, session)
    with session_scope() as session:
        return _get_supplier_goods_below_minimum_impl(business_id, session)


def _get_supplier_goods_below_minimum_impl(
    business_id: int, session: Session
) -> List[Dict[str, Any]]:
    goods = (
        session.query(SupplierGood)
        .filter(
            SupplierGood.business_id == business_id,
            SupplierGood.currently_in_use == True,  # noqa: E712
            SupplierGood.minimum_quantity_required.isnot(None),
            SupplierGood.dynamic_count_from_last_inventory
            < SupplierGood.minimum_quantity_required,
        )
        .order_by(SupplierGood.name)
        .all()
    )
    return [g.to_dict() for g in goods]


# ============================================================================
# Ingredient Resolution
# ============================================================================


def convert_to_supplier_unit(
    quantity: Decimal, unit: Optional[str], supplier_good: SupplierGood
) -> Decimal:
    """Express a quantity in the supplier good's measurement unit.

    No conversion happens when either unit is unset or both are equal.

    Raises:
        ValidationError: If the units cannot be converted
    """
    target = supplier_good.measurement_unit
    if not unit or not target or unit.lower() == target.lower():
        return quantity

    success, converted, error = convert_standard_units(quantity, unit, target)
    if not success:
        raise ValidationError([f"Ingredient {supplier_good.id}: {error}"])
    return converted


def resolve_from_supplier_good(
    supplier_good: SupplierGood,
    required_quantity,
    unit: Optional[str] = None,
) -> ResolvedIngredient:
    """Resolve one ingredient against an already loaded supplier good.

    Raises:
        ValidationError: If the quantity is not positive, the units are
            incompatible or the good has no price per unit
    """
    is_valid, error = validate_positive_number(required_quantity, "Required quantity")
    if not is_valid:
        raise ValidationError([f"Ingredient {supplier_good.id}: {error}"])

    unit_cost = supplier_good.price_per_unit
    if unit_cost is None:
        raise ValidationError(
            [f"Ingredient {supplier_good.id}: Supplier good has no price per unit"]
        )

    quantity = to_decimal(required_quantity)
    quantity_in_supplier_unit = convert_to_supplier_unit(quantity, unit, supplier_good)

    return ResolvedIngredient(
        supplier_good_id=supplier_good.id,
        measurement_unit=unit or supplier_good.measurement_unit,
        required_quantity=quantity,
        unit_cost=unit_cost,
        cost_of_required_quantity=unit_cost * quantity_in_supplier_unit,
        allergens=list(supplier_good.allergens or []),
    )


def resolve_ingredient(
    business_id: int,
    supplier_good_id: int,
    required_quantity,
    unit: Optional[str] = None,
    session: Optional[Session] = None,
) -> ResolvedIngredient:
    """Resolve unit cost, line cost and allergens for one ingredient.

    Args:
        business_id: Business the ingredient must belong to
        supplier_good_id: Referenced supplier good
        required_quantity: Quantity used per unit sold (must be > 0)
        unit: Unit of required_quantity; defaults to the good's own unit
        session: Optional database session

    Returns:
        ResolvedIngredient

    Raises:
        SupplierGoodNotFound: If the good is not in the business
        ValidationError: See resolve_from_supplier_good
    """
    if session is not None:
        good = require_supplier_good(session, supplier_good_id, business_id)
        return resolve_from_supplier_good(good, required_quantity, unit)
    with session_scope() as session:
        good = require_supplier_good(session, supplier_good_id, business_id)
        return resolve_from_supplier_good(good, required_quantity, unit)


# ============================================================================
# Dynamic Counts
# ============================================================================


def apply_dynamic_count_deltas(
    session: Session, business_id: int, deltas: Mapping[int, Decimal]
) -> Set[int]:
    """Add a signed delta to each supplier good's dynamic count.

    Each good gets one SQL-side increment
    (count = count + delta), so concurrent writers never lose updates.

    Returns:
        Ids of the supplier goods actually updated
    """
    updated = set()
    for supplier_good_id, delta in deltas.items():
        if not delta:
            continue
        result = session.execute(
            update(SupplierGood)
            .where(
                SupplierGood.id == supplier_good_id,
                SupplierGood.business_id == business_id,
            )
            .values(
                dynamic_count_from_last_inventory=(
                    SupplierGood.dynamic_count_from_last_inventory + delta
                )
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            updated.add(supplier_good_id)
    session.expire_all()
    return updated
