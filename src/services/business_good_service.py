"""Business Good Service - composite cost calculation and menu goods.

A business good is composed either from supplier-good ingredients or, for
set menus, from other business goods. Its cost_price and allergens are
always derived here and never accepted from callers.

Composition is a tagged union built by composition_from_payload():
- IngredientsComposition: ingredient lines (supplier good, quantity, unit)
- SetMenuComposition: component business good ids

Cost rules:
- Ingredient mode: each line costs price_per_unit * required_quantity,
  cost_price is the sum, allergens are the union of the lines' allergens.
- Set-menu mode: cost_price is the sum of the components' cost_price,
  allergens are the union of the components' allergens. Set menus are one
  level deep: a component must itself be ingredient-based.

Example Usage:
    >>> from src.services.business_good_service import create_business_good
    >>> good = create_business_good(1, {
    ...     "name": "Margherita",
    ...     "main_category": "Food",
    ...     "selling_price": "9.50",
    ...     "ingredients": [
    ...         {"supplier_good_id": 3, "required_quantity": "0.25", "measurement_unit": "kg"},
    ...     ],
    ... })
    >>> good["composition_type"]
    'ingredients'
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from src.models import (
    BusinessGood,
    BusinessGoodIngredient,
    Order,
    OrderLine,
    SetMenuItem,
    SupplierGood,
)
from src.services.business_service import require_business
from src.services.database import session_scope
from src.services.exceptions import (
    BusinessGoodNotFound,
    DuplicateName,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.services.supplier_good_service import resolve_from_supplier_good
from src.utils.constants import (
    BILLING_STATUS_OPEN,
    BUSINESS_GOOD_CATEGORIES,
    COMPOSITION_INGREDIENTS,
    COMPOSITION_SET_MENU,
    DEFAULT_SUB_CATEGORY,
    ZERO,
)
from src.utils.validators import (
    sanitize_string,
    to_decimal,
    validate_non_negative_number,
    validate_positive_number,
    validate_reference_id,
    validate_required_string,
)

logger = get_service_logger(__name__)


# ============================================================================
# Composition (tagged union)
# ============================================================================


@dataclass(frozen=True)
class IngredientLine:
    supplier_good_id: int
    required_quantity: Decimal
    measurement_unit: Optional[str] = None


@dataclass(frozen=True)
class IngredientsComposition:
    lines: Tuple[IngredientLine, ...]


@dataclass(frozen=True)
class SetMenuComposition:
    component_ids: Tuple[int, ...]


Composition = Union[IngredientsComposition, SetMenuComposition]


@dataclass
class CostedIngredient:
    supplier_good_id: int
    measurement_unit: Optional[str]
    required_quantity: Decimal
    cost_of_required_quantity: Decimal


@dataclass
class CompositeCost:
    """Result of a composite cost calculation.

    clear_field names the composition field whose stored rows must be
    removed when this cost is persisted.
    """

    cost_price: Decimal
    allergens: List[str]
    ingredient_lines: List[CostedIngredient] = field(default_factory=list)
    component_ids: List[int] = field(default_factory=list)
    clear_field: str = COMPOSITION_SET_MENU

    @property
    def composition_type(self) -> str:
        if self.clear_field == COMPOSITION_SET_MENU:
            return COMPOSITION_INGREDIENTS
        return COMPOSITION_SET_MENU


def _parse_ingredient_lines(ingredients) -> IngredientsComposition:
    if not isinstance(ingredients, (list, tuple)) or not ingredients:
        raise ValidationError(["Ingredients: Must be a non-empty list"])

    errors = []
    lines = []
    for index, raw in enumerate(ingredients, start=1):
        if not isinstance(raw, dict):
            errors.append(f"Ingredient {index}: Must be an object")
            continue
        reference_ok, reference_error = validate_reference_id(
            raw.get("supplier_good_id"), f"Ingredient {index} supplier good"
        )
        if not reference_ok:
            errors.append(reference_error)
        quantity_ok, quantity_error = validate_positive_number(
            raw.get("required_quantity"), f"Ingredient {index} required quantity"
        )
        if not quantity_ok:
            errors.append(quantity_error)
        if reference_ok and quantity_ok:
            lines.append(
                IngredientLine(
                    supplier_good_id=raw["supplier_good_id"],
                    required_quantity=to_decimal(raw["required_quantity"]),
                    measurement_unit=raw.get("measurement_unit"),
                )
            )
    if errors:
        raise ValidationError(errors)
    return IngredientsComposition(lines=tuple(lines))


def _parse_set_menu(set_menu) -> SetMenuComposition:
    if not isinstance(set_menu, (list, tuple)) or not set_menu:
        raise ValidationError(["Set menu: Must be a non-empty list"])

    errors = []
    for index, component_id in enumerate(set_menu, start=1):
        is_valid, error = validate_reference_id(component_id, f"Set menu item {index}")
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)
    return SetMenuComposition(component_ids=tuple(set_menu))


def composition_from_payload(ingredients=None, set_menu=None) -> Optional[Composition]:
    """Build the composition of a business good from inbound fields.

    Returns:
        The composition, or None when neither field is given

    Raises:
        ValidationError: If both fields are given, or a field is malformed
    """
    if ingredients is not None and set_menu is not None:
        raise ValidationError(["Only one of ingredients or set_menu can be assigned"])
    if ingredients is not None:
        return _parse_ingredient_lines(ingredients)
    if set_menu is not None:
        return _parse_set_menu(set_menu)
    return None


def _union_allergens(allergen_lists: Iterable[Sequence[str]]) -> List[str]:
    merged = set()
    for allergens in allergen_lists:
        merged.update(allergens or [])
    return sorted(merged)


# ============================================================================
# Composite Cost Calculator
# ============================================================================


def calculate_ingredients_cost_and_allergens(
    business_id: int,
    composition: IngredientsComposition,
    session: Session,
) -> CompositeCost:
    """Cost an ingredient-based good from its supplier goods.

    Raises:
        ValidationError: If a supplier good is missing or belongs to another
            business, or a line cannot be resolved
    """
    ids = {line.supplier_good_id for line in composition.lines}
    goods = {
        good.id: good
        for good in session.query(SupplierGood)
        .filter(SupplierGood.id.in_(ids), SupplierGood.business_id == business_id)
        .all()
    }
    missing = sorted(ids - set(goods))
    if missing:
        raise ValidationError(
            [f"Ingredient {good_id}: Supplier good not found in business" for good_id in missing]
        )

    costed = []
    allergen_lists = []
    for line in composition.lines:
        resolved = resolve_from_supplier_good(
            goods[line.supplier_good_id], line.required_quantity, line.measurement_unit
        )
        costed.append(
            CostedIngredient(
                supplier_good_id=resolved.supplier_good_id,
                measurement_unit=resolved.measurement_unit,
                required_quantity=resolved.required_quantity,
                cost_of_required_quantity=resolved.cost_of_required_quantity,
            )
        )
        allergen_lists.append(resolved.allergens)

    return CompositeCost(
        cost_price=sum((line.cost_of_required_quantity for line in costed), ZERO),
        allergens=_union_allergens(allergen_lists),
        ingredient_lines=costed,
        clear_field=COMPOSITION_SET_MENU,
    )


def calculate_set_menu_cost_and_allergens(
    business_id: int,
    composition: SetMenuComposition,
    session: Session,
    set_menu_id: Optional[int] = None,
) -> CompositeCost:
    """Cost a set menu from its component goods.

    A component listed twice is counted twice.

    Raises:
        ValidationError: If a component is missing, belongs to another
            business, is the set menu itself, or is itself a set menu
    """
    ids = set(composition.component_ids)
    components = {
        good.id: good
        for good in session.query(BusinessGood)
        .filter(BusinessGood.id.in_(ids), BusinessGood.business_id == business_id)
        .all()
    }

    errors = []
    for component_id in sorted(ids):
        component = components.get(component_id)
        if component is None:
            errors.append(f"Set menu item {component_id}: Business good not found in business")
        elif component_id == set_menu_id:
            errors.append(f"Set menu item {component_id}: A set menu cannot contain itself")
        elif component.composition_type == COMPOSITION_SET_MENU:
            errors.append(f"Set menu item {component_id}: Set menus cannot be nested")
    if errors:
        raise ValidationError(errors)

    ordered = [components[component_id] for component_id in composition.component_ids]
    return CompositeCost(
        cost_price=sum((c.cost_price or ZERO for c in ordered), ZERO),
        allergens=_union_allergens(c.allergens for c in ordered),
        component_ids=list(composition.component_ids),
        clear_field=COMPOSITION_INGREDIENTS,
    )


def calculate_composite_cost(
    business_id: int,
    composition: Composition,
    session: Session,
    business_good_id: Optional[int] = None,
) -> CompositeCost:
    """Dispatch to the calculator for the composition's mode."""
    if isinstance(composition, IngredientsComposition):
        return calculate_ingredients_cost_and_allergens(business_id, composition, session)
    return calculate_set_menu_cost_and_allergens(
        business_id, composition, session, set_menu_id=business_good_id
    )


def _apply_composite_cost(good: BusinessGood, cost: CompositeCost) -> None:
    """Store a calculated cost on a good, replacing both composition fields."""
    good.cost_price = cost.cost_price
    good.allergens = cost.allergens
    good.composition_type = cost.composition_type
    good.ingredients = [
        BusinessGoodIngredient(
            supplier_good_id=line.supplier_good_id,
            measurement_unit=line.measurement_unit,
            required_quantity=line.required_quantity,
            cost_of_required_quantity=line.cost_of_required_quantity,
        )
        for line in cost.ingredient_lines
    ]
    good.set_menu_items = [
        SetMenuItem(component_id=component_id, position=position)
        for position, component_id in enumerate(cost.component_ids)
    ]


def _stored_composition(good: BusinessGood) -> Composition:
    if good.composition_type == COMPOSITION_SET_MENU:
        return SetMenuComposition(component_ids=tuple(good.set_menu_ids))
    return IngredientsComposition(
        lines=tuple(
            IngredientLine(
                supplier_good_id=line.supplier_good_id,
                required_quantity=line.required_quantity,
                measurement_unit=line.measurement_unit,
            )
            for line in good.ingredients
        )
    )


# ============================================================================
# CRUD
# ============================================================================

_SIMPLE_FIELDS = ("keyword", "description", "on_menu", "available")


def _validate_good_fields(data: Dict[str, Any], partial: bool) -> List[str]:
    errors = []
    for derived in ("cost_price", "allergens", "composition_type"):
        if derived in data:
            errors.append(f"{derived}: Derived field cannot be set")

    if not partial or "name" in data:
        is_valid, error = validate_required_string(data.get("name"), "Name")
        if not is_valid:
            errors.append(error)

    if not partial or "main_category" in data:
        if data.get("main_category") not in BUSINESS_GOOD_CATEGORIES:
            errors.append(
                f"Main category: Must be one of {', '.join(BUSINESS_GOOD_CATEGORIES)}"
            )

    if data.get("selling_price") is not None:
        is_valid, error = validate_non_negative_number(data["selling_price"], "Selling price")
        if not is_valid:
            errors.append(error)
    return errors


def _check_unique_name(
    session: Session, business_id: int, name: str, exclude_id: Optional[int] = None
) -> None:
    query = session.query(BusinessGood.id).filter(
        BusinessGood.business_id == business_id, BusinessGood.name == name
    )
    if exclude_id is not None:
        query = query.filter(BusinessGood.id != exclude_id)
    if query.first():
        raise DuplicateName("Business good", name)


def create_business_good(
    business_id: int,
    data: Dict[str, Any],
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a business good and derive its cost and allergens.

    Args:
        business_id: Owning business
        data: name, main_category and exactly one of ingredients / set_menu
            (required); keyword, sub_category, description, selling_price,
            on_menu, available (optional)
        session: Optional database session

    Returns:
        Dict[str, Any]: Created business good with its composition

    Raises:
        ValidationError: Invalid fields, both or neither composition given,
            or an unresolvable ingredient / component
        BusinessNotFound: If business_id doesn't exist
        DuplicateName: If the business already has a good with this name
    """
    if session is not None:
        return _create_business_good_impl(business_id, data, session)
    with session_scope() as session:
        return _create_business_good_impl(business_id, data, session)


def _create_business_good_impl(
    business_id: int, data: Dict[str, Any], session: Session
) -> Dict[str, Any]:
    errors = _validate_good_fields(data, partial=False)
    if errors:
        raise ValidationError(errors)

    composition = composition_from_payload(data.get("ingredients"), data.get("set_menu"))
    if composition is None:
        raise ValidationError(["One of ingredients or set_menu is required"])

    require_business(session, business_id)
    name = sanitize_string(data["name"])
    _check_unique_name(session, business_id, name)

    cost = calculate_composite_cost(business_id, composition, session)

    good = BusinessGood(
        business_id=business_id,
        name=name,
        main_category=data["main_category"],
        sub_category=sanitize_string(data.get("sub_category")) or DEFAULT_SUB_CATEGORY,
        selling_price=to_decimal(data.get("selling_price")),
    )
    for attr in _SIMPLE_FIELDS:
        if attr in data:
            setattr(good, attr, data[attr])
    _apply_composite_cost(good, cost)

    session.add(good)
    session.flush()

    log_operation(
        logger,
        operation="create_business_good",
        outcome="success",
        business_id=business_id,
        business_good_id=good.id,
        composition_type=good.composition_type,
        cost_price=str(good.cost_price),
    )
    return good.to_dict()


def update_business_good(
    business_good_id: int,
    updates: Dict[str, Any],
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Update a business good, recalculating cost when recomposed.

    Passing ingredients switches the good to ingredient mode and removes its
    set-menu rows; passing set_menu does the reverse. When the good's cost
    changes, the set menus that contain it are recosted too.

    Raises:
        BusinessGoodNotFound: If the good doesn't exist
        ValidationError: Invalid fields or both compositions given
        DuplicateName: If renamed to an existing name
    """
    if session is not None:
        return _update_business_good_impl(business_good_id, updates, session)
    with session_scope() as session:
        return _update_business_good_impl(business_good_id, updates, session)


def _update_business_good_impl(
    business_good_id: int, updates: Dict[str, Any], session: Session
) -> Dict[str, Any]:
    errors = _validate_good_fields(updates, partial=True)
    if errors:
        raise ValidationError(errors)
    composition = composition_from_payload(updates.get("ingredients"), updates.get("set_menu"))

    good = session.get(BusinessGood, business_good_id)
    if good is None:
        raise BusinessGoodNotFound(business_good_id)

    if "name" in updates:
        name = sanitize_string(updates["name"])
        _check_unique_name(session, good.business_id, name, exclude_id=good.id)
        good.name = name
    if "main_category" in updates:
        good.main_category = updates["main_category"]
    if "sub_category" in updates:
        good.sub_category = sanitize_string(updates["sub_category"]) or DEFAULT_SUB_CATEGORY
    if "selling_price" in updates:
        good.selling_price = to_decimal(updates["selling_price"])
    for attr in _SIMPLE_FIELDS:
        if attr in updates:
            setattr(good, attr, updates[attr])

    if isinstance(composition, SetMenuComposition):
        containing = (
            session.query(SetMenuItem.set_menu_id)
            .filter(SetMenuItem.component_id == good.id)
            .first()
        )
        if containing:
            raise ValidationError(
                [f"Set menus cannot be nested: good is a component of set menu {containing[0]}"]
            )

    if composition is not None:
        previous_cost = good.cost_price
        previous_allergens = list(good.allergens or [])
        cost = calculate_composite_cost(good.business_id, composition, session, good.id)
        _apply_composite_cost(good, cost)
        session.flush()
        if cost.cost_price != previous_cost or cost.allergens != previous_allergens:
            _recost_dependent_set_menus(session, good.id)

    session.flush()
    return good.to_dict()


def recalculate_business_good_cost(
    business_good_id: int, session: Optional[Session] = None
) -> Dict[str, Any]:
    """Recompute a good's cost from its stored composition.

    Use after supplier goods are repriced. Set menus containing the good are
    recosted as well.

    Raises:
        BusinessGoodNotFound: If the good doesn't exist
        ValidationError: If the stored composition no longer resolves
    """
    if session is not None:
        return _recalculate_business_good_cost_impl(business_good_id, session)
    with session_scope() as session:
        return _recalculate_business_good_cost_impl(business_good_id, session)


def _recalculate_business_good_cost_impl(
    business_good_id: int, session: Session
) -> Dict[str, Any]:
    good = session.get(BusinessGood, business_good_id)
    if good is None:
        raise BusinessGoodNotFound(business_good_id)

    cost = calculate_composite_cost(
        good.business_id, _stored_composition(good), session, good.id
    )
    _apply_composite_cost(good, cost)
    session.flush()
    _recost_dependent_set_menus(session, good.id)
    return good.to_dict()


def _recost_dependent_set_menus(session: Session, component_id: int) -> List[int]:
    set_menus = (
        session.query(BusinessGood)
        .join(SetMenuItem, SetMenuItem.set_menu_id == BusinessGood.id)
        .filter(SetMenuItem.component_id == component_id)
        .distinct()
        .all()
    )
    for set_menu in set_menus:
        cost = calculate_composite_cost(
            set_menu.business_id, _stored_composition(set_menu), session, set_menu.id
        )
        _apply_composite_cost(set_menu, cost)
    if set_menus:
        session.flush()
        log_operation(
            logger,
            operation="recost_set_menus",
            outcome="success",
            component_id=component_id,
            set_menu_ids=[s.id for s in set_menus],
        )
    return [s.id for s in set_menus]


def get_business_good(
    business_good_id: int, session: Optional[Session] = None
) -> Dict[str, Any]:
    """Get a business good by ID.

    Raises:
        BusinessGoodNotFound: If the good doesn't exist
    """
    if session is not None:
        return _get_business_good_impl(business_good_id, session)
    with session_scope() as session:
        return _get_business_good_impl(business_good_id, session)


def _get_business_good_impl(business_good_id: int, session: Session) -> Dict[str, Any]:
    good = session.get(BusinessGood, business_good_id)
    if good is None:
        raise BusinessGoodNotFound(business_good_id)
    return good.to_dict()


def delete_business_good(business_good_id: int, session: Optional[Session] = None) -> None:
    """Delete a business good.

    Raises:
        BusinessGoodNotFound: If the good doesn't exist
        ValidationError: If an order with open billing references it, or a
            set menu contains it
    """
    if session is not None:
        return _delete_business_good_impl(business_good_id, session)
    with session_scope() as session:
        return _delete_business_good_impl(business_good_id, session)


def _delete_business_good_impl(business_good_id: int, session: Session) -> None:
    good = session.get(BusinessGood, business_good_id)
    if good is None:
        raise BusinessGoodNotFound(business_good_id)

    open_orders = (
        session.query(Order.id)
        .join(OrderLine, OrderLine.order_id == Order.id)
        .filter(
            OrderLine.business_good_id == business_good_id,
            Order.billing_status == BILLING_STATUS_OPEN,
        )
        .distinct()
        .count()
    )
    if open_orders:
        raise ValidationError(
            [f"Cannot delete business good: referenced by {open_orders} open order(s)"]
        )

    set_menu_ids = [
        row[0]
        for row in session.query(SetMenuItem.set_menu_id)
        .filter(SetMenuItem.component_id == business_good_id)
        .distinct()
        .all()
    ]
    if set_menu_ids:
        raise ValidationError(
            [f"Cannot delete business good: used in set menu(s) {sorted(set_menu_ids)}"]
        )

    session.delete(good)
    session.flush()
    log_operation(
        logger,
        operation="delete_business_good",
        outcome="success",
        business_good_id=business_good_id,
    )
