"""
Tests for Business Good Service - composite cost calculation.

Tests cover:
- composition_from_payload() tagged union and mutual exclusivity
- Ingredient-mode cost and allergen derivation
- Set-menu cost and allergen derivation, one level deep
- Recomposition clears the unused composition
- Recosting of set menus when a component changes
- delete_business_good() guards
"""

import pytest
from decimal import Decimal

from src.models import BusinessGoodIngredient, SetMenuItem
from src.services import (
    business_good_service,
    business_service,
    order_service,
    supplier_good_service,
)
from src.services.business_good_service import (
    IngredientsComposition,
    SetMenuComposition,
    composition_from_payload,
)
from src.services.exceptions import (
    BusinessGoodNotFound,
    DuplicateName,
    ValidationError,
)


@pytest.fixture
def espresso(test_db, business, supplier):
    """Set-menu component: 18 g of beans at 20.00/kg, cost 0.36."""
    beans = supplier_good_service.create_supplier_good(
        business["id"],
        supplier["id"],
        {
            "name": "Coffee Beans",
            "main_category": "Beverage",
            "measurement_unit": "kg",
            "total_quantity_per_unit": Decimal("1"),
            "whole_sale_price": Decimal("20"),
        },
    )
    return business_good_service.create_business_good(
        business["id"],
        {
            "name": "Espresso",
            "main_category": "Beverage",
            "ingredients": [
                {"supplier_good_id": beans["id"], "required_quantity": Decimal("18"), "measurement_unit": "g"}
            ],
        },
    )


@pytest.fixture
def breakfast(test_db, business, pancake, espresso):
    """Set menu: pancake stack + espresso."""
    return business_good_service.create_business_good(
        business["id"],
        {
            "name": "Breakfast Menu",
            "main_category": "Set Menu",
            "set_menu": [pancake["id"], espresso["id"]],
        },
    )


class TestCompositionFromPayload:
    """Tests for composition_from_payload()."""

    def test_ingredients(self):
        composition = composition_from_payload(
            ingredients=[{"supplier_good_id": 1, "required_quantity": "2"}]
        )
        assert isinstance(composition, IngredientsComposition)
        assert composition.lines[0].required_quantity == Decimal("2")

    def test_set_menu(self):
        composition = composition_from_payload(set_menu=[4, 5, 4])
        assert isinstance(composition, SetMenuComposition)
        assert composition.component_ids == (4, 5, 4)

    def test_both_rejected(self):
        with pytest.raises(ValidationError) as excinfo:
            composition_from_payload(
                ingredients=[{"supplier_good_id": 1, "required_quantity": 1}], set_menu=[2]
            )
        assert "Only one of ingredients or set_menu" in str(excinfo.value)

    def test_neither(self):
        assert composition_from_payload() is None

    def test_missing_quantity_and_reference(self):
        with pytest.raises(ValidationError) as excinfo:
            composition_from_payload(ingredients=[{"required_quantity": 0}])
        assert len(excinfo.value.errors) == 2

    def test_empty_lists(self):
        with pytest.raises(ValidationError):
            composition_from_payload(ingredients=[])
        with pytest.raises(ValidationError):
            composition_from_payload(set_menu=[])


class TestIngredientCost:
    """Ingredient-mode cost and allergen derivation."""

    def test_cost_and_allergens(self, test_db, pancake, flour, milk):
        assert pancake["cost_price"] == Decimal("13")
        assert pancake["allergens"] == ["gluten"]
        assert pancake["composition_type"] == "ingredients"
        assert "set_menu" not in pancake

        lines = {line["supplier_good_id"]: line for line in pancake["ingredients"]}
        assert lines[flour["id"]]["cost_of_required_quantity"] == Decimal("10")
        assert lines[milk["id"]]["cost_of_required_quantity"] == Decimal("3")

    def test_unit_conversion_in_cost(self, test_db, business, flour):
        good = business_good_service.create_business_good(
            business["id"],
            {
                "name": "Roux",
                "main_category": "Food",
                "ingredients": [
                    {"supplier_good_id": flour["id"], "required_quantity": "500", "measurement_unit": "g"}
                ],
            },
        )
        assert good["cost_price"] == Decimal("2.5")

    def test_cross_business_ingredient_rejected(self, test_db, flour):
        other = business_service.create_business("Bistro")
        with pytest.raises(ValidationError) as excinfo:
            business_good_service.create_business_good(
                other["id"],
                {
                    "name": "Bread",
                    "main_category": "Food",
                    "ingredients": [{"supplier_good_id": flour["id"], "required_quantity": 1}],
                },
            )
        assert "not found in business" in str(excinfo.value)

    def test_both_compositions_rejected(self, test_db, business, flour, pancake):
        with pytest.raises(ValidationError):
            business_good_service.create_business_good(
                business["id"],
                {
                    "name": "Confused",
                    "main_category": "Food",
                    "ingredients": [{"supplier_good_id": flour["id"], "required_quantity": 1}],
                    "set_menu": [pancake["id"]],
                },
            )

    def test_composition_required(self, test_db, business):
        with pytest.raises(ValidationError):
            business_good_service.create_business_good(
                business["id"], {"name": "Air", "main_category": "Food"}
            )

    def test_cost_price_cannot_be_supplied(self, test_db, business, flour):
        with pytest.raises(ValidationError):
            business_good_service.create_business_good(
                business["id"],
                {
                    "name": "Bread",
                    "main_category": "Food",
                    "cost_price": Decimal("1"),
                    "ingredients": [{"supplier_good_id": flour["id"], "required_quantity": 1}],
                },
            )

    def test_duplicate_name(self, test_db, business, flour, pancake):
        with pytest.raises(DuplicateName):
            business_good_service.create_business_good(
                business["id"],
                {
                    "name": "Pancake Stack",
                    "main_category": "Food",
                    "ingredients": [{"supplier_good_id": flour["id"], "required_quantity": 1}],
                },
            )


class TestSetMenuCost:
    """Set-menu cost and allergen derivation."""

    def test_sum_of_components(self, test_db, breakfast, pancake, espresso):
        assert breakfast["cost_price"] == Decimal("13.36")
        assert breakfast["allergens"] == ["gluten"]
        assert breakfast["set_menu"] == [pancake["id"], espresso["id"]]
        assert "ingredients" not in breakfast

    def test_repeated_component_counted_twice(self, test_db, business, espresso):
        double = business_good_service.create_business_good(
            business["id"],
            {"name": "Double Shot", "main_category": "Set Menu", "set_menu": [espresso["id"], espresso["id"]]},
        )
        assert double["cost_price"] == Decimal("0.72")

    def test_nested_set_menu_rejected(self, test_db, business, breakfast):
        with pytest.raises(ValidationError) as excinfo:
            business_good_service.create_business_good(
                business["id"],
                {"name": "Brunch", "main_category": "Set Menu", "set_menu": [breakfast["id"]]},
            )
        assert "cannot be nested" in str(excinfo.value)

    def test_unknown_component_rejected(self, test_db, business):
        with pytest.raises(ValidationError):
            business_good_service.create_business_good(
                business["id"],
                {"name": "Ghost Menu", "main_category": "Set Menu", "set_menu": [999]},
            )


class TestRecomposition:
    """Switching composition mode and recosting."""

    def test_switch_to_set_menu_clears_ingredients(self, test_db, business, espresso):
        good = business_good_service.create_business_good(
            business["id"],
            {"name": "Special", "main_category": "Food", "set_menu": [espresso["id"]]},
        )
        stored = business_good_service.get_business_good(good["id"])
        assert stored["composition_type"] == "set_menu"

        espresso_lines = business_good_service.get_business_good(espresso["id"])["ingredients"]
        updated = business_good_service.update_business_good(
            good["id"],
            {
                "ingredients": [
                    {
                        "supplier_good_id": espresso_lines[0]["supplier_good_id"],
                        "required_quantity": Decimal("0.036"),
                    }
                ]
            },
        )

        assert updated["composition_type"] == "ingredients"
        assert updated["cost_price"] == Decimal("0.72")
        assert test_db.query(SetMenuItem).filter(SetMenuItem.set_menu_id == good["id"]).count() == 0

    def test_switch_to_ingredients_replaces_lines(self, test_db, business, pancake, flour):
        business_good_service.update_business_good(
            pancake["id"],
            {"ingredients": [{"supplier_good_id": flour["id"], "required_quantity": 1}]},
        )
        count = (
            test_db.query(BusinessGoodIngredient)
            .filter(BusinessGoodIngredient.business_good_id == pancake["id"])
            .count()
        )
        assert count == 1
        assert business_good_service.get_business_good(pancake["id"])["cost_price"] == Decimal("5")

    def test_component_change_recosts_set_menu(self, test_db, breakfast, pancake, flour):
        business_good_service.update_business_good(
            pancake["id"],
            {"ingredients": [{"supplier_good_id": flour["id"], "required_quantity": 1}]},
        )
        assert business_good_service.get_business_good(breakfast["id"])["cost_price"] == Decimal("5.36")

    def test_component_cannot_become_set_menu(self, test_db, breakfast, pancake, espresso):
        with pytest.raises(ValidationError) as excinfo:
            business_good_service.update_business_good(pancake["id"], {"set_menu": [espresso["id"]]})
        assert "cannot be nested" in str(excinfo.value)

    def test_recalculate_after_reprice(self, test_db, pancake, flour, breakfast):
        supplier_good_service.update_supplier_good_pricing(flour["id"], whole_sale_price=Decimal("100"))

        recosted = business_good_service.recalculate_business_good_cost(pancake["id"])

        assert recosted["cost_price"] == Decimal("23")
        assert business_good_service.get_business_good(breakfast["id"])["cost_price"] == Decimal("23.36")


class TestDeleteBusinessGood:
    """Tests for delete_business_good()."""

    def test_delete(self, test_db, pancake):
        business_good_service.delete_business_good(pancake["id"])
        with pytest.raises(BusinessGoodNotFound):
            business_good_service.get_business_good(pancake["id"])

    def test_blocked_by_set_menu(self, test_db, breakfast, pancake):
        with pytest.raises(ValidationError) as excinfo:
            business_good_service.delete_business_good(pancake["id"])
        assert "set menu" in str(excinfo.value)

    def test_blocked_by_open_order(self, test_db, business, table, pancake):
        order_service.create_order(
            {
                "business_id": business["id"],
                "table_id": table["id"],
                "user_id": 1,
                "business_goods": [pancake["id"]],
                "order_price": Decimal("18"),
                "order_net_price": Decimal("18"),
                "order_cost_price": Decimal("13"),
            }
        )
        with pytest.raises(ValidationError) as excinfo:
            business_good_service.delete_business_good(pancake["id"])
        assert "open order" in str(excinfo.value)

    def test_unknown_good(self, test_db):
        with pytest.raises(BusinessGoodNotFound):
            business_good_service.delete_business_good(999)
