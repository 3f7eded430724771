"""
Tests for Inventory Service.

Tests cover:
- open_inventory() seeding and the one-open-inventory rule
- reconcile_purchase_items() increments, partial and failed reconciliation,
  line validation
- apply_sales_to_open_inventory() order consumption on the open cycle
- close_inventory() physical counts, deviation and dynamic count reset
"""

import pytest
from decimal import Decimal
from unittest.mock import patch

from src.models import Inventory
from src.services import inventory_service, supplier_good_service
from src.services.database import session_scope
from src.services.exceptions import (
    InventoryAlreadyOpen,
    InventoryNotFound,
    NotFoundError,
    OpenInventoryNotFound,
    ReconciliationError,
    ValidationError,
)


def _system_counts(business_id):
    inventory = inventory_service.get_open_inventory(business_id)
    return {
        line["supplier_good_id"]: line["dynamic_system_count"]
        for line in inventory["inventory_goods"]
    }


class TestOpenInventory:
    """Tests for open_inventory()."""

    def test_seeded_from_dynamic_counts(self, test_db, business, flour, milk, stocked):
        counts = _system_counts(business["id"])

        assert counts == {flour["id"]: Decimal("4"), milk["id"]: Decimal("6")}

    def test_second_open_inventory_conflicts(self, test_db, business, stocked):
        with pytest.raises(InventoryAlreadyOpen) as excinfo:
            inventory_service.open_inventory(business["id"])
        assert excinfo.value.inventory_id == stocked

    def test_goods_not_in_use_are_skipped(self, test_db, business, supplier, flour):
        supplier_good_service.create_supplier_good(
            business["id"],
            supplier["id"],
            {"name": "Old Syrup", "main_category": "Food", "currently_in_use": False},
        )
        inventory = inventory_service.open_inventory(business["id"])

        assert [g["supplier_good_id"] for g in inventory["inventory_goods"]] == [flour["id"]]

    def test_no_open_inventory(self, test_db, business):
        with pytest.raises(OpenInventoryNotFound):
            inventory_service.get_open_inventory(business["id"])

    def test_losing_insert_reports_existing_inventory(self, test_db, business, stocked):
        find = inventory_service.find_open_inventory_id
        lookups = []

        def miss_first_lookup(session, business_id):
            lookups.append(business_id)
            return None if len(lookups) == 1 else find(session, business_id)

        with patch.object(inventory_service, "find_open_inventory_id", side_effect=miss_first_lookup):
            with pytest.raises(InventoryAlreadyOpen) as excinfo:
                inventory_service.open_inventory(business["id"])

        assert excinfo.value.inventory_id == stocked
        open_count = (
            test_db.query(Inventory)
            .filter(Inventory.business_id == business["id"], Inventory.set_final_count == False)  # noqa: E712
            .count()
        )
        assert open_count == 1


class TestReconcilePurchaseItems:
    """Tests for reconcile_purchase_items()."""

    def test_increments_matching_line_only(self, test_db, business, flour, milk, stocked):
        result = inventory_service.reconcile_purchase_items(
            business["id"], [{"supplier_good_id": flour["id"], "quantity_purchased": Decimal("10")}]
        )

        assert result.inventory_id == stocked
        assert result.matched_ids == [flour["id"]]
        assert result.unmatched_ids == []
        assert _system_counts(business["id"]) == {
            flour["id"]: Decimal("14"),
            milk["id"]: Decimal("6"),
        }
        flour_now = supplier_good_service.get_supplier_good(flour["id"])
        milk_now = supplier_good_service.get_supplier_good(milk["id"])
        assert flour_now["dynamic_count_from_last_inventory"] == Decimal("14")
        assert milk_now["dynamic_count_from_last_inventory"] == Decimal("6")

    def test_partial_reconciliation(self, test_db, business, supplier, flour, milk, stocked):
        sugar = supplier_good_service.create_supplier_good(
            business["id"], supplier["id"], {"name": "Sugar", "main_category": "Food"}
        )

        result = inventory_service.reconcile_purchase_items(
            business["id"],
            [
                {"supplier_good_id": flour["id"], "quantity_purchased": Decimal("1")},
                {"supplier_good_id": sugar["id"], "quantity_purchased": Decimal("5")},
                {"supplier_good_id": milk["id"], "quantity_purchased": Decimal("2")},
            ],
        )

        assert result.matched_ids == [flour["id"], milk["id"]]
        assert result.unmatched_ids == [sugar["id"]]
        assert result.is_partial
        assert _system_counts(business["id"]) == {
            flour["id"]: Decimal("5"),
            milk["id"]: Decimal("8"),
        }

    def test_nothing_matched_raises(self, test_db, business, supplier, flour, stocked):
        sugar = supplier_good_service.create_supplier_good(
            business["id"], supplier["id"], {"name": "Sugar", "main_category": "Food"}
        )

        with pytest.raises(ReconciliationError) as excinfo:
            inventory_service.reconcile_purchase_items(
                business["id"], [{"supplier_good_id": sugar["id"], "quantity_purchased": 5}]
            )
        assert excinfo.value.unmatched_ids == [sugar["id"]]

    def test_no_open_inventory_leaves_counts_unchanged(self, test_db, business, flour, milk):
        first = inventory_service.open_inventory(business["id"])
        inventory_service.close_inventory(first["id"], {flour["id"]: Decimal("4")})

        with pytest.raises(NotFoundError):
            inventory_service.reconcile_purchase_items(
                business["id"], [{"supplier_good_id": flour["id"], "quantity_purchased": 10}]
            )

        closed = inventory_service.get_inventory(first["id"])
        line = next(g for g in closed["inventory_goods"] if g["supplier_good_id"] == flour["id"])
        assert line["dynamic_system_count"] == Decimal("0")
        good = supplier_good_service.get_supplier_good(flour["id"])
        assert good["dynamic_count_from_last_inventory"] == Decimal("4")

    def test_lines_without_supplier_good_are_ignored(self, test_db, business, flour, stocked):
        result = inventory_service.reconcile_purchase_items(
            business["id"],
            [
                {"description": "Ice", "quantity_purchased": 2},
                {"supplier_good_id": flour["id"], "quantity_purchased": 2},
            ],
        )
        assert result.matched_ids == [flour["id"]]

    def test_empty_items_raise(self, test_db, business, stocked):
        with pytest.raises(ReconciliationError):
            inventory_service.reconcile_purchase_items(business["id"], [])

    def test_only_lines_without_supplier_good_raise(self, test_db, business, stocked):
        with pytest.raises(ReconciliationError):
            inventory_service.reconcile_purchase_items(
                business["id"], [{"description": "Ice", "quantity_purchased": 2}]
            )

    @pytest.mark.parametrize("quantity", [None, 0, -3, "abc"])
    def test_invalid_quantity_rejected_before_any_write(
        self, test_db, business, flour, milk, stocked, quantity
    ):
        items = [
            {"supplier_good_id": milk["id"], "quantity_purchased": 2},
            {"supplier_good_id": flour["id"], "quantity_purchased": quantity},
        ]

        with pytest.raises(ValidationError) as excinfo:
            inventory_service.reconcile_purchase_items(business["id"], items)

        assert "Line 2 quantity" in str(excinfo.value)
        assert _system_counts(business["id"]) == {
            flour["id"]: Decimal("4"),
            milk["id"]: Decimal("6"),
        }

    def test_missing_quantity_key_rejected(self, test_db, business, flour, stocked):
        with pytest.raises(ValidationError):
            inventory_service.reconcile_purchase_items(
                business["id"], [{"supplier_good_id": flour["id"]}]
            )

    def test_unmatched_good_keeps_its_dynamic_count(self, test_db, business, supplier, flour, stocked):
        sugar = supplier_good_service.create_supplier_good(
            business["id"], supplier["id"], {"name": "Sugar", "main_category": "Food"}
        )

        inventory_service.reconcile_purchase_items(
            business["id"],
            [
                {"supplier_good_id": flour["id"], "quantity_purchased": 1},
                {"supplier_good_id": sugar["id"], "quantity_purchased": 5},
            ],
        )

        sugar_now = supplier_good_service.get_supplier_good(sugar["id"])
        assert sugar_now["dynamic_count_from_last_inventory"] == Decimal("0")


class TestApplySalesToOpenInventory:
    """Tests for apply_sales_to_open_inventory()."""

    def test_moves_open_inventory_lines(self, test_db, business, flour, milk, stocked):
        with session_scope() as session:
            updated = inventory_service.apply_sales_to_open_inventory(
                session, business["id"], {flour["id"]: Decimal("-2"), milk["id"]: Decimal("0")}
            )

        assert updated == [flour["id"]]
        assert _system_counts(business["id"]) == {
            flour["id"]: Decimal("2"),
            milk["id"]: Decimal("6"),
        }

    def test_without_open_inventory_writes_nothing(self, test_db, business, flour):
        with session_scope() as session:
            updated = inventory_service.apply_sales_to_open_inventory(
                session, business["id"], {flour["id"]: Decimal("-2")}
            )

        assert updated == []


class TestCloseInventory:
    """Tests for close_inventory()."""

    def test_records_counts_and_resets_dynamic_counts(self, test_db, business, flour, milk, stocked):
        closed = inventory_service.close_inventory(
            stocked, {flour["id"]: Decimal("3")}, finalized_by_user_id=5
        )

        assert closed["set_final_count"] is True
        assert closed["finalized_by_user_id"] == 5
        lines = {g["supplier_good_id"]: g for g in closed["inventory_goods"]}
        assert lines[flour["id"]]["current_count_quantity"] == Decimal("3")
        assert lines[flour["id"]]["deviation_percent"] == Decimal("25")
        assert lines[milk["id"]]["current_count_quantity"] is None

        flour_now = supplier_good_service.get_supplier_good(flour["id"])
        milk_now = supplier_good_service.get_supplier_good(milk["id"])
        assert flour_now["dynamic_count_from_last_inventory"] == Decimal("3")
        assert flour_now["last_inventory_count_date"] is not None
        assert milk_now["dynamic_count_from_last_inventory"] == Decimal("6")

    def test_zero_system_count_has_no_deviation(self, test_db, business, flour):
        inventory = inventory_service.open_inventory(business["id"])
        closed = inventory_service.close_inventory(inventory["id"], {flour["id"]: 2})

        assert closed["inventory_goods"][0]["deviation_percent"] is None

    def test_closed_inventory_cannot_be_closed_again(self, test_db, business, flour, stocked):
        inventory_service.close_inventory(stocked, {flour["id"]: 1})

        with pytest.raises(ValidationError):
            inventory_service.close_inventory(stocked, {flour["id"]: 1})

    def test_closed_inventory_is_not_reconciled(self, test_db, business, flour, stocked):
        inventory_service.close_inventory(stocked, {flour["id"]: 4})

        with pytest.raises(OpenInventoryNotFound):
            inventory_service.reconcile_purchase_items(
                business["id"], [{"supplier_good_id": flour["id"], "quantity_purchased": 1}]
            )
        line = next(
            g
            for g in inventory_service.get_inventory(stocked)["inventory_goods"]
            if g["supplier_good_id"] == flour["id"]
        )
        assert line["dynamic_system_count"] == Decimal("4")

    def test_unknown_good_rejected(self, test_db, business, stocked):
        with pytest.raises(ValidationError):
            inventory_service.close_inventory(stocked, {999: 1})

    def test_negative_count_rejected(self, test_db, business, flour, stocked):
        with pytest.raises(ValidationError):
            inventory_service.close_inventory(stocked, {flour["id"]: -1})

    def test_unknown_inventory(self, test_db):
        with pytest.raises(InventoryNotFound):
            inventory_service.close_inventory(999, {})

    def test_next_cycle_can_open_after_close(self, test_db, business, flour, stocked):
        inventory_service.close_inventory(stocked, {flour["id"]: 7})

        reopened = inventory_service.open_inventory(business["id"])

        assert reopened["id"] != stocked
        assert _system_counts(business["id"])[flour["id"]] == Decimal("7")
