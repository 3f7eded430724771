"""Tests for Table Service."""

import pytest
from decimal import Decimal

from src.models import Order
from src.services import order_service, table_service
from src.services.exceptions import BusinessNotFound, TableNotFound, ValidationError
from src.utils.constants import BILLING_STATUS_PAID, TABLE_STATUS_CLOSED


def _place_order(business, table, pancake):
    return order_service.create_order(
        {
            "business_id": business["id"],
            "table_id": table["id"],
            "user_id": 1,
            "business_goods": [pancake["id"]],
            "order_price": Decimal("18"),
            "order_net_price": Decimal("18"),
            "order_cost_price": Decimal("13"),
        }
    ).order


class TestOpenTable:
    def test_open_table(self, test_db, table):
        assert table["table_reference"] == "T1"
        assert table["guests"] == 2
        assert table["status"] == "Occupied"
        assert table["table_total_price"] == Decimal("0")

    def test_blank_reference(self, test_db, business):
        with pytest.raises(ValidationError):
            table_service.open_table(business["id"], "  ")

    def test_guests_at_least_one(self, test_db, business):
        with pytest.raises(ValidationError):
            table_service.open_table(business["id"], "T2", guests=0)

    def test_unknown_business(self, test_db):
        with pytest.raises(BusinessNotFound):
            table_service.open_table(999, "T2")


class TestCloseTable:
    def test_table_without_orders_is_deleted(self, test_db, table):
        result = table_service.close_table(table["id"], closed_by_user_id=3)

        assert result == {"table_id": table["id"], "action": "deleted"}
        with pytest.raises(TableNotFound):
            table_service.get_table(table["id"])

    def test_open_billing_blocks_close(self, test_db, business, table, pancake):
        _place_order(business, table, pancake)

        with pytest.raises(ValidationError) as excinfo:
            table_service.close_table(table["id"], closed_by_user_id=3)
        assert "open billing" in str(excinfo.value)

    def test_billed_table_is_closed(self, test_db, business, table, pancake):
        order = _place_order(business, table, pancake)
        session = test_db()
        session.get(Order, order["id"]).billing_status = BILLING_STATUS_PAID
        session.commit()

        result = table_service.close_table(table["id"], closed_by_user_id=3)

        assert result["action"] == "closed"
        assert result["table"]["status"] == TABLE_STATUS_CLOSED
        assert result["table"]["closed_by_user_id"] == 3
        assert result["table"]["closed_at"] is not None

    def test_cancelled_orders_do_not_block(self, test_db, business, table, pancake):
        order = _place_order(business, table, pancake)
        order_service.cancel_order(order["id"])

        result = table_service.close_table(table["id"], closed_by_user_id=3)

        assert result["action"] == "closed"

    def test_close_twice_rejected(self, test_db, business, table, pancake):
        order = _place_order(business, table, pancake)
        order_service.cancel_order(order["id"])
        table_service.close_table(table["id"], closed_by_user_id=3)

        with pytest.raises(ValidationError):
            table_service.close_table(table["id"], closed_by_user_id=3)

    def test_unknown_table(self, test_db):
        with pytest.raises(TableNotFound):
            table_service.close_table(999, closed_by_user_id=3)
