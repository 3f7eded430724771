"""Tests for the back office command line.

The commands run against the test database; database setup is patched out.
"""

import pytest
from decimal import Decimal
from unittest.mock import patch

from src import main as cli
from src.services import inventory_service, purchase_service
from src.utils.config import reset_config


@pytest.fixture
def cli_db(test_db, monkeypatch):
    """Point the CLI at the test database."""
    monkeypatch.setenv("BACKOFFICE_DATABASE_URL", "sqlite:///:memory:")
    reset_config()
    with patch("src.main.initialize_app_database"):
        yield test_db
    reset_config()


class TestParseCount:
    def test_valid(self):
        assert cli._parse_count("17=12.5") == (17, Decimal("12.5"))

    @pytest.mark.parametrize("value", ["17", "x=3", "17=abc"])
    def test_invalid(self, value):
        with pytest.raises(Exception) as excinfo:
            cli._parse_count(value)
        assert "SUPPLIER_GOOD_ID=COUNT" in str(excinfo.value)


class TestCommands:
    def test_no_command_prints_help(self, cli_db, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_open_and_close_inventory(self, cli_db, capsys, business, flour):
        assert cli.main(["open-inventory", str(business["id"])]) == 0
        inventory_id = inventory_service.get_open_inventory(business["id"])["id"]

        code = cli.main(
            ["close-inventory", str(inventory_id), "--count", f"{flour['id']}=3", "--user", "5"]
        )

        assert code == 0
        output = capsys.readouterr().out
        assert f"Opened inventory {inventory_id}" in output
        assert "1 goods counted" in output
        assert "deviation n/a" in output

    def test_reconcile_purchase(self, cli_db, capsys, business, supplier, flour):
        purchase = purchase_service.create_purchase(
            business_id=business["id"],
            supplier_id=supplier["id"],
            purchased_by_user_id=7,
            total_amount=Decimal("50"),
            purchase_items=[
                {"supplier_good_id": flour["id"], "quantity_purchased": 10, "purchase_price": 50}
            ],
        ).purchase
        inventory_service.open_inventory(business["id"])

        assert cli.main(["reconcile-purchase", str(purchase["id"])]) == 0
        assert "1 applied" in capsys.readouterr().out

    def test_recost_good(self, cli_db, capsys, pancake):
        assert cli.main(["recost-good", str(pancake["id"])]) == 0
        assert "cost price 13" in capsys.readouterr().out

    def test_service_error_returns_one(self, cli_db, capsys):
        assert cli.main(["open-inventory", "999"]) == 1
        assert "ERROR" in capsys.readouterr().out
