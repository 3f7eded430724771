"""Tests for service layer structured logging.

These tests verify that purchasing and inventory operations emit structured
log entries with appropriate context information.
"""

import logging
from decimal import Decimal

from src.services import inventory_service, purchase_service, supplier_good_service
from src.services.logging_utils import get_service_logger, log_operation


class TestLoggingUtilities:
    """Tests for logging utility functions."""

    def test_get_service_logger_returns_logger(self):
        """get_service_logger returns a configured Logger instance."""
        logger = get_service_logger("test_module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "backoffice.services.test_module"

    def test_get_service_logger_extracts_module_name(self):
        """get_service_logger extracts module name from full path."""
        logger = get_service_logger("src.services.inventory_service")
        assert logger.name == "backoffice.services.inventory_service"

    def test_log_operation_logs_at_info_level(self, caplog):
        """log_operation logs at INFO level by default."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(logger, operation="test_op", outcome="success", entity_id=123)

        assert "test_op: success" in caplog.text

    def test_log_operation_logs_at_custom_level(self, caplog):
        """log_operation respects custom log level."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.DEBUG):
            log_operation(
                logger, operation="debug_op", outcome="debug_outcome", level=logging.DEBUG
            )

        assert "debug_op: debug_outcome" in caplog.text

    def test_log_operation_includes_extra_context(self, caplog):
        """log_operation includes extra context in log records."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(
                logger,
                operation="context_test",
                outcome="success",
                purchase_id=42,
                business_id=7,
            )

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.operation == "context_test"
        assert record.outcome == "success"
        assert record.purchase_id == 42
        assert record.business_id == 7


class TestReconciliationLogging:
    """Secondary failures after a committed purchase are logged as warnings."""

    def test_missing_open_inventory_logged(self, test_db, caplog, business, supplier, flour):
        with caplog.at_level(logging.WARNING, logger="backoffice.services"):
            result = purchase_service.create_purchase(
                business_id=business["id"],
                supplier_id=supplier["id"],
                purchased_by_user_id=7,
                total_amount=Decimal("50"),
                purchase_items=[
                    {"supplier_good_id": flour["id"], "quantity_purchased": 10, "purchase_price": 50}
                ],
            )

        assert result.reconciliation_error is not None
        outcomes = [(getattr(r, "operation", None), getattr(r, "outcome", None)) for r in caplog.records]
        assert ("reconcile_purchase", "no_open_inventory") in outcomes
        assert ("create_purchase", "reconciliation_failed") in outcomes
        failed = next(r for r in caplog.records if getattr(r, "outcome", None) == "reconciliation_failed")
        assert failed.levelno == logging.WARNING
        assert failed.purchase_id == result.purchase["id"]

    def test_partial_reconciliation_logged(self, test_db, caplog, business, supplier, flour, stocked):
        sugar = supplier_good_service.create_supplier_good(
            business["id"], supplier["id"], {"name": "Sugar", "main_category": "Food"}
        )

        with caplog.at_level(logging.WARNING, logger="backoffice.services"):
            inventory_service.reconcile_purchase_items(
                business["id"],
                [
                    {"supplier_good_id": flour["id"], "quantity_purchased": 1},
                    {"supplier_good_id": sugar["id"], "quantity_purchased": 1},
                ],
            )

        partial = [r for r in caplog.records if getattr(r, "outcome", None) == "partial"]
        assert len(partial) == 1
        assert partial[0].unmatched_supplier_good_ids == [sugar["id"]]
