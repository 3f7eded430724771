"""
Main entry point for the Restaurant Back Office.

Command-line interface for the back office maintenance tasks that run
outside request handling: database setup, inventory cycles, and replaying
purchase reconciliation after an inventory has been opened.

Usage Examples:
    # Create the database and tables
    python -m src.main init-db

    # Open an inventory cycle for business 1
    python -m src.main open-inventory 1

    # Close inventory 3 with physical counts (supplier good id=count)
    python -m src.main close-inventory 3 --count 17=12.5 --count 18=40

    # Replay reconciliation of purchase 42 into the open inventory
    python -m src.main reconcile-purchase 42

    # Recost a business good (and its set menus) after supplier repricing
    python -m src.main recost-good 9
"""

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation

from src.services import business_good_service, inventory_service
from src.services.database import initialize_app_database
from src.services.exceptions import ServiceError
from src.utils.config import get_config

logger = logging.getLogger(__name__)


def _parse_count(value: str):
    """Parse a SUPPLIER_GOOD_ID=COUNT argument."""
    try:
        supplier_good_id, count = value.split("=", 1)
        return int(supplier_good_id), Decimal(count)
    except (ValueError, InvalidOperation):
        raise argparse.ArgumentTypeError(f"Expected SUPPLIER_GOOD_ID=COUNT, got '{value}'")


def open_inventory_cmd(business_id: int) -> int:
    inventory = inventory_service.open_inventory(business_id)
    print(
        f"Opened inventory {inventory['id']} for business {business_id} "
        f"with {len(inventory['inventory_goods'])} supplier goods"
    )
    return 0


def close_inventory_cmd(inventory_id: int, counts, user_id) -> int:
    inventory = inventory_service.close_inventory(
        inventory_id, dict(counts or []), finalized_by_user_id=user_id
    )
    counted = [g for g in inventory["inventory_goods"] if g["current_count_quantity"] is not None]
    print(f"Closed inventory {inventory_id}: {len(counted)} goods counted")
    for good in counted:
        deviation = good["deviation_percent"]
        deviation_text = "n/a" if deviation is None else f"{deviation:.2f}%"
        print(
            f"  supplier good {good['supplier_good_id']}: "
            f"system {good['dynamic_system_count']}, "
            f"counted {good['current_count_quantity']}, deviation {deviation_text}"
        )
    return 0


def reconcile_purchase_cmd(purchase_id: int) -> int:
    result = inventory_service.reconcile_purchase(purchase_id)
    if result.skipped:
        print(f"Purchase {purchase_id} has no catalog lines to reconcile")
        return 0
    print(
        f"Purchase {purchase_id} -> inventory {result.inventory_id}: "
        f"{len(result.matched_ids)} applied, "
        f"{len(result.already_reconciled_ids)} already applied, "
        f"{len(result.unmatched_ids)} unmatched"
    )
    return 1 if result.unmatched_ids else 0


def recost_good_cmd(business_good_id: int) -> int:
    good = business_good_service.recalculate_business_good_cost(business_good_id)
    print(f"Business good {good['id']} '{good['name']}': cost price {good['cost_price']}")
    return 0


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Restaurant Back Office maintenance commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create the database and tables")

    open_parser = subparsers.add_parser("open-inventory", help="Open an inventory cycle")
    open_parser.add_argument("business_id", type=int, help="Business ID")

    close_parser = subparsers.add_parser(
        "close-inventory", help="Finalize an inventory with physical counts"
    )
    close_parser.add_argument("inventory_id", type=int, help="Inventory ID")
    close_parser.add_argument(
        "--count",
        dest="counts",
        action="append",
        type=_parse_count,
        metavar="SUPPLIER_GOOD_ID=COUNT",
        help="Physical count of one supplier good (repeatable)",
    )
    close_parser.add_argument("--user", type=int, default=None, help="Counting user ID")

    reconcile_parser = subparsers.add_parser(
        "reconcile-purchase", help="Replay reconciliation of a recorded purchase"
    )
    reconcile_parser.add_argument("purchase_id", type=int, help="Purchase ID")

    recost_parser = subparsers.add_parser(
        "recost-good", help="Recalculate a business good's cost price"
    )
    recost_parser.add_argument("business_good_id", type=int, help="Business good ID")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 1

    config = get_config()
    logger.info(f"Restaurant Back Office v{config.app_version} ({config.environment})")

    initialize_app_database()

    try:
        if args.command == "init-db":
            print(f"Database ready at {config.database_url}")
            return 0
        elif args.command == "open-inventory":
            return open_inventory_cmd(args.business_id)
        elif args.command == "close-inventory":
            return close_inventory_cmd(args.inventory_id, args.counts, args.user)
        elif args.command == "reconcile-purchase":
            return reconcile_purchase_cmd(args.purchase_id)
        elif args.command == "recost-good":
            return recost_good_cmd(args.business_good_id)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
