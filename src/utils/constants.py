"""
Constants and enumerations for the Back Office application.

This module defines all system-wide constants including:
- Unit types (weight, volume, count)
- Supplier good and business good categories
- Order, billing and table statuses
- Application metadata
"""

from decimal import Decimal
from typing import List

# ============================================================================
# Application Metadata
# ============================================================================

APP_VERSION = "0.1.0"
DATABASE_FILENAME = "back_office.db"

# ============================================================================
# Unit Types
# ============================================================================

WEIGHT_UNITS: List[str] = ["g", "kg", "oz", "lb"]

VOLUME_UNITS: List[str] = ["ml", "cl", "l", "tsp", "tbsp", "fl oz", "cup", "pt", "qt", "gal"]

COUNT_UNITS: List[str] = ["unit", "each", "piece", "dozen"]

ALL_UNITS: List[str] = WEIGHT_UNITS + VOLUME_UNITS + COUNT_UNITS

# ============================================================================
# Categories
# ============================================================================

SUPPLIER_GOOD_CATEGORIES: List[str] = [
    "Food",
    "Beverage",
    "Merchandise",
    "Cleaning",
    "Office",
    "Furniture",
    "Disposable",
    "Services",
    "Equipment",
    "Others",
]

BUSINESS_GOOD_CATEGORIES: List[str] = ["Set Menu", "Food", "Beverage", "Merchandise"]

DEFAULT_SUB_CATEGORY = "No subcategory"

# ============================================================================
# Composition
# ============================================================================

COMPOSITION_INGREDIENTS = "ingredients"
COMPOSITION_SET_MENU = "set_menu"

# ============================================================================
# Purchasing
# ============================================================================

# Trade name of the per-business sentinel supplier for ad-hoc purchases
ONE_TIME_PURCHASE_SUPPLIER_NAME = "One Time Purchase"

# ============================================================================
# Orders and Tables
# ============================================================================

STOCK_DIRECTION_ADD = "add"
STOCK_DIRECTION_REMOVE = "remove"
STOCK_DIRECTIONS: List[str] = [STOCK_DIRECTION_ADD, STOCK_DIRECTION_REMOVE]

ORDER_STATUS_SENT = "Sent"
ORDER_STATUS_DONE = "Done"
ORDER_STATUS_CANCEL = "Cancel"

BILLING_STATUS_OPEN = "Open"
BILLING_STATUS_PAID = "Paid"
BILLING_STATUS_VOID = "Void"

# Roles that prepare beverages on the spot; their beverage orders skip the kitchen
ON_SPOT_BEVERAGE_ROLES: List[str] = ["Barista", "Bartender", "Cashier"]

TABLE_STATUS_OCCUPIED = "Occupied"
TABLE_STATUS_CLOSED = "Closed"

# ============================================================================
# Numeric precision
# ============================================================================

MONEY_PRECISION = 12
MONEY_SCALE = 4
ZERO = Decimal("0")

# ============================================================================
# Validation messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_POSITIVE = "Must be greater than zero"
ERROR_INVALID_NON_NEGATIVE = "Must be zero or greater"
ERROR_INVALID_UNIT = "Invalid unit of measurement"
ERROR_INVALID_REFERENCE = "Must be a valid record identifier"
