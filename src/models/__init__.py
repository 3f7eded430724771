"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .business import Business
from .supplier import Supplier
from .supplier_good import SupplierGood
from .inventory import Inventory, InventoryGood
from .purchase import Purchase, PurchaseItem
from .business_good import BusinessGood, BusinessGoodIngredient, SetMenuItem
from .table import Table
from .order import Order, OrderLine

__all__ = [
    "Base",
    "BaseModel",
    # Procurement
    "Business",
    "Supplier",
    "SupplierGood",
    "Purchase",
    "PurchaseItem",
    # Inventory
    "Inventory",
    "InventoryGood",
    # Menu
    "BusinessGood",
    "BusinessGoodIngredient",
    "SetMenuItem",
    # Service
    "Table",
    "Order",
    "OrderLine",
]
