"""
Business model - the owner of every back-office record.

Suppliers, supplier goods, inventories, business goods, tables, orders and
purchases all carry a business_id, and every service query is scoped by it.
"""

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from .base import BaseModel


class Business(BaseModel):
    """
    A restaurant or shop using the back office.

    Attributes:
        name: Trade name of the business (unique)

    Relationships:
        suppliers: Suppliers registered by the business
        supplier_goods: Supplier goods purchased by the business
        inventories: Inventory snapshots, at most one open
    """

    __tablename__ = "businesses"

    name = Column(String(200), nullable=False, unique=True)

    suppliers = relationship("Supplier", back_populates="business")
    supplier_goods = relationship("SupplierGood", back_populates="business")
    inventories = relationship("Inventory", back_populates="business")
