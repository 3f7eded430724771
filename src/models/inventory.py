"""
Inventory models for the per-business stock-count cycle.

This module contains:
- Inventory: one count cycle for a business
- InventoryGood: per supplier good running count within a cycle

Lifecycle:
    Open (set_final_count=False) -> receives reconciliation increments from
    any number of purchases -> Closed (set_final_count=True) once a physical
    count finalizes it. Closed inventories are history and never reopened;
    the next cycle is a new Inventory row.

A business has at most one open inventory. The partial unique index
uq_inventory_one_open_per_business enforces it in the database so two
concurrent "open inventory" requests cannot both succeed.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    Boolean,
    DateTime,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel, decimal_column


class Inventory(BaseModel):
    """
    A stock-count cycle for one business.

    Attributes:
        business_id: Owning business
        set_final_count: False while open, True once finalized
        finalized_at: When the physical count closed the cycle
        finalized_by_user_id: User who entered the physical count
        notes: Optional notes

    Relationships:
        inventory_goods: Per supplier good counts
    """

    __tablename__ = "inventories"

    business_id = Column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    set_final_count = Column(Boolean, nullable=False, default=False)
    finalized_at = Column(DateTime, nullable=True)
    finalized_by_user_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    business = relationship("Business", back_populates="inventories")
    inventory_goods = relationship(
        "InventoryGood",
        back_populates="inventory",
        cascade="all, delete-orphan",
        order_by="InventoryGood.id",
    )

    __table_args__ = (
        Index(
            "uq_inventory_one_open_per_business",
            "business_id",
            unique=True,
            sqlite_where=set_final_count == False,  # noqa: E712
            postgresql_where=set_final_count == False,  # noqa: E712
        ),
    )

    @property
    def is_open(self) -> bool:
        """True while the inventory accepts reconciliation increments."""
        return not self.set_final_count

    def __repr__(self) -> str:
        """String representation of inventory."""
        state = "closed" if self.set_final_count else "open"
        return f"Inventory(id={self.id}, business_id={self.business_id}, {state})"


class InventoryGood(BaseModel):
    """
    Running and physical counts of one supplier good within an inventory.

    dynamic_system_count only ever changes through SQL-side increments
    (dynamic_system_count = dynamic_system_count + n); loading the row,
    adding in Python and saving it back loses concurrent purchases.

    Attributes:
        inventory_id: Parent inventory
        supplier_good_id: Counted supplier good
        dynamic_system_count: System estimate, seeded at open and raised by purchases
        current_count_quantity: Physical count entered at finalization
        deviation_percent: (system - physical) / system * 100, set at finalization
    """

    __tablename__ = "inventory_goods"

    inventory_id = Column(
        Integer, ForeignKey("inventories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    supplier_good_id = Column(
        Integer, ForeignKey("supplier_goods.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    dynamic_system_count = decimal_column(nullable=False, default=Decimal("0"))
    current_count_quantity = decimal_column(nullable=True)
    deviation_percent = decimal_column(nullable=True)

    inventory = relationship("Inventory", back_populates="inventory_goods")
    supplier_good = relationship("SupplierGood")

    __table_args__ = (
        UniqueConstraint(
            "inventory_id", "supplier_good_id", name="uq_inventory_good_inventory_supplier_good"
        ),
    )

    def __repr__(self) -> str:
        """String representation of inventory good."""
        return (
            f"InventoryGood(inventory_id={self.inventory_id}, "
            f"supplier_good_id={self.supplier_good_id}, "
            f"dynamic_system_count={self.dynamic_system_count})"
        )
