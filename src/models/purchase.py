"""
Purchase models for the append-only purchasing ledger.

This module contains:
- Purchase: one receipt from a supplier (or the one-time-purchase sentinel)
- PurchaseItem: one purchased line

Purchases are immutable once created; there is no update or delete path.
The ledger is the source of truth for purchased quantities, and inventory
reconciliation is a replayable side effect of it. Each line remembers the
inventory it was reconciled into so a replay never applies it twice.
"""

from datetime import date

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel, decimal_column


class Purchase(BaseModel):
    """
    Purchase model representing one receipt.

    Attributes:
        business_id: Purchasing business
        supplier_id: Supplier, or the business's one-time-purchase sentinel
        purchased_by_user_id: User who recorded the purchase
        purchase_date: When the purchase was made
        receipt_id: Receipt identifier, unique per business and supplier
        total_amount: Receipt total
        one_time_purchase: True for ad-hoc purchases without catalog lines

    Relationships:
        supplier: The Supplier the purchase was made from
        purchase_items: Purchased lines
    """

    __tablename__ = "purchases"

    # Purchases are immutable
    updated_at = None

    business_id = Column(
        Integer, ForeignKey("businesses.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    supplier_id = Column(
        Integer, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    purchased_by_user_id = Column(Integer, nullable=False)
    purchase_date = Column(Date, nullable=False, default=date.today, index=True)
    receipt_id = Column(String(100), nullable=False)
    total_amount = decimal_column(nullable=False)
    one_time_purchase = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    supplier = relationship("Supplier", back_populates="purchases")
    purchase_items = relationship(
        "PurchaseItem",
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseItem.id",
    )

    __table_args__ = (
        UniqueConstraint(
            "business_id", "supplier_id", "receipt_id", name="uq_purchase_business_supplier_receipt"
        ),
        CheckConstraint("total_amount > 0", name="ck_purchase_total_amount_positive"),
        Index("idx_purchase_business_date", "business_id", "purchase_date"),
    )

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert purchase to dictionary.

        Purchase items are always included; they are part of the receipt.
        """
        result = super().to_dict(include_relationships)
        result["purchase_items"] = [item.to_dict() for item in self.purchase_items]
        return result

    def __repr__(self) -> str:
        """String representation of purchase."""
        return (
            f"Purchase(id={self.id}, "
            f"business_id={self.business_id}, "
            f"supplier_id={self.supplier_id}, "
            f"receipt_id='{self.receipt_id}')"
        )


class PurchaseItem(BaseModel):
    """
    One purchased line.

    Attributes:
        purchase_id: Parent purchase
        supplier_good_id: Catalog supplier good (None for ad-hoc lines)
        description: Free text for ad-hoc lines
        quantity_purchased: Quantity bought, in the good's measurement unit
        purchase_price: Price paid for the line
        reconciled_inventory_id: Inventory this line was counted into, if any
    """

    __tablename__ = "purchase_items"

    purchase_id = Column(
        Integer, ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    supplier_good_id = Column(
        Integer, ForeignKey("supplier_goods.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    description = Column(String(200), nullable=True)
    quantity_purchased = decimal_column(nullable=False)
    purchase_price = decimal_column(nullable=False)
    reconciled_inventory_id = Column(
        Integer, ForeignKey("inventories.id", ondelete="SET NULL"), nullable=True
    )

    purchase = relationship("Purchase", back_populates="purchase_items")
    supplier_good = relationship("SupplierGood")

    __table_args__ = (
        CheckConstraint("quantity_purchased > 0", name="ck_purchase_item_quantity_positive"),
        CheckConstraint("purchase_price > 0", name="ck_purchase_item_price_positive"),
    )

    @property
    def is_reconciled(self) -> bool:
        """True once the line has been counted into an inventory."""
        return self.reconciled_inventory_id is not None
