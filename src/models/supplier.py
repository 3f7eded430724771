"""
Supplier model for tracking the vendors a business buys from.

Each business may also own exactly one sentinel supplier flagged
is_one_time_purchase. It stands in for the vendor of ad-hoc purchases
that have no catalog supplier.

Example: "Metro Cash & Carry" as a regular supplier, plus the business's
         "One Time Purchase" sentinel for a corner-shop emergency buy.
"""

from sqlalchemy import Column, String, Boolean, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from .base import BaseModel


class Supplier(BaseModel):
    """
    Supplier model representing vendors where supplier goods are purchased.

    Attributes:
        business_id: Owning business
        trade_name: Supplier trade name (e.g., "Metro Cash & Carry")
        notes: Optional notes (e.g., delivery days, account number)
        is_one_time_purchase: True only for the business's ad-hoc sentinel
        is_active: Soft delete flag (True = active, False = deactivated)

    Relationships:
        business: The owning Business
        supplier_goods: Catalog goods bought from this supplier
        purchases: Purchase transactions from this supplier
    """

    __tablename__ = "suppliers"

    business_id = Column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    trade_name = Column(String(200), nullable=False)
    notes = Column(Text, nullable=True)

    is_one_time_purchase = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    business = relationship("Business", back_populates="suppliers")
    supplier_goods = relationship("SupplierGood", back_populates="supplier")
    purchases = relationship("Purchase", back_populates="supplier")

    __table_args__ = (
        Index("idx_supplier_business_trade_name", "business_id", "trade_name"),
        # At most one one-time-purchase sentinel per business
        Index(
            "uq_supplier_one_time_purchase_per_business",
            "business_id",
            unique=True,
            sqlite_where=is_one_time_purchase == True,  # noqa: E712
            postgresql_where=is_one_time_purchase == True,  # noqa: E712
        ),
    )

    def __repr__(self) -> str:
        """String representation of supplier."""
        return (
            f"Supplier(id={self.id}, "
            f"business_id={self.business_id}, "
            f"trade_name='{self.trade_name}', "
            f"one_time={self.is_one_time_purchase})"
        )
