"""
Table model - a seated party (table session) that orders are billed to.

A table stays "Occupied" while it accumulates orders and aggregate totals.
It can only be closed once none of its orders is still in "Open" billing
status; a table that never ordered is simply deleted.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel, decimal_column
from src.utils.constants import TABLE_STATUS_OCCUPIED


class Table(BaseModel):
    """
    A table session.

    Attributes:
        business_id: Owning business
        table_reference: Table label (e.g., "T12", "Bar 3")
        guests: Party size
        status: "Occupied" or "Closed"
        opened_by_user_id: User who opened the table
        closed_by_user_id: User who closed the table
        closed_at: When the table was closed
        table_total_price: Sum of order prices
        table_total_net_price: Sum of order net prices (after promotions)

    Relationships:
        orders: Orders in creation order
    """

    __tablename__ = "tables"

    business_id = Column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    table_reference = Column(String(50), nullable=False)
    guests = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=TABLE_STATUS_OCCUPIED)
    opened_by_user_id = Column(Integer, nullable=True)
    closed_by_user_id = Column(Integer, nullable=True)
    closed_at = Column(DateTime, nullable=True)

    table_total_price = decimal_column(nullable=False, default=0)
    table_total_net_price = decimal_column(nullable=False, default=0)

    orders = relationship("Order", back_populates="table", order_by="Order.id")

    def __repr__(self) -> str:
        """String representation of table."""
        return f"Table(id={self.id}, reference='{self.table_reference}', status='{self.status}')"
