"""
Order models.

This module contains:
- Order: one ordered unit, billed to a table
- OrderLine: the business goods making up the order, in order

Orders are created individually (one per unit sold, plus its add-ons) so
promotions, payment and preparation status can be tracked per unit.
"Burger with extra cheese and bacon" is one Order with three OrderLines.
Prices are computed by the client, promotions included, and only recorded
here.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship

from .base import BaseModel, decimal_column
from src.utils.constants import ORDER_STATUS_SENT, BILLING_STATUS_OPEN


class Order(BaseModel):
    """
    One ordered unit.

    Attributes:
        business_id: Owning business
        table_id: Table the order is billed to
        user_id: User who took the order
        user_role: Role of that user at the time (e.g., "Bartender")
        day_reference_number: Business-day sequence number
        business_goods_category: Category of the ordered goods (e.g., "Beverage")
        order_price: Price before promotions
        order_net_price: Price after promotions
        order_cost_price: Cost of the goods
        order_status: "Sent", "Done" or "Cancel"
        billing_status: "Open", "Paid" or "Void"
        allergens: Allergen tags the guest flagged
        promotion_applied: Name of the promotion applied, if any
        discount_percentage: Manual discount, exclusive with promotions
        comments: Kitchen notes
    """

    __tablename__ = "orders"

    business_id = Column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    table_id = Column(
        Integer, ForeignKey("tables.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    user_id = Column(Integer, nullable=False)
    user_role = Column(String(50), nullable=True)
    day_reference_number = Column(Integer, nullable=True)
    business_goods_category = Column(String(50), nullable=True)

    order_price = decimal_column(nullable=False)
    order_net_price = decimal_column(nullable=False)
    order_cost_price = decimal_column(nullable=False)

    order_status = Column(String(20), nullable=False, default=ORDER_STATUS_SENT)
    billing_status = Column(String(20), nullable=False, default=BILLING_STATUS_OPEN)

    allergens = Column(JSON, nullable=True)
    promotion_applied = Column(String(100), nullable=True)
    discount_percentage = decimal_column(nullable=True)
    comments = Column(Text, nullable=True)

    table = relationship("Table", back_populates="orders")
    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.position",
    )

    @property
    def business_good_ids(self) -> list:
        """Ordered business good ids, duplicates kept."""
        return [line.business_good_id for line in self.lines]

    def to_dict(self, include_relationships: bool = False) -> dict:
        """Convert order to dictionary, including its business good ids."""
        result = super().to_dict(include_relationships)
        result["business_goods"] = self.business_good_ids
        return result


class OrderLine(BaseModel):
    """One business good within an order."""

    __tablename__ = "order_lines"

    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    business_good_id = Column(
        Integer, ForeignKey("business_goods.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)

    order = relationship("Order", back_populates="lines")
    business_good = relationship("BusinessGood")
