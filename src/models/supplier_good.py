"""
SupplierGood model - a catalog line bought from a supplier.

Supplier goods are the raw ingredients of business goods and the lines of
purchases and inventories. Each one carries:
- Wholesale pricing, from which price_per_unit is derived
- Allergen tags propagated into every business good that uses it
- A dynamic count: the running, system-maintained estimate of the
  quantity on hand since the last physical inventory count
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship, validates

from .base import BaseModel, decimal_column
from src.utils.constants import MONEY_SCALE

_PRICE_QUANTUM = Decimal(1).scaleb(-MONEY_SCALE)


def compute_price_per_unit(
    whole_sale_price: Optional[Decimal], total_quantity_per_unit: Optional[Decimal]
) -> Optional[Decimal]:
    """
    Derive the price of one measurement unit from the wholesale price.

    Returns:
        whole_sale_price / total_quantity_per_unit rounded to the money scale,
        or None when either side is missing or the quantity is not positive
    """
    if whole_sale_price is None or total_quantity_per_unit is None:
        return None
    whole_sale_price = Decimal(str(whole_sale_price))
    total_quantity_per_unit = Decimal(str(total_quantity_per_unit))
    if total_quantity_per_unit <= 0:
        return None
    return (whole_sale_price / total_quantity_per_unit).quantize(
        _PRICE_QUANTUM, rounding=ROUND_HALF_UP
    )


class SupplierGood(BaseModel):
    """
    A good bought from a supplier, in a given measurement unit.

    price_per_unit is read-only: it is recomputed whenever whole_sale_price
    or total_quantity_per_unit is assigned. Passing price_per_unit to the
    constructor raises AttributeError.

    Attributes:
        business_id: Owning business
        supplier_id: Supplier the good is bought from
        name: Good name, unique within the business
        keyword: Search keyword
        main_category: Category (e.g., "Food", "Beverage")
        sub_category: Sub category within main_category
        currently_in_use: False for goods no longer bought
        allergens: List of allergen tags (e.g., ["gluten"])
        measurement_unit: Unit the quantities are expressed in (e.g., "kg")
        total_quantity_per_unit: Measurement units in one wholesale unit
        whole_sale_price: Price of one wholesale unit
        price_per_unit: Derived price of one measurement unit
        par_level: Target stock level
        minimum_quantity_required: Reorder threshold
        dynamic_count_from_last_inventory: Estimated quantity on hand
        last_inventory_count_date: When a physical count last reset the count
    """

    __tablename__ = "supplier_goods"

    business_id = Column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    supplier_id = Column(
        Integer, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    name = Column(String(200), nullable=False)
    keyword = Column(String(200), nullable=True)
    main_category = Column(String(50), nullable=False)
    sub_category = Column(String(100), nullable=True)
    currently_in_use = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    allergens = Column(JSON, nullable=False, default=list)

    measurement_unit = Column(String(20), nullable=True)
    total_quantity_per_unit = decimal_column(nullable=True)
    whole_sale_price = decimal_column(nullable=True)
    _price_per_unit = decimal_column("price_per_unit", nullable=True)

    par_level = decimal_column(nullable=True)
    minimum_quantity_required = decimal_column(nullable=True)
    dynamic_count_from_last_inventory = decimal_column(nullable=False, default=Decimal("0"))
    last_inventory_count_date = Column(DateTime, nullable=True)

    business = relationship("Business", back_populates="supplier_goods")
    supplier = relationship("Supplier", back_populates="supplier_goods")

    __table_args__ = (
        UniqueConstraint("business_id", "name", name="uq_supplier_good_business_name"),
        Index("idx_supplier_good_business_supplier", "business_id", "supplier_id"),
        CheckConstraint(
            "total_quantity_per_unit IS NULL OR total_quantity_per_unit > 0",
            name="ck_supplier_good_quantity_per_unit_positive",
        ),
        CheckConstraint(
            "whole_sale_price IS NULL OR whole_sale_price >= 0",
            name="ck_supplier_good_whole_sale_price_non_negative",
        ),
    )

    @property
    def price_per_unit(self) -> Optional[Decimal]:
        """Price of one measurement unit (derived, read-only)."""
        return self._price_per_unit

    @validates("whole_sale_price")
    def _recompute_from_price(self, _key: str, value):
        self._price_per_unit = compute_price_per_unit(value, self.total_quantity_per_unit)
        return value

    @validates("total_quantity_per_unit")
    def _recompute_from_quantity(self, _key: str, value):
        self._price_per_unit = compute_price_per_unit(self.whole_sale_price, value)
        return value

    @property
    def is_below_minimum(self) -> bool:
        """True when the dynamic count has dropped under the reorder threshold."""
        if self.minimum_quantity_required is None:
            return False
        return (self.dynamic_count_from_last_inventory or 0) < self.minimum_quantity_required

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert supplier good to dictionary.

        Adds the is_below_minimum computed field.
        """
        result = super().to_dict(include_relationships)
        result["allergens"] = list(self.allergens or [])
        result["is_below_minimum"] = self.is_below_minimum
        return result

    def __repr__(self) -> str:
        """String representation of supplier good."""
        return (
            f"SupplierGood(id={self.id}, "
            f"name='{self.name}', "
            f"unit='{self.measurement_unit}', "
            f"price_per_unit={self.price_per_unit})"
        )
