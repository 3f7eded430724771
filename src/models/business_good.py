"""
BusinessGood models - the sellable goods on the menu.

This module contains:
- BusinessGood: a sellable good with derived cost price and allergens
- BusinessGoodIngredient: one supplier good used by an ingredient-based good
- SetMenuItem: one component good of a set menu

A business good is composed in exactly one way, recorded in
composition_type:
- "ingredients": cost and allergens derive from BusinessGoodIngredient rows
- "set_menu": cost and allergens derive from the component business goods

Rows belonging to the unused composition are deleted whenever the good is
recomposed, so stale lines from a previous mode never linger.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Text,
    ForeignKey,
    JSON,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel, decimal_column


class BusinessGood(BaseModel):
    """
    A good sold by the business.

    cost_price and allergens are derived by the composite cost calculator
    and are never taken from client input.

    Attributes:
        business_id: Owning business
        name: Good name, unique within the business
        keyword: Search keyword
        main_category: "Set Menu", "Food", "Beverage" or "Merchandise"
        sub_category: Sub category within main_category
        on_menu: Shown on the menu
        available: Currently available to order
        selling_price: Menu price
        cost_price: Derived cost of producing one unit
        allergens: Derived, deduplicated allergen tags
        composition_type: "ingredients" or "set_menu"

    Relationships:
        ingredients: Supplier goods used (ingredient-based goods)
        set_menu_items: Component goods (set menus)
    """

    __tablename__ = "business_goods"

    business_id = Column(
        Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    keyword = Column(String(200), nullable=True)
    main_category = Column(String(50), nullable=False)
    sub_category = Column(String(100), nullable=True)
    on_menu = Column(Boolean, nullable=False, default=True)
    available = Column(Boolean, nullable=False, default=True)
    selling_price = decimal_column(nullable=True)
    description = Column(Text, nullable=True)

    cost_price = decimal_column(nullable=True)
    allergens = Column(JSON, nullable=False, default=list)
    composition_type = Column(String(20), nullable=False)

    ingredients = relationship(
        "BusinessGoodIngredient",
        back_populates="business_good",
        cascade="all, delete-orphan",
        order_by="BusinessGoodIngredient.id",
    )
    set_menu_items = relationship(
        "SetMenuItem",
        back_populates="set_menu",
        foreign_keys="SetMenuItem.set_menu_id",
        cascade="all, delete-orphan",
        order_by="SetMenuItem.position",
    )

    __table_args__ = (
        UniqueConstraint("business_id", "name", name="uq_business_good_business_name"),
        CheckConstraint(
            "composition_type IN ('ingredients', 'set_menu')",
            name="ck_business_good_composition_type",
        ),
    )

    @property
    def set_menu_ids(self) -> list:
        """Component good ids of a set menu, in menu order."""
        return [item.component_id for item in self.set_menu_items]

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert business good to dictionary.

        The active composition is always included: "ingredients" for
        ingredient-based goods, "set_menu" for set menus. The unused field
        is absent.
        """
        result = super().to_dict(include_relationships)
        result["allergens"] = list(self.allergens or [])
        if self.composition_type == "ingredients":
            result["ingredients"] = [line.to_dict() for line in self.ingredients]
        else:
            result["set_menu"] = self.set_menu_ids
        return result


class BusinessGoodIngredient(BaseModel):
    """
    One supplier good used by an ingredient-based business good.

    Attributes:
        business_good_id: Parent business good
        supplier_good_id: Ingredient (read reference only)
        measurement_unit: Unit of required_quantity
        required_quantity: Quantity used per unit sold
        cost_of_required_quantity: Derived unit cost * required quantity
    """

    __tablename__ = "business_good_ingredients"

    business_good_id = Column(
        Integer, ForeignKey("business_goods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    supplier_good_id = Column(
        Integer, ForeignKey("supplier_goods.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    measurement_unit = Column(String(20), nullable=True)
    required_quantity = decimal_column(nullable=False)
    cost_of_required_quantity = decimal_column(nullable=False)

    business_good = relationship("BusinessGood", back_populates="ingredients")
    supplier_good = relationship("SupplierGood")

    __table_args__ = (
        CheckConstraint("required_quantity > 0", name="ck_business_good_ingredient_quantity"),
    )


class SetMenuItem(BaseModel):
    """
    One component of a set menu.

    The same component may appear more than once (two coffees in a
    breakfast menu), so rows carry their own id and a position.
    """

    __tablename__ = "set_menu_items"

    set_menu_id = Column(
        Integer, ForeignKey("business_goods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_id = Column(
        Integer, ForeignKey("business_goods.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)

    set_menu = relationship(
        "BusinessGood", foreign_keys=[set_menu_id], back_populates="set_menu_items"
    )
    component = relationship("BusinessGood", foreign_keys=[component_id])

    __table_args__ = (
        CheckConstraint("set_menu_id != component_id", name="ck_set_menu_item_no_self_reference"),
    )
