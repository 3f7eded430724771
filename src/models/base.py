"""
Base model class for all database models.

Provides common functionality and fields for all models:
- Integer primary key plus a UUID for external references
- Timestamp fields (created_at, updated_at)
- Decimal column factory for money and stock quantities
- to_dict() serialization
- SQLAlchemy declarative base
"""

import uuid as uuid_lib
from datetime import date, datetime
from typing import Any, Dict

from sqlalchemy import Column, Integer, Numeric, String, DateTime
from sqlalchemy.orm import declarative_base, validates

from src.utils.constants import MONEY_PRECISION, MONEY_SCALE
from src.utils.datetime_utils import utc_now

# Create the declarative base for all models
Base = declarative_base()


def decimal_column(*args, **kwargs) -> Column:
    """
    Build a Numeric column for money and stock quantities.

    Values round-trip as Decimal. Counts share the money scale so that a
    fractional ingredient quantity (0.25 kg) is never truncated.
    """
    numeric = Numeric(MONEY_PRECISION, MONEY_SCALE, asdecimal=True)
    if args and isinstance(args[0], str):
        # Explicit column name must precede the type
        return Column(args[0], numeric, *args[1:], **kwargs)
    return Column(numeric, *args, **kwargs)


class BaseModel(Base):
    """
    Abstract base model with common fields and methods.

    All models inherit:
    - id: Integer primary key
    - uuid: UUID identifier, stored as string for SQLite compatibility
    - created_at: Timestamp when record was created
    - updated_at: Timestamp when record was last modified
    - to_dict(): Convert model to dictionary
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    uuid = Column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()), index=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self, include_relationships: bool = False) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Dates are rendered as ISO strings; Decimal values are kept as Decimal
        so callers can keep doing exact arithmetic on them.

        Args:
            include_relationships: If True, include related objects (default: False)

        Returns:
            Dictionary representation of the model
        """
        result = {}

        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            result[column.name] = value

        if include_relationships:
            for relationship in self.__mapper__.relationships:
                rel_name = relationship.key
                rel_value = getattr(self, rel_name)

                if rel_value is None:
                    result[rel_name] = None
                elif isinstance(rel_value, list):
                    result[rel_name] = [item.to_dict() for item in rel_value]
                else:
                    result[rel_name] = rel_value.to_dict()

        return result

    @validates("uuid")
    def _validate_uuid(self, _key: str, value: Any) -> str:
        """Normalize UUID values to strings for SQLite compatibility."""
        if value is None:
            return value
        return str(value)

    def __repr__(self) -> str:
        """
        String representation of model instance.

        Returns:
            String like "ClassName(id=1, name='...')"
        """
        class_name = self.__class__.__name__
        attrs = []

        if getattr(self, "id", None) is not None:
            attrs.append(f"id={self.id}")

        if getattr(self, "name", None) is not None:
            attrs.append(f"name='{self.name}'")

        attrs_str = ", ".join(attrs)
        return f"{class_name}({attrs_str})"
