"""Business Service - minimal business records for the back office.

Businesses are managed elsewhere; this module only creates and looks them
up, and provides the ownership check every other service starts with.
"""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from src.models import Business
from src.services.database import session_scope
from src.services.exceptions import BusinessNotFound, DuplicateName, ValidationError
from src.utils.validators import sanitize_string


def create_business(name: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """Create a business.

    Args:
        name: Trade name, unique across businesses
        session: Optional database session

    Returns:
        Dict[str, Any]: Created business as dictionary

    Raises:
        ValidationError: If name is blank
        DuplicateName: If a business with that name exists
    """
    if session is not None:
        return _create_business_impl(name, session)
    with session_scope() as session:
        return _create_business_impl(name, session)


def _create_business_impl(name: str, session: Session) -> Dict[str, Any]:
    clean_name = sanitize_string(name)
    if clean_name is None:
        raise ValidationError(["Name: This field is required"])

    if session.query(Business.id).filter(Business.name == clean_name).first():
        raise DuplicateName("Business", clean_name)

    business = Business(name=clean_name)
    session.add(business)
    session.flush()
    return business.to_dict()


def get_business(business_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get business by ID.

    Raises:
        BusinessNotFound: If business_id doesn't exist
    """
    if session is not None:
        return require_business(session, business_id).to_dict()
    with session_scope() as session:
        return require_business(session, business_id).to_dict()


def require_business(session: Session, business_id: int) -> Business:
    """Load a business or raise BusinessNotFound."""
    business = session.get(Business, business_id)
    if business is None:
        raise BusinessNotFound(business_id)
    return business
