"""Sentinel category and agency that new reports start out pointing at."""
import logging

from sqlalchemy.orm import Session

from tipline.models.domain import Agency, Category
from tipline.models.enums import DEFAULT_AGENCY_NAME, DEFAULT_CATEGORY_NAME

logger = logging.getLogger(__name__)


def seed_defaults(db: Session) -> None:
    """Create the sentinel rows if they are missing. Safe to call on every startup."""
    if default_category(db) is None:
        db.add(Category(name=DEFAULT_CATEGORY_NAME, description="Uncategorized reports"))
        logger.info("Created default category", extra={"category": DEFAULT_CATEGORY_NAME})

    if default_agency(db) is None:
        db.add(Agency(name=DEFAULT_AGENCY_NAME, description="Unassigned reports"))
        logger.info("Created default agency", extra={"agency": DEFAULT_AGENCY_NAME})

    db.commit()


def default_category(db: Session):
    return db.query(Category).filter(Category.name == DEFAULT_CATEGORY_NAME).first()


def default_agency(db: Session):
    return db.query(Agency).filter(Agency.name == DEFAULT_AGENCY_NAME).first()
