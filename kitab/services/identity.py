import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kitab.models import User
from kitab.services.errors import CollaboratorError, ValidationError

logger = logging.getLogger(__name__)


def get_verified_profile(db: Session, user_id: int | None) -> User:
    """Load the acting customer's profile from the users table.

    Order creation trusts only this record for the customer's id and name,
    never what the client sends.
    """
    if user_id is None:
        raise ValidationError("User profile not found")
    try:
        user = db.query(User).filter(User.id == user_id).first()
    except SQLAlchemyError as exc:
        logger.exception("Profile lookup failed for user id=%s", user_id)
        raise CollaboratorError("Could not verify user profile, please try again") from exc
    if user is None:
        logger.warning("Profile not found for user id=%s", user_id)
        raise ValidationError("User profile not found")
    return user
