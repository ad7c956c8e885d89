"""Session helpers shared by the write and search paths of the services."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from kitab.services.errors import CollaboratorError, ConcurrencyError

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


def commit(
    db: Session,
    action: str,
    subject: str,
    failure_message: str = "Could not update order, please try again",
) -> None:
    """Commit, or roll back and raise a service error.

    A lost version check (``StaleDataError``) means another writer changed the
    same order first and becomes ``ConcurrencyError``; any other database
    failure becomes ``CollaboratorError``.
    """
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning("Concurrent update on %s while trying to %s", subject, action)
        raise ConcurrencyError("Order was changed by another request, reload and try again") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to %s for %s", action, subject)
        raise CollaboratorError(failure_message) from exc


def contains_pattern(term: str) -> str:
    """``ilike`` pattern matching ``term`` literally anywhere in the column."""
    escaped = (
        term.strip()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"
