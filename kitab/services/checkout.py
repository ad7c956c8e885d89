"""
Shared steps for placing buy-now and buy-later orders.

The order row and the stock decrement are written in one transaction:
either both land or neither does.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kitab.models import Book, User
from kitab.services.balance import money
from kitab.services.errors import CollaboratorError, NotFoundError, ValidationError
from kitab.services.identity import get_verified_profile
from kitab.services.persistence import LIKE_ESCAPE, contains_pattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutDraft:
    customer: User
    book: Book
    quantity: int
    phone: str
    room: str
    total_price: Decimal

    def snapshot(self) -> dict:
        """Columns copied onto the order; never re-read from the catalog."""
        return {
            "user_id": self.customer.id,
            "user_name": self.customer.name,
            "user_phone": self.phone,
            "user_room": self.room,
            "book_id": self.book.id,
            "book_title": self.book.title,
            "book_author": self.book.author,
            "book_description": self.book.description or "",
            "book_price": money(self.book.price),
            "book_image": self.book.image,
            "book_category": self.book.category,
            "quantity": self.quantity,
            "total_price": self.total_price,
        }


def prepare_checkout(
    db: Session,
    user_id: int | None,
    book_id: int,
    quantity: int,
    phone: str | None,
    room: str | None,
) -> CheckoutDraft:
    customer = get_verified_profile(db, user_id)

    phone = (phone or "").strip()
    room = (room or "").strip()
    if not phone:
        raise ValidationError("Phone number is required")
    if not room:
        raise ValidationError("Room number is required")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise NotFoundError("Book not found")
    if quantity > book.stock:
        raise ValidationError(f"Only {book.stock} in stock")

    total_price = money(Decimal(str(book.price)) * quantity)
    return CheckoutDraft(
        customer=customer,
        book=book,
        quantity=quantity,
        phone=phone,
        room=room,
        total_price=total_price,
    )


def _reserve_stock(db: Session, book_id: int, quantity: int) -> None:
    # Conditional decrement so two checkouts cannot both take the last copies.
    updated = (
        db.query(Book)
        .filter(Book.id == book_id, Book.stock >= quantity)
        .update({Book.stock: Book.stock - quantity}, synchronize_session=False)
    )
    if updated != 1:
        raise ValidationError("Not enough stock left for this quantity")


def place(db: Session, record, draft: CheckoutDraft):
    """Insert the order and decrement stock in one commit, then return the order."""
    try:
        db.add(record)
        _reserve_stock(db, draft.book.id, draft.quantity)
        db.commit()
    except ValidationError:
        db.rollback()
        logger.warning(
            "Stock for book %s ran out before order could be placed (quantity=%s)",
            draft.book.id,
            draft.quantity,
        )
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to place %s for book %s", type(record).__name__, draft.book.id)
        raise CollaboratorError("Could not place order, please try again") from exc
    db.refresh(record)
    return record


def snapshot_search(model, term: str):
    """Case-insensitive match on the snapshotted title, author, customer name or order id."""
    pattern = contains_pattern(term)
    return or_(
        model.book_title.ilike(pattern, escape=LIKE_ESCAPE),
        model.book_author.ilike(pattern, escape=LIKE_ESCAPE),
        model.user_name.ilike(pattern, escape=LIKE_ESCAPE),
        model.id.ilike(pattern, escape=LIKE_ESCAPE),
    )
