import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from kitab.dependencies import require_admin
from kitab.models import Book, User, get_db
from kitab.schemas.books import BookCreateRequest, BookResponse, BookUpdateRequest
from kitab.services.persistence import LIKE_ESCAPE, contains_pattern

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_book_or_404(db: Session, book_id: int) -> Book:
    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return book


@router.get(
    "",
    response_model=list[BookResponse],
    summary="List books",
)
def list_books(
    db: Annotated[Session, Depends(get_db)],
    category: str | None = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
):
    """Returns the catalog, newest first, optionally filtered by category or title/author search."""
    query = db.query(Book)
    if category:
        query = query.filter(Book.category == category)
    if search and search.strip():
        pattern = contains_pattern(search)
        query = query.filter(
            or_(Book.title.ilike(pattern, escape=LIKE_ESCAPE), Book.author.ilike(pattern, escape=LIKE_ESCAPE))
        )
    return query.order_by(Book.created_at.desc(), Book.id.desc()).all()


@router.get(
    "/{book_id}",
    response_model=BookResponse,
    summary="Get book by ID",
)
def get_book(
    book_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    return _get_book_or_404(db, book_id)


@router.post(
    "",
    response_model=BookResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a book (admin)",
)
def create_book(
    body: BookCreateRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    book = Book(**body.model_dump())
    db.add(book)
    db.commit()
    db.refresh(book)
    logger.info("Admin %s added book %s (%s)", admin.id, book.id, book.title)
    return book


@router.put(
    "/{book_id}",
    response_model=BookResponse,
    summary="Update a book (admin)",
)
def update_book(
    book_id: int,
    body: BookUpdateRequest,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Partial update. Existing orders keep their snapshot of the old values."""
    book = _get_book_or_404(db, book_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        if value is None and field != "image":
            continue
        setattr(book, field, value)
    db.commit()
    db.refresh(book)
    logger.info("Admin %s updated book %s", admin.id, book.id)
    return book


@router.delete(
    "/{book_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a book (admin)",
)
def delete_book(
    book_id: int,
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    book = _get_book_or_404(db, book_id)
    db.delete(book)
    db.commit()
    logger.info("Admin %s deleted book %s", admin.id, book_id)
