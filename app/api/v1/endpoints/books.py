from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from app.api.v1.dependencies import get_db, get_coordinator
from app.api.v1.dependencies_auth import require_role
from app.core.errors import IsbnConflict, NotFound
from app.core.logging import get_logger
from app.db.models import Book, UserRole
from app.schemas.book import BookCreate, BookUpdate, BookRead
from app.services.lending_coordinator import LendingCoordinator

logger = get_logger("api.books")

router = APIRouter(
    prefix="/api/v1/books",
    tags=["books"],
)


@router.get("/", response_model=List[BookRead])
def list_books(
    search: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Book)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Book.title.ilike(pattern),
                Book.author.ilike(pattern),
                Book.isbn.ilike(pattern),
            )
        )

    return query.order_by(Book.created_at.desc(), Book.id.desc()).offset(skip).limit(limit).all()


@router.post(
    "/",
    response_model=BookRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_role(UserRole.ADMIN))],
)
def create_book(
    payload: BookCreate,
    db: Session = Depends(get_db),
):
    book = Book(
        title=payload.title,
        author=payload.author,
        isbn=payload.isbn,
        description=payload.description,
        total_copies=payload.total_copies,
        available_copies=payload.total_copies,  # al inicio, todas disponibles
    )

    db.add(book)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise IsbnConflict(isbn=payload.isbn)
    db.refresh(book)

    logger.info(
        "Book created",
        extra={
            "operation": "book_create",
            "resource": "book",
            "book_id": book.id,
            "total_copies": book.total_copies,
            "status_code": 201,
        },
    )
    return book


@router.get("/{book_id}", response_model=BookRead)
def get_book(
    book_id: int,
    db: Session = Depends(get_db),
):
    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise NotFound(resource="book", book_id=book_id)
    return book


@router.put(
    "/{book_id}",
    response_model=BookRead,
    dependencies=[Depends(require_role(UserRole.ADMIN))],
)
def update_book(
    book_id: int,
    payload: BookUpdate,
    coordinator: LendingCoordinator = Depends(get_coordinator),
):
    # total_copies ajusta available_copies dentro de la clave del libro
    return coordinator.update_book(book_id, payload.model_dump(exclude_unset=True))


@router.delete(
    "/{book_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_role(UserRole.ADMIN))],
)
def delete_book(
    book_id: int,
    coordinator: LendingCoordinator = Depends(get_coordinator),
):
    coordinator.delete_book(book_id)
    return None
