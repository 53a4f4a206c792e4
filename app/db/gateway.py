# app/db/gateway.py
"""
Gateway de persistencia usado por el núcleo de préstamos.

Cada instancia envuelve una sesión SQLAlchemy y funciona como unidad de
trabajo: las escrituras se hacen con flush y solo son visibles para otros
cuando el coordinador llama a commit(). La atomicidad entre registros
(libro + préstamo) la da la serialización por libro del coordinador, no
el gateway.
"""
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.errors import PersistenceConflict
from app.db.models import Book, Loan, LoanStatus
from app.db.session import SessionLocal


class SqlAlchemyGateway:
    def __init__(self, session: Session):
        self.session = session

    def __enter__(self) -> "SqlAlchemyGateway":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.session.rollback()
        self.session.close()

    # ---- Books ----
    def load_book(self, book_id: int, for_update: bool = False) -> Optional[Book]:
        query = self.session.query(Book).filter(Book.id == book_id)
        if for_update:
            # Bloqueo de fila en PostgreSQL; SQLite lo ignora
            query = query.with_for_update()
        return query.first()

    def save_book(self, book: Book) -> Book:
        self.session.add(book)
        self._flush()
        return book

    def delete_book(self, book: Book) -> None:
        self.session.delete(book)
        self._flush()

    # ---- Loans ----
    def load_loan(self, loan_id: int) -> Optional[Loan]:
        return (
            self.session.query(Loan)
            .options(joinedload(Loan.book))
            .filter(Loan.id == loan_id)
            .first()
        )

    def save_loan(self, loan: Loan) -> Loan:
        self.session.add(loan)
        self._flush()
        return loan

    def find_active_loan(self, user_id: int, book_id: int) -> Optional[Loan]:
        return (
            self.session.query(Loan)
            .filter(
                Loan.user_id == user_id,
                Loan.book_id == book_id,
                Loan.status == LoanStatus.ACTIVE,
            )
            .first()
        )

    def count_active_loans(self, book_id: int) -> int:
        return (
            self.session.query(func.count(Loan.id))
            .filter(Loan.book_id == book_id, Loan.status == LoanStatus.ACTIVE)
            .scalar()
            or 0
        )

    def list_loans_for_user(self, user_id: int) -> List[Loan]:
        return (
            self.session.query(Loan)
            .options(joinedload(Loan.book))
            .filter(Loan.user_id == user_id)
            .order_by(Loan.borrowed_at.desc(), Loan.id.desc())
            .all()
        )

    # ---- Transacción ----
    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def refresh(self, instance) -> None:
        # Recarga columnas que calcula la BD (updated_at) antes de cerrar la sesión
        self.session.refresh(instance)

    def _flush(self) -> None:
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise PersistenceConflict(str(exc.orig)) from exc


GatewayFactory = Callable[[], SqlAlchemyGateway]


def open_gateway() -> SqlAlchemyGateway:
    """Fábrica por defecto: una sesión nueva por unidad de trabajo."""
    return SqlAlchemyGateway(SessionLocal())
