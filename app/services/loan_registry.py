# app/services/loan_registry.py
from datetime import datetime, timezone
from typing import List

from app.core.errors import (
    AlreadyBorrowed,
    AlreadyReturned,
    Forbidden,
    NotFound,
    PersistenceConflict,
)
from app.db.gateway import SqlAlchemyGateway
from app.db.models import Loan, LoanStatus


class LoanRegistry:
    """Préstamos activos e históricos por (usuario, libro)."""

    def __init__(self, gateway: SqlAlchemyGateway):
        self.gateway = gateway

    def has_active_loan(self, user_id: int, book_id: int) -> bool:
        return self.gateway.find_active_loan(user_id, book_id) is not None

    def count_active(self, book_id: int) -> int:
        return self.gateway.count_active_loans(book_id)

    def get(self, loan_id: int) -> Loan:
        loan = self.gateway.load_loan(loan_id)
        if loan is None:
            raise NotFound(resource="loan", loan_id=loan_id)
        return loan

    def history_for_user(self, user_id: int) -> List[Loan]:
        return self.gateway.list_loans_for_user(user_id)

    def open(self, user_id: int, book_id: int) -> Loan:
        # Se vuelve a comprobar dentro de la sección crítica; el índice
        # único parcial cubre lo que pase fuera de este proceso.
        if self.has_active_loan(user_id, book_id):
            raise AlreadyBorrowed(user_id=user_id, book_id=book_id)

        loan = Loan(
            user_id=user_id,
            book_id=book_id,
            borrowed_at=datetime.now(timezone.utc),
            status=LoanStatus.ACTIVE,
        )
        try:
            return self.gateway.save_loan(loan)
        except PersistenceConflict as exc:
            raise AlreadyBorrowed(user_id=user_id, book_id=book_id) from exc

    def close(self, loan_id: int, by_user_id: int) -> Loan:
        loan = self.get(loan_id)
        if loan.user_id != by_user_id:
            raise Forbidden(resource="loan", loan_id=loan_id, user_id=by_user_id)
        if loan.status == LoanStatus.RETURNED:
            raise AlreadyReturned(loan_id=loan_id)

        loan.status = LoanStatus.RETURNED
        loan.returned_at = datetime.now(timezone.utc)
        return self.gateway.save_loan(loan)
