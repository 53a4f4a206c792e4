# app/services/inventory_ledger.py
from typing import Optional

from app.core.errors import ExceedsTotal, InvalidTotal, NotFound, OutOfStock
from app.db.gateway import SqlAlchemyGateway
from app.db.models import Book


class InventoryLedger:
    """
    Contadores de copias por libro.

    Se usa dentro de la sección crítica del libro (ver LendingCoordinator);
    cada mutación queda en la unidad de trabajo y el coordinador hace commit
    antes de responder.
    """

    def __init__(self, gateway: SqlAlchemyGateway):
        self.gateway = gateway

    def get(self, book_id: int) -> Book:
        book = self.gateway.load_book(book_id, for_update=True)
        if book is None:
            raise NotFound(resource="book", book_id=book_id)
        return book

    def available(self, book_id: int) -> int:
        return self.get(book_id).available_copies

    def try_decrement(self, book_id: int) -> int:
        book = self.get(book_id)
        if book.available_copies <= 0:
            raise OutOfStock(book_id=book_id)
        book.available_copies -= 1
        self.gateway.save_book(book)
        return book.available_copies

    def increment(self, book_id: int) -> int:
        book = self.get(book_id)
        if book.available_copies + 1 > book.total_copies:
            # Nunca se recorta aquí: es una violación del invariante
            raise ExceedsTotal(
                book_id=book_id,
                available_copies=book.available_copies,
                total_copies=book.total_copies,
            )
        book.available_copies += 1
        self.gateway.save_book(book)
        return book.available_copies

    def set_total_copies(
        self,
        book_id: int,
        new_total: int,
        outstanding: Optional[int] = None,
    ) -> int:
        """
        Cambia total_copies y ajusta available_copies.

        Sin `outstanding`: regla del delta (sube lo mismo que el total; al
        bajar resta el delta con piso en 0). Con `outstanding` (préstamos
        activos): available = max(0, new_total - outstanding), que coincide
        con la regla del delta mientras el invariante se cumple.
        """
        if new_total < 1:
            raise InvalidTotal(book_id=book_id, total_copies=new_total)

        book = self.get(book_id)
        if outstanding is None:
            new_available = book.available_copies + (new_total - book.total_copies)
        else:
            new_available = new_total - outstanding
        book.total_copies = new_total
        book.available_copies = min(new_total, max(0, new_available))
        self.gateway.save_book(book)
        return book.available_copies
