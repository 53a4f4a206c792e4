# app/core/errors.py
"""
Taxonomía cerrada de errores del núcleo de préstamos.

Las excepciones solo llevan contexto estructurado (ids, contadores).
Los textos para el usuario y los códigos HTTP los decide la capa API
(app/api/v1/errors.py).
"""
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    ALREADY_BORROWED = "already_borrowed"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    ALREADY_RETURNED = "already_returned"
    EXCEEDS_TOTAL = "exceeds_total"
    HAS_ACTIVE_LOANS = "has_active_loans"
    BUSY = "busy"
    INVALID_TOTAL = "invalid_total"
    ISBN_CONFLICT = "isbn_conflict"


class LendingError(Exception):
    kind: ErrorKind

    def __init__(self, **context: Any):
        self.context = context
        details = ", ".join(f"{k}={v!r}" for k, v in context.items())
        super().__init__(f"{self.kind.value}({details})")


class OutOfStock(LendingError):
    kind = ErrorKind.OUT_OF_STOCK


class AlreadyBorrowed(LendingError):
    kind = ErrorKind.ALREADY_BORROWED


class NotFound(LendingError):
    kind = ErrorKind.NOT_FOUND


class Forbidden(LendingError):
    kind = ErrorKind.FORBIDDEN


class AlreadyReturned(LendingError):
    kind = ErrorKind.ALREADY_RETURNED


class ExceedsTotal(LendingError):
    """Un incremento dejaría available_copies > total_copies (bug de serialización)."""

    kind = ErrorKind.EXCEEDS_TOTAL


class HasActiveLoans(LendingError):
    kind = ErrorKind.HAS_ACTIVE_LOANS

    def __init__(self, book_id: Any, count: int):
        super().__init__(book_id=book_id, count=count)
        self.count = count


class Busy(LendingError):
    kind = ErrorKind.BUSY


class InvalidTotal(LendingError):
    kind = ErrorKind.INVALID_TOTAL


class IsbnConflict(LendingError):
    kind = ErrorKind.ISBN_CONFLICT


class PersistenceConflict(Exception):
    """El almacenamiento rechazó una escritura por una restricción de unicidad."""
