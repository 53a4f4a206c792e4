# app/api/v1/errors.py
"""
Traducción de los errores del núcleo a respuestas HTTP.

Es el único sitio con textos para el usuario; el núcleo solo expone
ErrorKind y contexto.
"""
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.core.errors import ErrorKind, LendingError

logger = logging.getLogger("api.errors")


ERROR_RESPONSES: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.OUT_OF_STOCK: (status.HTTP_400_BAD_REQUEST, "This book is out of stock"),
    ErrorKind.ALREADY_BORROWED: (
        status.HTTP_400_BAD_REQUEST,
        "You have already borrowed this book. Please return it first.",
    ),
    ErrorKind.ALREADY_RETURNED: (status.HTTP_400_BAD_REQUEST, "This book has already been returned"),
    ErrorKind.HAS_ACTIVE_LOANS: (status.HTTP_400_BAD_REQUEST, "Cannot delete a book with unreturned copies"),
    ErrorKind.INVALID_TOTAL: (status.HTTP_400_BAD_REQUEST, "Total copies must be at least 1"),
    ErrorKind.FORBIDDEN: (
        status.HTTP_403_FORBIDDEN,
        "You do not have permission to operate this borrowing record",
    ),
    ErrorKind.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Not found"),
    ErrorKind.ISBN_CONFLICT: (status.HTTP_409_CONFLICT, "ISBN already exists"),
    ErrorKind.BUSY: (status.HTTP_503_SERVICE_UNAVAILABLE, "The book is busy, please retry"),
    ErrorKind.EXCEEDS_TOTAL: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Inventory error"),
}

NOT_FOUND_MESSAGES = {
    "book": "Book not found",
    "loan": "Borrowing record not found",
}


def error_message(exc: LendingError) -> str:
    if exc.kind == ErrorKind.NOT_FOUND:
        return NOT_FOUND_MESSAGES.get(exc.context.get("resource"), "Not found")
    if exc.kind == ErrorKind.HAS_ACTIVE_LOANS:
        return f"Cannot delete: This book has {exc.context['count']} unreturned copy/copies"
    return ERROR_RESPONSES[exc.kind][1]


async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    status_code, _ = ERROR_RESPONSES[exc.kind]

    logger.info(
        "lending_error",
        extra={
            "operation": "error_response",
            "resource": exc.context.get("resource"),
            "code": exc.kind.value,
            "status_code": status_code,
            "path": request.url.path,
        },
    )

    headers = {"Retry-After": "1"} if exc.kind == ErrorKind.BUSY else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": error_message(exc), "code": exc.kind.value},
        headers=headers,
    )
