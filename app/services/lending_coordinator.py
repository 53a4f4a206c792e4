# app/services/lending_coordinator.py
"""
Orquestación de préstamos y devoluciones.

Todas las operaciones que tocan un libro (préstamo, devolución, cambios de
inventario, borrado) pasan por la clave del libro en KeyedLock, y dentro de
ella por una única unidad de trabajo que hace commit completo o rollback
completo. El coordinador no guarda estado de inventario: lo leen y escriben
InventoryLedger y LoanRegistry.
"""
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from app.core.errors import (
    AlreadyBorrowed,
    ExceedsTotal,
    HasActiveLoans,
    IsbnConflict,
    PersistenceConflict,
)
from app.core.logging import get_logger
from app.db.gateway import GatewayFactory, open_gateway
from app.db.models import Book, Loan
from app.schemas.events import LendingAction, LendingEvent
from app.services.inventory_ledger import InventoryLedger
from app.services.keyed_lock import KeyedLock
from app.services.loan_registry import LoanRegistry

logger = get_logger("lending.coordinator")

EventListener = Callable[[LendingEvent], Any]

# Campos del libro que un admin puede editar sin tocar el inventario
EDITABLE_BOOK_FIELDS = ("title", "author", "isbn", "description")


class LendingCoordinator:
    def __init__(
        self,
        gateway_factory: GatewayFactory = open_gateway,
        locks: Optional[KeyedLock] = None,
        lock_timeout: Optional[float] = 5.0,
    ):
        self.gateway_factory = gateway_factory
        self.locks = locks if locks is not None else KeyedLock()
        self.lock_timeout = lock_timeout
        self._listeners: List[EventListener] = []

    # ---- Listeners ----
    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: LendingEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # El cambio ya hizo commit; un listener roto no lo revierte
                logger.exception(
                    "event_listener_failed",
                    extra={
                        "operation": f"loan_{event.action.value}",
                        "resource": "event",
                        "book_id": event.book_id,
                        "loan_id": event.loan_id,
                    },
                )

    def _hold(self, book_id: Optional[int]):
        return self.locks.hold(book_id, self.lock_timeout)

    # ---- Préstamo ----
    def borrow(self, user_id: int, book_id: int) -> Loan:
        with self._hold(book_id):
            with self.gateway_factory() as gateway:
                ledger = InventoryLedger(gateway)
                registry = LoanRegistry(gateway)

                book = ledger.get(book_id)
                if registry.has_active_loan(user_id, book_id):
                    raise AlreadyBorrowed(user_id=user_id, book_id=book_id)

                available = ledger.try_decrement(book_id)
                try:
                    loan = registry.open(user_id, book_id)
                except AlreadyBorrowed:
                    # No debería pasar con la clave tomada: deshace el decremento
                    gateway.rollback()
                    logger.error(
                        "active_loan_conflict_after_check",
                        extra={
                            "operation": "loan_borrow",
                            "resource": "loan",
                            "alarm": "serialization_violation",
                            "book_id": book_id,
                            "user_id": user_id,
                        },
                    )
                    raise

                loan.book = book
                gateway.commit()

            logger.info(
                "Book borrowed",
                extra={
                    "operation": "loan_borrow",
                    "resource": "loan",
                    "loan_id": loan.id,
                    "book_id": book_id,
                    "user_id": user_id,
                    "available_copies": available,
                },
            )
            # Se emite con la clave tomada: el orden por libro es el del commit
            self._emit(
                LendingEvent(
                    action=LendingAction.BORROW,
                    book_id=book_id,
                    user_id=user_id,
                    loan_id=loan.id,
                    timestamp=datetime.now(timezone.utc),
                )
            )
        return loan

    # ---- Devolución ----
    def return_loan(self, loan_id: int, user_id: int) -> Loan:
        with self.gateway_factory() as gateway:
            book_id = LoanRegistry(gateway).get(loan_id).book_id

        with self._hold(book_id):
            with self.gateway_factory() as gateway:
                ledger = InventoryLedger(gateway)
                registry = LoanRegistry(gateway)

                loan = registry.close(loan_id, user_id)
                if book_id is not None:
                    self._restock(gateway, ledger, registry, book_id, loan_id)
                gateway.commit()

            logger.info(
                "Book returned",
                extra={
                    "operation": "loan_return",
                    "resource": "loan",
                    "loan_id": loan_id,
                    "book_id": book_id,
                    "user_id": user_id,
                },
            )
            if book_id is not None:
                self._emit(
                    LendingEvent(
                        action=LendingAction.RETURN,
                        book_id=book_id,
                        user_id=user_id,
                        loan_id=loan_id,
                        timestamp=datetime.now(timezone.utc),
                    )
                )
        return loan

    def _restock(self, gateway, ledger, registry, book_id: int, loan_id: int) -> None:
        book = ledger.get(book_id)
        outstanding = registry.count_active(book_id)
        if outstanding >= book.total_copies:
            # Falta absorbida por una reducción de total_copies: la copia
            # devuelta no vuelve a estar disponible
            logger.warning(
                "return_absorbed_by_shrink",
                extra={
                    "operation": "loan_return",
                    "resource": "book",
                    "book_id": book_id,
                    "loan_id": loan_id,
                    "outstanding": outstanding,
                    "total_copies": book.total_copies,
                },
            )
            return

        try:
            ledger.increment(book_id)
        except ExceedsTotal as exc:
            gateway.rollback()
            logger.critical(
                "inventory_invariant_violated",
                extra={
                    "operation": "loan_return",
                    "resource": "book",
                    "alarm": "inventory_invariant",
                    "book_id": book_id,
                    "loan_id": loan_id,
                    **exc.context,
                },
            )
            raise

    # ---- Administración del catálogo ----
    def set_total_copies(self, book_id: int, new_total: int) -> Book:
        return self.update_book(book_id, {"total_copies": new_total})

    def update_book(self, book_id: int, changes: dict) -> Book:
        with self._hold(book_id):
            with self.gateway_factory() as gateway:
                ledger = InventoryLedger(gateway)
                registry = LoanRegistry(gateway)

                book = ledger.get(book_id)
                for field in EDITABLE_BOOK_FIELDS:
                    if changes.get(field) is not None:
                        setattr(book, field, changes[field])
                try:
                    gateway.save_book(book)
                except PersistenceConflict as exc:
                    raise IsbnConflict(book_id=book_id, isbn=changes.get("isbn")) from exc

                old_total = book.total_copies
                new_total = changes.get("total_copies")
                if new_total is not None:
                    ledger.set_total_copies(
                        book_id,
                        new_total,
                        outstanding=registry.count_active(book_id),
                    )
                gateway.commit()
                gateway.refresh(book)

        logger.info(
            "Book updated",
            extra={
                "operation": "book_update",
                "resource": "book",
                "book_id": book_id,
                "old_total": old_total,
                "total_copies": book.total_copies,
                "available_copies": book.available_copies,
            },
        )
        return book

    def delete_book(self, book_id: int) -> None:
        with self._hold(book_id):
            with self.gateway_factory() as gateway:
                ledger = InventoryLedger(gateway)
                registry = LoanRegistry(gateway)

                book = ledger.get(book_id)
                active = registry.count_active(book_id)
                if active:
                    raise HasActiveLoans(book_id, active)
                gateway.delete_book(book)
                gateway.commit()

        logger.info(
            "Book deleted",
            extra={"operation": "book_delete", "resource": "book", "book_id": book_id},
        )

    # ---- Lecturas ----
    def loans_for_user(self, user_id: int) -> List[Loan]:
        with self.gateway_factory() as gateway:
            return LoanRegistry(gateway).history_for_user(user_id)

    def get_loan(self, loan_id: int) -> Loan:
        with self.gateway_factory() as gateway:
            return LoanRegistry(gateway).get(loan_id)
