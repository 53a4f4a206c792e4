# app/services/keyed_lock.py
"""
Exclusión mutua por clave (una clave por libro).

Operaciones sobre la misma clave se serializan; claves distintas nunca
comparten mutex. Las entradas sin usuarios se eliminan para que el mapa
no crezca con cada libro que alguna vez se tocó.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional

from app.core.errors import Busy


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class KeyedLock:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.refs += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.refs -= 1
            if entry.refs == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Retiene la clave durante el bloque `with`.

        Si no se obtiene en `timeout` segundos lanza Busy; en ese caso el
        bloque nunca se ejecuta, así que no hay estado que deshacer.
        """
        entry = self._checkout(key)
        acquired = False
        try:
            acquired = entry.lock.acquire(timeout=-1 if timeout is None else timeout)
            if not acquired:
                raise Busy(resource="book", book_id=key, timeout=timeout)
            yield
        finally:
            if acquired:
                entry.lock.release()
            self._checkin(key, entry)
