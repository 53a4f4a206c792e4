# app/services/event_fanout.py
"""
Difusión de eventos de préstamo a todos los observadores conectados.

Cada suscriptor tiene su propia cola FIFO acotada. publish() nunca
bloquea: si la cola de un suscriptor está llena, ese suscriptor se
desconecta y los demás siguen recibiendo.
"""
import queue
import threading
from typing import Optional, Set

from app.core.logging import get_logger
from app.schemas.events import LendingEvent

logger = get_logger("lending.fanout")

DEFAULT_QUEUE_SIZE = 100


class Subscription:
    def __init__(self, maxsize: int):
        self._queue: "queue.Queue[LendingEvent]" = queue.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = False

    def offer(self, event: LendingEvent) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[LendingEvent]:
        """Siguiente evento en orden, o None si no llegó nada en `timeout`."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()


class EventFanout:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: Set[Subscription] = set()
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        subscription = Subscription(maxsize or self.queue_size)
        with self._lock:
            if self._closed:
                subscription.closed = True
                return subscription
            self._subscribers.add(subscription)
            total = len(self._subscribers)
        logger.info(
            "subscriber_added",
            extra={"operation": "fanout_subscribe", "resource": "subscriber", "subscribers": total},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        with self._lock:
            self._subscribers.discard(subscription)
            total = len(self._subscribers)
        logger.info(
            "subscriber_removed",
            extra={"operation": "fanout_unsubscribe", "resource": "subscriber", "subscribers": total},
        )

    def publish(self, event: LendingEvent) -> int:
        # Se entrega fuera del lock: altas/bajas concurrentes no esperan a la difusión
        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        for subscription in targets:
            if subscription.offer(event):
                delivered += 1
            elif not subscription.closed:
                subscription.dropped = True
                self.unsubscribe(subscription)
                logger.warning(
                    "subscriber_dropped",
                    extra={
                        "operation": "fanout_publish",
                        "resource": "subscriber",
                        "reason": "queue_full",
                        "book_id": event.book_id,
                    },
                )

        logger.debug(
            "event_published",
            extra={
                "operation": "fanout_publish",
                "resource": "event",
                "action": event.action.value,
                "book_id": event.book_id,
                "delivered": delivered,
            },
        )
        return delivered

    def close(self) -> None:
        with self._lock:
            self._closed = True
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for subscription in subscribers:
            subscription.closed = True
