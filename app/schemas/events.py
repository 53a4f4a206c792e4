from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class LendingAction(str, Enum):
    BORROW = "borrow"
    RETURN = "return"


class LendingEvent(BaseModel):
    """Evento de dominio emitido después de que un préstamo/devolución hace commit."""

    action: LendingAction
    book_id: int
    loan_id: int
    user_id: Optional[int] = None
    timestamp: datetime

    def to_wire(self) -> dict:
        # Forma que reciben los clientes por el canal pub/sub
        return {
            "action": self.action.value,
            "bookId": str(self.book_id),
            "timestamp": self.timestamp.isoformat(),
        }
