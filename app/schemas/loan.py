from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel

from app.schemas.book import BookSummary


class LoanStatus(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"


class LoanCreate(BaseModel):
    book_id: int


class LoanRead(BaseModel):
    id: int
    user_id: int
    book_id: Optional[int]
    book: Optional[BookSummary] = None
    borrowed_at: datetime
    returned_at: Optional[datetime]
    status: LoanStatus

    class Config:
        from_attributes = True
