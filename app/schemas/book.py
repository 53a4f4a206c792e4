from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class BookCreate(BaseModel):
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    isbn: str = Field(min_length=1, max_length=32)
    description: str = ""
    total_copies: int = Field(ge=1)


class BookUpdate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = Field(default=None, max_length=32)
    description: Optional[str] = None
    total_copies: Optional[int] = Field(default=None, ge=1)


class BookSummary(BaseModel):
    id: int
    title: str
    author: str
    isbn: str

    class Config:
        from_attributes = True


class BookRead(BaseModel):
    id: int
    title: str
    author: str
    isbn: str
    description: str
    total_copies: int
    available_copies: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
