#!/usr/bin/env python
"""
    Book Schema for Libris

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from libris.core.models import BookStatus
from libris.schemas import Money

class BookSummary(BaseModel):
    id: int
    title: str
    author: str
    isbn: str

    class Config:
        from_attributes = True

class Book(BookSummary):
    category_id: int
    publisher: str
    publication_year: int
    edition: Optional[str] = None
    language: str
    pages: Optional[int] = None
    description: Optional[str] = None
    cover_image: Optional[str] = None
    status: BookStatus
    full_location: str
    price: Optional[Money] = None
    copies: int
    available_copies: int
    is_available: bool
    rating_average: float
    rating_count: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "title": "The Pragmatic Programmer",
                "author": "Andrew Hunt",
                "isbn": "978-0-201-61622-4",
                "category_id": 1,
                "publisher": "Addison-Wesley",
                "publication_year": 1999,
                "status": "available",
                "copies": 3,
                "available_copies": 2,
            }
        }
