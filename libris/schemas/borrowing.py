#!/usr/bin/env python
"""
    Borrowing Schema for Libris,
    the populated view of a loan returned by the API.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from libris.core.models import BorrowingStatus
from libris.schemas import Money
from libris.schemas.book import BookSummary
from libris.schemas.user import UserSummary

class Borrowing(BaseModel):
    id: int
    user: UserSummary
    book: BookSummary
    processed_by: UserSummary
    borrowed_at: datetime
    due_at: datetime
    returned_at: Optional[datetime] = None
    last_renewed_at: Optional[datetime] = None
    status: BorrowingStatus
    fine_amount: Money
    fine_paid: bool
    fine_paid_at: Optional[datetime] = None
    renewal_count: int
    notes: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def view(cls, borrowing, now: datetime) -> dict:
        """JSON-ready view with the fields that depend on `now` filled in."""
        data = cls.model_validate(borrowing).model_dump(mode="json")
        data["days_overdue"] = borrowing.days_overdue(now)
        data["can_renew"] = borrowing.can_renew(now)
        data["borrowing_duration"] = borrowing.borrowing_duration(now)
        return data
