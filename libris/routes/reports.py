#!/usr/bin/env python

"""
    Report routes for Libris. Staff only.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from libris.core import reports
from libris.core.db import get_db
from libris.core.models import BorrowingStatus, Role, User
from libris.core.utils import utcnow
from libris.schemas.book import Book as BookView
from libris.schemas.borrowing import Borrowing as BorrowingView
from libris.schemas.user import User as UserView
from libris.utils.auth import staff_user
from libris.utils.http import ok

router = APIRouter(prefix='/reports', dependencies=[Depends(staff_user)])


@router.get('/dashboard')
def get_dashboard(db: Session = Depends(get_db)):
    now = utcnow()
    data = reports.dashboard(db, now)
    data["recent_borrowings"] = [BorrowingView.view(b, now) for b in data["recent_borrowings"]]
    data["recently_added_books"] = [
        BookView.model_validate(b).model_dump(mode="json") for b in data["recently_added_books"]
    ]
    return ok(**data)

@router.get('/borrowings')
def get_borrowings_report(
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        status: Optional[BorrowingStatus] = None,
        user_id: Optional[int] = None,
        book_id: Optional[int] = None,
        db: Session = Depends(get_db)):
    now = utcnow()
    borrowings, summary = reports.borrowings_report(
        db, now, start=start_date, end=end_date, status=status,
        user_id=user_id, book_id=book_id)
    return ok(borrowings=[BorrowingView.view(b, now) for b in borrowings], summary=summary)

@router.get('/fines')
def get_fines_report(
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        paid: Optional[bool] = None,
        user_id: Optional[int] = None,
        db: Session = Depends(get_db)):
    now = utcnow()
    fines, summary = reports.fines_report(
        db, now, start=start_date, end=end_date, paid=paid, user_id=user_id)
    return ok(fines=[BorrowingView.view(f, now) for f in fines], summary=summary)

@router.get('/users')
def get_users_report(
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        role: Optional[Role] = None,
        is_active: Optional[bool] = None,
        db: Session = Depends(get_db)):
    rows = reports.users_report(
        db, utcnow(), start=start_date, end=end_date, role=role, is_active=is_active)
    return ok(users=[
        dict(UserView.model_validate(user).model_dump(mode="json"), borrowing_stats=stats)
        for user, stats in rows
    ])

@router.get('/monthly')
def get_monthly_report(year: Optional[int] = Query(None, ge=1000), db: Session = Depends(get_db)):
    return ok(**reports.monthly_report(db, utcnow(), year=year))
