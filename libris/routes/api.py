#!/usr/bin/env python

"""
    API routes for Libris,
    including the root endpoint and the borrowing (circulation) endpoints.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from libris import __version__ as VERSION
from libris.configs import RENEWAL_DAYS
from libris.core.api import LibrisAPI
from libris.core.db import get_db
from libris.core.exceptions import LibrisAPIError
from libris.core.models import BorrowingStatus, User
from libris.core import reports
from libris.core.utils import utcnow
from libris.routes.schemas import (
    BorrowRequest,
    PayFineRequest,
    RenewRequest,
    ReturnRequest,
)
from libris.schemas.borrowing import Borrowing as BorrowingView
from libris.utils.auth import current_user, self_or_staff, staff_user
from libris.utils.http import http_error, ok, pagination

router = APIRouter()


@router.get('/', status_code=status.HTTP_200_OK)
async def home():
    return {"name": "Libris API", "version": VERSION}

@router.post('/borrowings', status_code=status.HTTP_201_CREATED)
def borrow_book(body: BorrowRequest, staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    now = utcnow()
    try:
        borrowing = LibrisAPI.borrow(
            db,
            user_id=body.user_id,
            book_id=body.book_id,
            due_at=body.due_date,
            processed_by=staff.id,
            notes=body.notes,
            now=now,
        )
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Book borrowed successfully", borrowing=BorrowingView.view(borrowing, now))

@router.get('/borrowings')
def get_borrowings(
        status: Optional[BorrowingStatus] = None,
        user_id: Optional[int] = None,
        book_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(LibrisAPI.DEFAULT_LIMIT, ge=1, le=100),
        staff: User = Depends(staff_user),
        db: Session = Depends(get_db)):
    now = utcnow()
    try:
        borrowings, total = LibrisAPI.get_borrowings(
            db, now, status=status, user_id=user_id, book_id=book_id,
            start=start_date, end=end_date, page=page, limit=limit)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(
        borrowings=[BorrowingView.view(b, now) for b in borrowings],
        pagination=pagination(page, limit, total),
    )

# Fixed paths are registered before /borrowings/{borrowing_id}

@router.get('/borrowings/overdue')
def get_overdue_borrowings(staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    now = utcnow()
    try:
        borrowings = LibrisAPI.get_overdue_borrowings(db, now)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(borrowings=[BorrowingView.view(b, now) for b in borrowings])

@router.get('/borrowings/stats')
def get_borrowing_stats(staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        stats = reports.borrowing_stats(db, utcnow())
    except LibrisAPIError as e:
        raise http_error(e)
    stats["total_fine_amount"] = float(stats["total_fine_amount"])
    return ok(**stats)

@router.get('/borrowings/user/{user_id}')
def get_user_borrowings(user_id: int, active: bool = False,
                        user: User = Depends(current_user), db: Session = Depends(get_db)):
    """A member may list their own borrowings; staff may list anyone's."""
    self_or_staff(user, user_id)
    now = utcnow()
    try:
        LibrisAPI.get_user(db, user_id)
        if active:
            borrowings = LibrisAPI.get_active_borrowings(db, user_id, now)
        else:
            borrowings = LibrisAPI.get_user_borrowings(db, user_id, now)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(borrowings=[BorrowingView.view(b, now) for b in borrowings])

@router.get('/borrowings/{borrowing_id}')
def get_borrowing(borrowing_id: int, staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    now = utcnow()
    try:
        borrowing = LibrisAPI.load_borrowing(db, borrowing_id, now)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(borrowing=BorrowingView.view(borrowing, now))

@router.put('/borrowings/{borrowing_id}/return')
def return_book(borrowing_id: int, body: Optional[ReturnRequest] = None,
                staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    now = utcnow()
    try:
        borrowing = LibrisAPI.return_book(
            db, borrowing_id, notes=body.notes if body else None, now=now)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Book returned successfully", borrowing=BorrowingView.view(borrowing, now))

@router.put('/borrowings/{borrowing_id}/renew')
def renew_book(borrowing_id: int, body: Optional[RenewRequest] = None,
               staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    now = utcnow()
    additional_days = body.additional_days if body else RENEWAL_DAYS
    try:
        borrowing = LibrisAPI.renew(db, borrowing_id, additional_days=additional_days, now=now)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Book renewed successfully", borrowing=BorrowingView.view(borrowing, now))

@router.put('/borrowings/{borrowing_id}/lost')
def mark_lost(borrowing_id: int, staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    now = utcnow()
    try:
        borrowing = LibrisAPI.mark_lost(db, borrowing_id, now=now)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Book marked as lost", borrowing=BorrowingView.view(borrowing, now))

@router.put('/borrowings/{borrowing_id}/pay-fine')
def pay_fine(borrowing_id: int, body: PayFineRequest,
             staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    now = utcnow()
    try:
        borrowing = LibrisAPI.pay_fine(db, borrowing_id, body.amount, now=now)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Fine paid successfully", borrowing=BorrowingView.view(borrowing, now))
