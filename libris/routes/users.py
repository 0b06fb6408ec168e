#!/usr/bin/env python

"""
    User directory routes for Libris.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from libris.core.api import LibrisAPI
from libris.core.db import get_db
from libris.core.exceptions import LibrisAPIError
from libris.core.models import Role, User
from libris.core.utils import utcnow
from libris.routes.schemas import UserCreate, UserUpdate
from libris.schemas.borrowing import Borrowing as BorrowingView
from libris.schemas.user import User as UserView
from libris.utils.auth import current_user, self_or_staff, staff_user
from libris.utils.http import http_error, ok, pagination

router = APIRouter()


def _user(user) -> dict:
    return UserView.model_validate(user).model_dump(mode="json")


@router.post('/users', status_code=status.HTTP_201_CREATED)
def add_user(body: UserCreate, staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        user = LibrisAPI.add_user(db, **body.model_dump(exclude_unset=True))
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("User created successfully", user=_user(user))

@router.get('/users')
def get_users(
        role: Optional[Role] = None,
        is_active: Optional[bool] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(LibrisAPI.DEFAULT_LIMIT, ge=1, le=100),
        staff: User = Depends(staff_user),
        db: Session = Depends(get_db)):
    users, total = LibrisAPI.get_users(db, role=role, is_active=is_active, page=page, limit=limit)
    return ok(users=[_user(u) for u in users], pagination=pagination(page, limit, total))

@router.get('/users/me')
def get_me(user: User = Depends(current_user)):
    return ok(user=_user(user))

@router.get('/users/{user_id}')
def get_user(user_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    self_or_staff(user, user_id)
    try:
        target = LibrisAPI.get_user(db, user_id)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(user=_user(target))

@router.put('/users/{user_id}')
def update_user(user_id: int, body: UserUpdate,
                staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        user = LibrisAPI.update_user(db, user_id, **body.model_dump(exclude_unset=True))
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("User updated successfully", user=_user(user))

@router.get('/users/{user_id}/fines')
def get_user_fines(user_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    """Outstanding fines for a user, recomputed as of now."""
    self_or_staff(user, user_id)
    now = utcnow()
    try:
        total = LibrisAPI.calculate_fine(db, user_id, now)
        borrowings = [
            b for b in LibrisAPI.get_user_borrowings(db, user_id, now)
            if b.fine_amount > 0 and not b.fine_paid
        ]
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(
        total_fine_amount=float(total),
        borrowings=[BorrowingView.view(b, now) for b in borrowings],
    )

@router.get('/users/{user_id}/history')
def get_borrowing_history(user_id: int, user: User = Depends(current_user),
                          db: Session = Depends(get_db)):
    self_or_staff(user, user_id)
    now = utcnow()
    try:
        LibrisAPI.get_user(db, user_id)
        borrowings = LibrisAPI.get_borrowing_history(db, user_id, now)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(borrowings=[BorrowingView.view(b, now) for b in borrowings])
