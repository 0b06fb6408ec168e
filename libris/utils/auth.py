#!/usr/bin/env python
from typing import Optional
from fastapi import HTTPException, Depends, Request, Cookie
from sqlalchemy.orm import Session
from libris.core import auth
from libris.core.db import get_db
from libris.core.models import User
from libris.core.exceptions import AuthenticationError, PermissionDeniedError

def current_user(request: Request, session: Optional[str] = Cookie(None),
                 db: Session = Depends(get_db)) -> User:
    """Resolves the acting user from the session cookie or, failing
    that, a Bearer token."""
    token = session
    if not token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ")[1]
    try:
        return auth.authenticate(db, token)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))

def staff_user(user: User = Depends(current_user)) -> User:
    try:
        return auth.require_staff(user)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))

def self_or_staff(user: User, user_id: int) -> User:
    if user.id != user_id and not user.is_staff:
        raise HTTPException(status_code=403, detail="Access denied")
    return user
