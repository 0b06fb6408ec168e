#!/usr/bin/env python
"""
    User Schema for Libris

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from libris.core.models import Role
from libris.schemas import Money

class UserSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    full_name: str

    class Config:
        from_attributes = True

class User(UserSummary):
    role: Role
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    is_active: bool
    fine_amount: Money
    membership_expiry: Optional[datetime] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
