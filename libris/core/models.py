#!/usr/bin/env python

"""
    Models for Libris,
    including the catalog (books, categories), the user directory and
    the borrowing records whose lifecycle drives circulation.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import enum
import datetime
from decimal import Decimal
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Integer,
    Float,
    Numeric,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
    Enum as SQLAlchemyEnum,
    case,
    func,
    text,
    update,
)
from sqlalchemy.orm import relationship
from sqlalchemy.ext.hybrid import hybrid_property
from libris.core.db import Base
from libris.core.utils import utcnow, days_ceil, money, to_decimal
from libris.core.exceptions import (
    AlreadyReturned,
    InsufficientPayment,
    NotRenewable,
    PreconditionFailed,
)
from libris.configs import (
    DAILY_FINE_RATE,
    LOST_ITEM_PENALTY,
    MAX_RENEWALS,
    RENEWAL_DAYS,
    NOTES_MAX_LENGTH,
)


def _values(enum_cls):
    return [member.value for member in enum_cls]

def _membership_expiry():
    return utcnow() + datetime.timedelta(days=365)

class Role(str, enum.Enum):
    ADMIN = "admin"
    LIBRARIAN = "librarian"
    MEMBER = "member"

STAFF_ROLES = (Role.ADMIN, Role.LIBRARIAN)

class BookStatus(str, enum.Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"
    LOST = "lost"
    DAMAGED = "damaged"
    MAINTENANCE = "maintenance"

class BorrowingStatus(str, enum.Enum):
    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"
    LOST = "lost"

OPEN_STATUSES = (BorrowingStatus.ACTIVE, BorrowingStatus.OVERDUE)
OPEN_LOAN_INDEX = "uq_borrowings_open_loan"


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(SQLAlchemyEnum(Role, name='user_role', values_callable=_values),
                  default=Role.MEMBER, nullable=False)
    phone = Column(String(17))
    street = Column(String(100))
    city = Column(String(100))
    state = Column(String(100))
    zip_code = Column(String(20))
    country = Column(String(100))
    date_of_birth = Column(DateTime)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime)
    fine_amount = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    membership_expiry = Column(DateTime, default=_membership_expiry)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @hybrid_property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    @property
    def is_staff(self):
        return self.role in STAFF_ROLES

    def is_membership_valid(self, now):
        return bool(self.membership_expiry and self.membership_expiry > now)

    @classmethod
    def exists(cls, db, email):
        return db.query(cls).filter(cls.email == email.strip().lower()).first()


class Category(Base):
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(String(500))
    parent_id = Column(Integer, ForeignKey('categories.id'), nullable=True, index=True)
    color = Column(String(7), default='#2196F3', nullable=False)
    icon = Column(String(50), default='book', nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    parent = relationship('Category', remote_side=[id], backref='children')
    created_by = relationship('User')

    @classmethod
    def exists(cls, db, name):
        return db.query(cls).filter(func.lower(cls.name) == name.strip().lower()).first()

    @classmethod
    def with_counts(cls, db):
        """Active categories with the number of books filed under each,
        ordered by name."""
        return db.query(cls, func.count(Book.id)).outerjoin(
            Book, Book.category_id == cls.id
        ).filter(
            cls.is_active.is_(True)
        ).group_by(cls.id).order_by(cls.name).all()

    @classmethod
    def hierarchy(cls, db):
        """Returns the active categories as a forest of nested dicts.

        Built in two passes: every category is indexed by id first, then
        each one is linked under its parent. Categories whose parent is
        inactive are left out, as are their descendants.
        """
        categories = db.query(cls).filter(cls.is_active.is_(True)).order_by(cls.name).all()
        nodes = {c.id: dict(c.to_dict(), subcategories=[]) for c in categories}
        roots = []
        for category in categories:
            node = nodes[category.id]
            if category.parent_id is None:
                roots.append(node)
            elif category.parent_id in nodes:
                nodes[category.parent_id]["subcategories"].append(node)
        return roots

    def can_be_deleted(self, db):
        book_count = db.query(Book).filter(Book.category_id == self.id).count()
        subcategory_count = db.query(Category).filter(Category.parent_id == self.id).count()
        return book_count == 0 and subcategory_count == 0

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "color": self.color,
            "icon": self.icon,
        }


def _default_available(context):
    return context.get_current_parameters().get('copies') or 1

class Book(Base):
    __tablename__ = 'books'
    __table_args__ = (
        CheckConstraint('copies >= 1', name='ck_books_copies_positive'),
        CheckConstraint('available_copies >= 0', name='ck_books_available_nonnegative'),
    )

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False, index=True)
    author = Column(String(100), nullable=False, index=True)
    isbn = Column(String(32), unique=True, nullable=False)
    category_id = Column(Integer, ForeignKey('categories.id'), nullable=False, index=True)
    publisher = Column(String(100), nullable=False)
    publication_year = Column(Integer, nullable=False, index=True)
    edition = Column(String(50), default='1st Edition')
    language = Column(String(50), default='English', nullable=False)
    pages = Column(Integer)
    description = Column(String(2000))
    cover_image = Column(String)
    status = Column(SQLAlchemyEnum(BookStatus, name='book_status', values_callable=_values),
                    default=BookStatus.AVAILABLE, nullable=False, index=True)
    shelf = Column(String(50))
    section = Column(String(50))
    floor = Column(String(50))
    room = Column(String(50))
    price = Column(Numeric(10, 2))
    copies = Column(Integer, default=1, nullable=False)
    available_copies = Column(Integer, default=_default_available, nullable=False)
    rating_average = Column(Float, default=0.0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)
    added_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    category = relationship('Category', backref='books')
    added_by = relationship('User')

    @property
    def is_available(self):
        return self.status == BookStatus.AVAILABLE and self.available_copies > 0

    @property
    def full_location(self):
        parts = []
        if self.floor:
            parts.append(f"Floor {self.floor}")
        if self.room:
            parts.append(f"Room {self.room}")
        if self.section:
            parts.append(f"Section {self.section}")
        if self.shelf:
            parts.append(f"Shelf {self.shelf}")
        return ", ".join(parts) or "Not specified"

    @classmethod
    def exists(cls, db, isbn):
        return db.query(cls).filter(cls.isbn == isbn).first()

    def update_rating(self, rating):
        total = self.rating_average * self.rating_count + rating
        self.rating_count += 1
        self.rating_average = total / self.rating_count
        return self

    # Counter mutators. These issue single UPDATE statements so concurrent
    # borrows and returns of the same title never lose an update; callers
    # commit them together with the borrowing they belong to.

    @classmethod
    def decrement_available(cls, db, book_id):
        """Takes one copy out of the pool of an active, available book.
        Returns False if the book could not lend one."""
        result = db.execute(
            update(cls)
            .where(
                cls.id == book_id,
                cls.is_active.is_(True),
                cls.status == BookStatus.AVAILABLE,
                cls.available_copies > 0,
            )
            .values(available_copies=cls.available_copies - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        db.execute(
            update(cls)
            .where(
                cls.id == book_id,
                cls.status == BookStatus.AVAILABLE,
                cls.available_copies == 0,
            )
            .values(status=BookStatus.BORROWED)
            .execution_options(synchronize_session=False)
        )
        return True

    @classmethod
    def increment_available(cls, db, book_id):
        db.execute(
            update(cls)
            .where(cls.id == book_id)
            .values(available_copies=cls.available_copies + 1)
            .execution_options(synchronize_session=False)
        )
        db.execute(
            update(cls)
            .where(cls.id == book_id, cls.status == BookStatus.BORROWED)
            .values(status=BookStatus.AVAILABLE)
            .execution_options(synchronize_session=False)
        )

    @classmethod
    def mark_lost(cls, db, book_id, decrement=True):
        values = {"status": BookStatus.LOST}
        if decrement:
            values["available_copies"] = case(
                (cls.available_copies > 0, cls.available_copies - 1),
                else_=0,
            )
        db.execute(
            update(cls)
            .where(cls.id == book_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )


class Borrowing(Base):
    __tablename__ = 'borrowings'
    __table_args__ = (
        CheckConstraint('due_at > borrowed_at', name='ck_borrowings_due_after_borrow'),
        CheckConstraint(f'renewal_count >= 0 AND renewal_count <= {MAX_RENEWALS}',
                        name='ck_borrowings_renewal_count'),
        CheckConstraint('fine_amount >= 0', name='ck_borrowings_fine_nonnegative'),
        # At most one open loan per (user, book)
        Index(
            OPEN_LOAN_INDEX, 'user_id', 'book_id', unique=True,
            sqlite_where=text("status IN ('active', 'overdue')"),
            postgresql_where=text("status IN ('active', 'overdue')"),
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey('books.id'), nullable=False, index=True)
    borrowed_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    due_at = Column(DateTime, nullable=False, index=True)
    returned_at = Column(DateTime, nullable=True)
    last_renewed_at = Column(DateTime, nullable=True)
    status = Column(SQLAlchemyEnum(BorrowingStatus, name='borrowing_status', values_callable=_values),
                    default=BorrowingStatus.ACTIVE, nullable=False, index=True)
    fine_amount = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    fine_paid = Column(Boolean, default=False, nullable=False)
    fine_paid_at = Column(DateTime, nullable=True)
    renewal_count = Column(Integer, default=0, nullable=False)
    notes = Column(String(NOTES_MAX_LENGTH))
    processed_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship('User', foreign_keys=[user_id], backref='borrowings')
    book = relationship('Book', backref='borrowings')
    processed_by = relationship('User', foreign_keys=[processed_by_id])

    # Stale writes fail instead of overwriting a concurrent transition
    __mapper_args__ = {'version_id_col': version}

    @classmethod
    def issue(cls, user_id, book_id, due_at, processed_by_id, now, notes=None):
        """A new active loan. Every state field is set explicitly so the
        lifecycle methods work before the record is flushed."""
        return cls(
            user_id=user_id,
            book_id=book_id,
            borrowed_at=now,
            due_at=due_at,
            status=BorrowingStatus.ACTIVE,
            fine_amount=money(0),
            fine_paid=False,
            renewal_count=0,
            notes=notes,
            processed_by_id=processed_by_id,
        )

    @classmethod
    def open_for(cls, db, user_id, book_id):
        return db.query(cls).filter(
            cls.user_id == user_id,
            cls.book_id == book_id,
            cls.status.in_(OPEN_STATUSES),
        ).first()

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    def days_overdue(self, now):
        if self.is_open and now > self.due_at:
            return days_ceil(self.due_at, now)
        return 0

    def borrowing_duration(self, now):
        return days_ceil(self.borrowed_at, self.returned_at or now)

    def can_renew(self, now):
        return (self.status == BorrowingStatus.ACTIVE
                and self.renewal_count < MAX_RENEWALS
                and self.due_at > now)

    def recompute_status(self, now):
        """Brings status and fine up to date with `now`.

        An active loan past its due date becomes overdue and is charged
        DAILY_FINE_RATE per started day. Overdue loans are left alone, so
        applying this repeatedly with the same `now` changes nothing.
        """
        if self.status != BorrowingStatus.ACTIVE or now <= self.due_at:
            return self
        self.fine_amount = money(self.days_overdue(now) * DAILY_FINE_RATE)
        self.status = BorrowingStatus.OVERDUE
        return self

    def renew(self, now, additional_days=RENEWAL_DAYS):
        if additional_days < 1 or not self.can_renew(now):
            raise NotRenewable("This borrowing cannot be renewed")
        self.due_at = self.due_at + datetime.timedelta(days=additional_days)
        self.renewal_count += 1
        self.last_renewed_at = now
        return self

    def _ensure_open(self):
        if self.status == BorrowingStatus.RETURNED:
            raise AlreadyReturned("Book has already been returned")
        if self.status == BorrowingStatus.LOST:
            raise PreconditionFailed(PreconditionFailed.LOST)

    def return_item(self, now):
        """Closes the loan. Any fine stays on the record until paid."""
        self._ensure_open()
        self.returned_at = now
        self.status = BorrowingStatus.RETURNED
        return self

    def mark_lost(self, now):
        self._ensure_open()
        self.status = BorrowingStatus.LOST
        self.fine_amount = money(self.fine_amount + LOST_ITEM_PENALTY)
        return self

    def pay_fine(self, amount, now):
        """Settles the fine. Paying more than is owed is accepted; the
        amount itself is not kept."""
        if to_decimal(amount) < self.fine_amount:
            raise InsufficientPayment("Payment amount is less than the fine amount")
        self.fine_paid = True
        self.fine_paid_at = now
        return self
