"""
    Read-only reports for Libris: grouped counts and sums over the
    catalog, the user directory and the borrowing records.

    Every report first brings open loans up to date with `now` so that
    loans which went past due since they were last read are counted as
    overdue.
"""

import datetime
from typing import Optional
from sqlalchemy import extract, func
from sqlalchemy.orm import Session
from libris.core.api import LibrisAPI
from libris.core.models import (
    Book,
    BookStatus,
    Borrowing,
    BorrowingStatus,
    Category,
    Role,
    User,
)
from libris.core.utils import money, to_utc


def _status_counts(db: Session, column, enum_cls, *filters):
    rows = db.query(column, func.count()).filter(*filters).group_by(column).all()
    counts = {member.value: 0 for member in enum_cls}
    for status, count in rows:
        counts[enum_cls(status).value] = count
    return counts

def borrowing_stats(db: Session, now: datetime.datetime) -> dict:
    LibrisAPI.refresh_overdue(db, now)
    counts = _status_counts(db, Borrowing.status, BorrowingStatus)
    total_fine = db.query(func.coalesce(func.sum(Borrowing.fine_amount), 0)).filter(
        Borrowing.fine_amount > 0).scalar()
    year = extract('year', Borrowing.borrowed_at)
    month = extract('month', Borrowing.borrowed_at)
    monthly = db.query(year, month, func.count()).group_by(year, month).order_by(
        year.desc(), month.desc()).limit(12).all()
    return {
        "total_borrowings": sum(counts.values()),
        "active_borrowings": counts["active"],
        "overdue_borrowings": counts["overdue"],
        "returned_borrowings": counts["returned"],
        "lost_borrowings": counts["lost"],
        "total_fine_amount": money(total_fine),
        "monthly_stats": [
            {"year": int(y), "month": int(m), "count": c} for y, m, c in monthly
        ],
    }

def book_stats(db: Session) -> dict:
    counts = _status_counts(db, Book.status, BookStatus)
    categories = db.query(Category.id, Category.name, func.count(Book.id)).join(
        Book, Book.category_id == Category.id
    ).group_by(Category.id, Category.name).order_by(Category.name).all()
    return {
        "total_books": sum(counts.values()),
        "available_books": counts["available"],
        "borrowed_books": counts["borrowed"],
        "reserved_books": counts["reserved"],
        "lost_books": counts["lost"],
        "category_stats": [
            {"category_id": cid, "category_name": name, "count": count}
            for cid, name, count in categories
        ],
    }

def user_stats(db: Session) -> dict:
    roles = _status_counts(db, User.role, Role)
    total = sum(roles.values())
    active = db.query(User).filter(User.is_active.is_(True)).count()
    return {
        "total_users": total,
        "active_users": active,
        "inactive_users": total - active,
        "admin_users": roles["admin"],
        "librarian_users": roles["librarian"],
        "member_users": roles["member"],
    }

def borrowings_report(db: Session, now: datetime.datetime, start=None, end=None,
                      status=None, user_id=None, book_id=None):
    LibrisAPI.refresh_overdue(db, now)
    query = db.query(Borrowing)
    if start and end:
        query = query.filter(Borrowing.borrowed_at.between(to_utc(start), to_utc(end)))
    if status:
        query = query.filter(Borrowing.status == status)
    if user_id:
        query = query.filter(Borrowing.user_id == user_id)
    if book_id:
        query = query.filter(Borrowing.book_id == book_id)
    borrowings = query.order_by(Borrowing.borrowed_at.desc()).all()
    summary = {"total": len(borrowings)}
    for member in BorrowingStatus:
        summary[member.value] = sum(1 for b in borrowings if b.status == member)
    summary["total_fine_amount"] = money(sum((b.fine_amount for b in borrowings), 0))
    return borrowings, summary

def fines_report(db: Session, now: datetime.datetime, start=None, end=None,
                 paid: Optional[bool] = None, user_id=None):
    LibrisAPI.refresh_overdue(db, now)
    query = db.query(Borrowing).filter(Borrowing.fine_amount > 0)
    if start and end:
        query = query.filter(Borrowing.borrowed_at.between(to_utc(start), to_utc(end)))
    if paid is not None:
        query = query.filter(Borrowing.fine_paid.is_(paid))
    if user_id:
        query = query.filter(Borrowing.user_id == user_id)
    fines = query.order_by(Borrowing.borrowed_at.desc()).all()
    paid_fines = [f for f in fines if f.fine_paid]
    unpaid_fines = [f for f in fines if not f.fine_paid]
    summary = {
        "total_fines": len(fines),
        "total_amount": money(sum((f.fine_amount for f in fines), 0)),
        "paid_fines": len(paid_fines),
        "paid_amount": money(sum((f.fine_amount for f in paid_fines), 0)),
        "unpaid_fines": len(unpaid_fines),
        "unpaid_amount": money(sum((f.fine_amount for f in unpaid_fines), 0)),
    }
    return fines, summary

def users_report(db: Session, now: datetime.datetime, start=None, end=None,
                 role=None, is_active: Optional[bool] = None):
    """Users matching the filters, each paired with a count of their
    borrowings per status."""
    LibrisAPI.refresh_overdue(db, now)
    query = db.query(User)
    if start and end:
        query = query.filter(User.created_at.between(to_utc(start), to_utc(end)))
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    users = query.order_by(User.created_at.desc(), User.id.desc()).all()

    rows = db.query(Borrowing.user_id, Borrowing.status, func.count()).filter(
        Borrowing.user_id.in_([u.id for u in users])
    ).group_by(Borrowing.user_id, Borrowing.status).all()
    stats = {
        u.id: dict({"total_borrowings": 0},
                   **{f"{s.value}_borrowings": 0 for s in BorrowingStatus})
        for u in users
    }
    for user_id, status, count in rows:
        stats[user_id]["total_borrowings"] += count
        stats[user_id][f"{BorrowingStatus(status).value}_borrowings"] = count
    return [(user, stats[user.id]) for user in users]

def _monthly(db: Session, column, year: int, *sums):
    start = datetime.datetime(year, 1, 1)
    end = datetime.datetime(year + 1, 1, 1)
    month = extract('month', column)
    rows = db.query(month, func.count(), *sums).filter(
        column >= start, column < end
    ).group_by(month).order_by(month).all()
    return rows

def monthly_report(db: Session, now: datetime.datetime, year: Optional[int] = None) -> dict:
    year = year or now.year
    LibrisAPI.refresh_overdue(db, now)
    borrowings = _monthly(db, Borrowing.borrowed_at, year, func.sum(Borrowing.fine_amount))
    registrations = _monthly(db, User.created_at, year)
    additions = _monthly(db, Book.created_at, year)
    return {
        "year": year,
        "monthly_borrowings": [
            {"month": int(m), "count": c, "total_fine_amount": money(total or 0)}
            for m, c, total in borrowings
        ],
        "monthly_registrations": [{"month": int(m), "count": c} for m, c in registrations],
        "monthly_book_additions": [{"month": int(m), "count": c} for m, c in additions],
    }

def dashboard(db: Session, now: datetime.datetime) -> dict:
    borrowing = borrowing_stats(db, now)
    categories = [
        dict(category.to_dict(), book_count=count)
        for category, count in Category.with_counts(db)
    ]
    recent_borrowings = db.query(Borrowing).order_by(
        Borrowing.created_at.desc(), Borrowing.id.desc()).limit(5).all()
    return {
        "book_stats": book_stats(db),
        "user_stats": user_stats(db),
        "borrowing_stats": borrowing,
        "category_stats": categories[:10],
        "recent_borrowings": recent_borrowings,
        "recently_added_books": LibrisAPI.get_recent_books(db, limit=5),
    }
