import datetime
from decimal import Decimal
from libris.core import reports
from libris.core.api import LibrisAPI
from libris.core.models import BorrowingStatus, Role
from conftest import JAN_1, JAN_15, JAN_20


def _circulate(db, member, other_member, make_book, lend):
    dune, emma, iliad = make_book("Dune"), make_book("Emma"), make_book("Iliad")
    overdue = lend(member, dune)
    returned = lend(member, emma, due_at=JAN_20 + datetime.timedelta(days=10))
    lost = lend(other_member, iliad, due_at=JAN_20 + datetime.timedelta(days=10))
    LibrisAPI.return_book(db, returned.id, now=JAN_1 + datetime.timedelta(days=5))
    LibrisAPI.mark_lost(db, lost.id, now=JAN_1 + datetime.timedelta(days=6))
    LibrisAPI.pay_fine(db, lost.id, 50, now=JAN_1 + datetime.timedelta(days=6))
    return overdue, returned, lost


def test_borrowing_stats(db, member, other_member, make_book, lend):
    _circulate(db, member, other_member, make_book, lend)
    stats = reports.borrowing_stats(db, JAN_20)
    assert stats["total_borrowings"] == 3
    assert stats["active_borrowings"] == 0
    assert stats["overdue_borrowings"] == 1
    assert stats["returned_borrowings"] == 1
    assert stats["lost_borrowings"] == 1
    assert stats["total_fine_amount"] == Decimal("55.00")
    assert stats["monthly_stats"] == [{"year": 2024, "month": 1, "count": 3}]

def test_book_and_user_stats(db, admin, member, other_member, make_book, lend):
    _circulate(db, member, other_member, make_book, lend)
    books = reports.book_stats(db)
    assert books["total_books"] == 3
    assert books["lost_books"] == 1
    assert books["category_stats"][0]["count"] == 3
    users = reports.user_stats(db)
    # admin, librarian (book fixtures) and two members
    assert users["total_users"] == 4
    assert users["member_users"] == 2
    assert users["admin_users"] == 1
    assert users["inactive_users"] == 0

def test_borrowings_report_filters(db, member, other_member, make_book, lend):
    _circulate(db, member, other_member, make_book, lend)
    borrowings, summary = reports.borrowings_report(db, JAN_20, user_id=member.id)
    assert summary["total"] == 2
    assert summary["overdue"] == 1
    assert summary["returned"] == 1
    assert summary["total_fine_amount"] == Decimal("5.00")
    borrowings, summary = reports.borrowings_report(db, JAN_20, status=BorrowingStatus.LOST)
    assert summary["total"] == 1
    borrowings, summary = reports.borrowings_report(
        db, JAN_20, start=datetime.datetime(2024, 2, 1), end=datetime.datetime(2024, 3, 1))
    assert borrowings == []

def test_fines_report(db, member, other_member, make_book, lend):
    _circulate(db, member, other_member, make_book, lend)
    fines, summary = reports.fines_report(db, JAN_20)
    assert summary == {
        "total_fines": 2,
        "total_amount": Decimal("55.00"),
        "paid_fines": 1,
        "paid_amount": Decimal("50.00"),
        "unpaid_fines": 1,
        "unpaid_amount": Decimal("5.00"),
    }
    fines, summary = reports.fines_report(db, JAN_20, paid=False)
    assert [f.user_id for f in fines] == [member.id]

def test_users_report(db, member, other_member, make_book, lend):
    _circulate(db, member, other_member, make_book, lend)
    rows = dict((user.id, stats) for user, stats in reports.users_report(db, JAN_20, role=Role.MEMBER))
    assert rows[member.id]["total_borrowings"] == 2
    assert rows[member.id]["overdue_borrowings"] == 1
    assert rows[member.id]["returned_borrowings"] == 1
    assert rows[other_member.id]["lost_borrowings"] == 1
    assert rows[other_member.id]["active_borrowings"] == 0

def test_monthly_report(db, member, other_member, make_book, lend):
    _circulate(db, member, other_member, make_book, lend)
    report = reports.monthly_report(db, JAN_20)
    assert report["year"] == 2024
    assert report["monthly_borrowings"] == [
        {"month": 1, "count": 3, "total_fine_amount": Decimal("55.00")}
    ]
    assert reports.monthly_report(db, JAN_20, year=2023)["monthly_borrowings"] == []

def test_dashboard(db, member, other_member, make_book, lend):
    _circulate(db, member, other_member, make_book, lend)
    data = reports.dashboard(db, JAN_20)
    assert set(data) == {
        "book_stats", "user_stats", "borrowing_stats", "category_stats",
        "recent_borrowings", "recently_added_books",
    }
    assert data["category_stats"][0]["book_count"] == 3
    assert len(data["recent_borrowings"]) == 3
    assert data["recently_added_books"][0].title == "Iliad"

def test_reports_refresh_overdue_first(db, member, book, lend):
    borrowing = lend(member, book)
    reports.borrowing_stats(db, JAN_15 + datetime.timedelta(days=1))
    db.expire_all()
    assert LibrisAPI.load_borrowing(db, borrowing.id, JAN_1).status == BorrowingStatus.OVERDUE
