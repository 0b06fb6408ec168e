import datetime
from decimal import Decimal
from unittest.mock import patch
import pytest
from sqlalchemy import update
from libris.core.api import LibrisAPI
from libris.core.exceptions import (
    AlreadyReturned,
    BookNotFoundError,
    BorrowingNotFoundError,
    DatabaseInsertError,
    InsufficientPayment,
    PreconditionFailed,
    UserNotFoundError,
    VersionConflict,
)
from libris.core.models import Book, BookStatus, Borrowing, BorrowingStatus
from conftest import JAN_1, JAN_15, JAN_20


def test_borrow_creates_active_loan_and_takes_a_copy(db, member, book, lend):
    borrowing = lend(member, book)
    assert borrowing.id is not None
    assert borrowing.status == BorrowingStatus.ACTIVE
    assert borrowing.borrowed_at == JAN_1
    assert borrowing.due_at == JAN_15
    assert borrowing.version == 1
    assert db.get(Book, book.id).available_copies == 1

def test_borrowing_last_copy_marks_book_borrowed(db, member, make_book, lend):
    book = make_book(copies=1)
    lend(member, book)
    book = db.get(Book, book.id)
    assert book.available_copies == 0
    assert book.status == BookStatus.BORROWED
    assert not book.is_available

def test_due_date_must_follow_now(db, member, book, librarian):
    with pytest.raises(PreconditionFailed) as e:
        LibrisAPI.borrow(db, member.id, book.id, due_at=JAN_1, processed_by=librarian.id, now=JAN_1)
    assert e.value.reason == PreconditionFailed.INVALID_DUE_DATE

def test_aware_due_date_is_normalized(db, member, book, librarian):
    due = datetime.datetime(2024, 1, 15, 12, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=2)))
    borrowing = LibrisAPI.borrow(db, member.id, book.id, due_at=due,
                                 processed_by=librarian.id, now=JAN_1)
    assert borrowing.due_at == datetime.datetime(2024, 1, 15, 10, 0)

def test_no_copies_persists_nothing(db, member, make_book, lend):
    book = make_book(copies=1, available_copies=0)
    with pytest.raises(PreconditionFailed) as e:
        lend(member, book)
    assert e.value.reason == PreconditionFailed.NO_COPIES
    assert db.query(Borrowing).count() == 0
    assert db.get(Book, book.id).available_copies == 0

def test_lost_race_for_last_copy_rolls_back(db, member, make_book, lend):
    book = make_book(copies=1)
    assert book.available_copies == 1
    # Another transaction takes the copy after this session read the book
    db.execute(
        update(Book).where(Book.id == book.id).values(available_copies=0)
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(PreconditionFailed) as e:
        lend(member, book)
    assert e.value.reason == PreconditionFailed.NO_COPIES
    assert db.query(Borrowing).count() == 0

def test_retired_book_cannot_be_borrowed(db, member, book, lend):
    LibrisAPI.remove_book(db, book.id)
    with pytest.raises(PreconditionFailed) as e:
        lend(member, book)
    assert e.value.reason == PreconditionFailed.NO_COPIES
    assert db.query(Borrowing).count() == 0
    assert db.get(Book, book.id).available_copies == 2

def test_lost_book_cannot_be_borrowed(db, member, other_member, book, lend):
    borrowing = lend(member, book)
    LibrisAPI.mark_lost(db, borrowing.id, now=JAN_1 + datetime.timedelta(days=1), decrement=False)
    assert db.get(Book, book.id).available_copies == 1
    with pytest.raises(PreconditionFailed) as e:
        lend(other_member, book, now=JAN_1 + datetime.timedelta(days=2))
    assert e.value.reason == PreconditionFailed.NO_COPIES
    book = db.get(Book, book.id)
    assert book.status == BookStatus.LOST
    assert book.available_copies == 1
    assert db.query(Borrowing).count() == 1

def test_unknown_book_or_user(db, member, book, lend, librarian):
    with pytest.raises(BookNotFoundError):
        LibrisAPI.borrow(db, member.id, 999, due_at=JAN_15, processed_by=librarian.id, now=JAN_1)
    with pytest.raises(UserNotFoundError):
        LibrisAPI.borrow(db, 999, book.id, due_at=JAN_15, processed_by=librarian.id, now=JAN_1)

def test_inactive_borrower_is_refused(db, member, book, lend):
    LibrisAPI.update_user(db, member.id, is_active=False)
    with pytest.raises(PreconditionFailed) as e:
        lend(member, book)
    assert e.value.reason == PreconditionFailed.INACTIVE_BORROWER

def test_duplicate_loan_is_refused(db, member, book, lend):
    lend(member, book)
    with pytest.raises(PreconditionFailed) as e:
        lend(member, book)
    assert e.value.reason == PreconditionFailed.DUPLICATE_LOAN
    assert db.query(Borrowing).count() == 1
    assert db.get(Book, book.id).available_copies == 1

def test_open_loan_index_reports_duplicate_loan(db, member, book, lend):
    lend(member, book)
    # Both requests passed the lookup before either committed
    with patch.object(Borrowing, "open_for", return_value=None):
        with pytest.raises(PreconditionFailed) as e:
            lend(member, book)
    assert e.value.reason == PreconditionFailed.DUPLICATE_LOAN
    assert db.query(Borrowing).count() == 1
    assert db.get(Book, book.id).available_copies == 1

def test_other_integrity_errors_are_not_duplicate_loans(db, member, book, lend):
    issue = Borrowing.issue

    def issued_after_due(**fields):
        return issue(**dict(fields, now=JAN_20))

    with patch.object(Borrowing, "issue", side_effect=issued_after_due):
        with pytest.raises(DatabaseInsertError):
            lend(member, book)
    assert db.query(Borrowing).count() == 0
    assert db.get(Book, book.id).available_copies == 2

def test_same_book_can_be_borrowed_again_after_return(db, member, book, lend):
    first = lend(member, book)
    LibrisAPI.return_book(db, first.id, now=JAN_1 + datetime.timedelta(days=2))
    second = lend(member, book, now=JAN_1 + datetime.timedelta(days=3),
                  due_at=JAN_20)
    assert second.id != first.id

def test_overdue_items_block_new_loans(db, member, make_book, lend):
    first, second = make_book("Dune"), make_book("Emma")
    lend(member, first)
    with pytest.raises(PreconditionFailed) as e:
        lend(member, second, now=JAN_20, due_at=JAN_20 + datetime.timedelta(days=14))
    assert e.value.reason == PreconditionFailed.OVERDUE_ITEMS
    # The lazy refresh was persisted
    assert db.query(Borrowing).one().status == BorrowingStatus.OVERDUE

def test_load_borrowing_recomputes_and_persists(db, member, book, lend):
    borrowing = lend(member, book)
    loaded = LibrisAPI.load_borrowing(db, borrowing.id, JAN_20)
    assert loaded.status == BorrowingStatus.OVERDUE
    assert loaded.fine_amount == Decimal("5.00")
    assert loaded.version == 2
    db.expire_all()
    assert db.get(Borrowing, borrowing.id).status == BorrowingStatus.OVERDUE

def test_load_missing_borrowing(db):
    with pytest.raises(BorrowingNotFoundError):
        LibrisAPI.load_borrowing(db, 42, JAN_1)

def test_renew_through_api(db, member, book, lend):
    borrowing = lend(member, book)
    renewed = LibrisAPI.renew(db, borrowing.id, 14, now=JAN_1 + datetime.timedelta(days=10))
    assert renewed.due_at == JAN_15 + datetime.timedelta(days=14)
    assert renewed.renewal_count == 1

def test_return_gives_the_copy_back(db, member, make_book, lend):
    book = make_book(copies=1)
    borrowing = lend(member, book)
    returned = LibrisAPI.return_book(db, borrowing.id, notes="Spine worn", now=JAN_20)
    assert returned.status == BorrowingStatus.RETURNED
    assert returned.fine_amount == Decimal("5.00")
    assert returned.notes == "Spine worn"
    book = db.get(Book, book.id)
    assert book.available_copies == 1
    assert book.status == BookStatus.AVAILABLE

def test_double_return_does_not_add_copies(db, member, book, lend):
    borrowing = lend(member, book)
    LibrisAPI.return_book(db, borrowing.id, now=JAN_15)
    with pytest.raises(AlreadyReturned):
        LibrisAPI.return_book(db, borrowing.id, now=JAN_20)
    assert db.get(Book, book.id).available_copies == 2

def test_mark_lost_decrements_available(db, member, book, lend):
    borrowing = lend(member, book)
    lost = LibrisAPI.mark_lost(db, borrowing.id, now=JAN_1 + datetime.timedelta(days=1), decrement=True)
    assert lost.status == BorrowingStatus.LOST
    assert lost.fine_amount == Decimal("50.00")
    book = db.get(Book, book.id)
    assert book.available_copies == 0
    assert book.status == BookStatus.LOST

def test_mark_lost_without_decrement(db, member, book, lend):
    borrowing = lend(member, book)
    LibrisAPI.mark_lost(db, borrowing.id, now=JAN_1 + datetime.timedelta(days=1), decrement=False)
    book = db.get(Book, book.id)
    assert book.available_copies == 1
    assert book.status == BookStatus.LOST

def test_mark_lost_never_goes_below_zero(db, member, make_book, lend):
    book = make_book(copies=1)
    borrowing = lend(member, book)
    LibrisAPI.mark_lost(db, borrowing.id, now=JAN_15, decrement=True)
    assert db.get(Book, book.id).available_copies == 0

def test_pay_fine_through_api(db, member, book, lend):
    borrowing = lend(member, book)
    with pytest.raises(InsufficientPayment):
        LibrisAPI.pay_fine(db, borrowing.id, Decimal("3"), now=JAN_20)
    db.expire_all()
    assert not db.get(Borrowing, borrowing.id).fine_paid
    paid = LibrisAPI.pay_fine(db, borrowing.id, Decimal("5"), now=JAN_20)
    assert paid.fine_paid
    assert paid.fine_paid_at == JAN_20

def test_stale_write_raises_version_conflict(db, member, book, lend):
    borrowing = lend(member, book)
    assert borrowing.version == 1
    # A concurrent writer bumps the version behind this session's back
    db.execute(
        update(Borrowing).where(Borrowing.id == borrowing.id)
        .values(version=Borrowing.version + 1)
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(VersionConflict):
        LibrisAPI.renew(db, borrowing.id, 14, now=JAN_1 + datetime.timedelta(days=2))
    db.expire_all()
    assert db.get(Borrowing, borrowing.id).renewal_count == 0

def test_refresh_overdue_counts_changes(db, member, other_member, book, lend):
    lend(member, book)
    lend(other_member, book, due_at=JAN_20 + datetime.timedelta(days=30))
    assert LibrisAPI.refresh_overdue(db, JAN_20) == 1
    assert LibrisAPI.refresh_overdue(db, JAN_20) == 0
    assert LibrisAPI.has_overdue(db, member.id)
    assert not LibrisAPI.has_overdue(db, other_member.id)

def test_has_overdue_as_of_a_given_time(db, member, book, lend):
    lend(member, book)
    assert not LibrisAPI.has_overdue(db, member.id)
    assert not LibrisAPI.has_overdue(db, member.id, JAN_15)
    assert LibrisAPI.has_overdue(db, member.id, JAN_20)
    db.expire_all()
    assert db.query(Borrowing).one().status == BorrowingStatus.OVERDUE

def test_borrowing_queries(db, member, other_member, make_book, lend):
    first, second = make_book("Dune"), make_book("Emma")
    lend(member, first)
    b = lend(member, second, now=JAN_1 + datetime.timedelta(days=1))
    lend(other_member, first)
    LibrisAPI.return_book(db, b.id, now=JAN_1 + datetime.timedelta(days=2))

    items, total = LibrisAPI.get_borrowings(db, JAN_1 + datetime.timedelta(days=3),
                                            user_id=member.id)
    assert total == 2
    items, total = LibrisAPI.get_borrowings(db, JAN_1 + datetime.timedelta(days=3),
                                            page=2, limit=2)
    assert total == 3 and len(items) == 1
    active = LibrisAPI.get_active_borrowings(db, member.id, JAN_20)
    assert [x.book_id for x in active] == [first.id]
    overdue = LibrisAPI.get_overdue_borrowings(db, JAN_20)
    assert {x.user_id for x in overdue} == {member.id, other_member.id}
    assert len(LibrisAPI.get_borrowing_history(db, member.id, JAN_20, limit=1)) == 1

def test_calculate_fine_sums_unpaid(db, member, make_book, lend):
    first, second = make_book("Dune"), make_book("Emma")
    a = lend(member, first)
    lend(member, second, due_at=JAN_15 + datetime.timedelta(days=2))
    LibrisAPI.pay_fine(db, a.id, 5, now=JAN_20)
    assert LibrisAPI.calculate_fine(db, member.id, JAN_20) == Decimal("3.00")
    db.expire_all()
    assert db.get(type(member), member.id).fine_amount == Decimal("3.00")
