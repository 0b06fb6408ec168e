import datetime
import logging
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from libris.core.models import (
    Book,
    Borrowing,
    BorrowingStatus,
    Category,
    User,
    OPEN_STATUSES,
    OPEN_LOAN_INDEX,
)
from libris.core.utils import utcnow, to_utc, money
from libris.core.exceptions import (
    BookExistsError,
    BookInUseError,
    BookNotFoundError,
    BorrowingNotFoundError,
    CategoryExistsError,
    CategoryInUseError,
    CategoryNotFoundError,
    DatabaseInsertError,
    PreconditionFailed,
    UserExistsError,
    UserNotFoundError,
    VersionConflict,
)
from libris.configs import (
    HISTORY_LIMIT,
    LOST_DECREMENTS_AVAILABLE,
    RENEWAL_DAYS,
)

logger = logging.getLogger(__name__)


def _is_open_loan_conflict(e: IntegrityError) -> bool:
    """PostgreSQL names the violated index; SQLite names its columns."""
    message = str(e.orig)
    return (OPEN_LOAN_INDEX in message
            or "borrowings.user_id, borrowings.book_id" in message)


class LibrisAPI:

    DEFAULT_LIMIT = 10

    @classmethod
    def _commit(cls, db: Session, what: str):
        try:
            db.commit()
        except StaleDataError as e:
            db.rollback()
            logger.warning(f"Concurrent modification while saving {what}")
            raise VersionConflict(f"{what} was modified concurrently, reload and retry") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save {what}: {e}")
            raise DatabaseInsertError(f"Failed to save {what}: {str(e)}.") from e

    # Borrowing storage contract

    @classmethod
    def load_borrowing(cls, db: Session, borrowing_id: int, now: datetime.datetime):
        """Loads a borrowing and brings its status up to date with `now`,
        persisting the change if the loan has just become overdue."""
        borrowing = db.get(Borrowing, borrowing_id)
        if not borrowing:
            raise BorrowingNotFoundError("Borrowing record not found")
        borrowing.recompute_status(now)
        if db.is_modified(borrowing):
            cls.save(db, borrowing)
        return borrowing

    @classmethod
    def save(cls, db: Session, borrowing: Borrowing):
        db.add(borrowing)
        cls._commit(db, f"Borrowing {borrowing.id}")
        return borrowing

    @classmethod
    def refresh_overdue(cls, db: Session, now: datetime.datetime, user_id: Optional[int] = None) -> int:
        """Marks every active loan that is past due overdue. Returns how many
        records changed."""
        query = db.query(Borrowing).filter(
            Borrowing.status == BorrowingStatus.ACTIVE,
            Borrowing.due_at < now,
        )
        if user_id is not None:
            query = query.filter(Borrowing.user_id == user_id)
        changed = 0
        for borrowing in query.all():
            borrowing.recompute_status(now)
            if db.is_modified(borrowing):
                changed += 1
        if changed:
            cls._commit(db, f"{changed} overdue borrowings")
            logger.info(f"Marked {changed} borrowings overdue as of {now.isoformat()}")
        return changed

    # Lifecycle operations

    @classmethod
    def borrow(cls, db: Session, user_id: int, book_id: int, due_at: datetime.datetime,
               processed_by: int, notes: Optional[str] = None, now: Optional[datetime.datetime] = None):
        """
        Lends a copy of a book to a user.

        Args:
            user_id: The borrower.
            book_id: The book a copy is taken from.
            due_at: When the copy must be back; must be after `now`.
            processed_by: Id of the staff user recording the loan.
            notes: Optional free text.

        Returns:
            The new active Borrowing.

        Raises:
            PreconditionFailed: invalid-due-date, no-copies,
                inactive-borrower, overdue-items or duplicate-loan.
            BookNotFoundError, UserNotFoundError
        """
        now = now or utcnow()
        due_at = to_utc(due_at)
        if due_at <= now:
            raise PreconditionFailed(PreconditionFailed.INVALID_DUE_DATE)

        book = db.get(Book, book_id)
        if not book:
            raise BookNotFoundError("Book not found")
        if not book.is_active or not book.is_available:
            logger.warning(f"Borrow refused for book {book_id}: not available ({book.status.value})")
            raise PreconditionFailed(PreconditionFailed.NO_COPIES)

        user = db.get(User, user_id)
        if not user:
            raise UserNotFoundError("User not found")
        if not user.is_active:
            raise PreconditionFailed(PreconditionFailed.INACTIVE_BORROWER)

        if cls.has_overdue(db, user_id, now):
            logger.warning(f"Borrow refused for user {user_id}: overdue items")
            raise PreconditionFailed(PreconditionFailed.OVERDUE_ITEMS)
        if Borrowing.open_for(db, user_id, book_id):
            raise PreconditionFailed(PreconditionFailed.DUPLICATE_LOAN)

        borrowing = Borrowing.issue(
            user_id=user_id, book_id=book_id, due_at=due_at,
            processed_by_id=processed_by, now=now, notes=notes)
        try:
            db.add(borrowing)
            # Record and counter commit together or not at all
            if not Book.decrement_available(db, book_id):
                db.rollback()
                raise PreconditionFailed(PreconditionFailed.NO_COPIES)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if _is_open_loan_conflict(e):
                raise PreconditionFailed(PreconditionFailed.DUPLICATE_LOAN) from e
            logger.error(f"Failed to create borrowing: {e}")
            raise DatabaseInsertError(f"Failed to create borrowing record: {str(e)}.") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create borrowing: {e}")
            raise DatabaseInsertError(f"Failed to create borrowing record: {str(e)}.") from e
        logger.info(f"Book {book_id} lent to user {user_id} until {due_at.isoformat()}")
        return borrowing

    @classmethod
    def renew(cls, db: Session, borrowing_id: int, additional_days: int = RENEWAL_DAYS,
              now: Optional[datetime.datetime] = None):
        now = now or utcnow()
        borrowing = cls.load_borrowing(db, borrowing_id, now)
        borrowing.renew(now, additional_days)
        cls.save(db, borrowing)
        logger.info(f"Borrowing {borrowing_id} renewed ({borrowing.renewal_count})")
        return borrowing

    @classmethod
    def return_book(cls, db: Session, borrowing_id: int, notes: Optional[str] = None,
                    now: Optional[datetime.datetime] = None):
        now = now or utcnow()
        borrowing = cls.load_borrowing(db, borrowing_id, now)
        borrowing.return_item(now)
        if notes:
            borrowing.notes = notes
        Book.increment_available(db, borrowing.book_id)
        cls.save(db, borrowing)
        logger.info(f"Borrowing {borrowing_id} returned")
        return borrowing

    @classmethod
    def mark_lost(cls, db: Session, borrowing_id: int, now: Optional[datetime.datetime] = None,
                  decrement: Optional[bool] = None):
        """Marks the borrowed copy as lost and charges the lost item
        penalty. With `decrement` (LOST_DECREMENTS_AVAILABLE by default)
        the book's available count drops by one more."""
        now = now or utcnow()
        if decrement is None:
            decrement = LOST_DECREMENTS_AVAILABLE
        borrowing = cls.load_borrowing(db, borrowing_id, now)
        borrowing.mark_lost(now)
        Book.mark_lost(db, borrowing.book_id, decrement=decrement)
        cls.save(db, borrowing)
        logger.info(f"Borrowing {borrowing_id} marked lost")
        return borrowing

    @classmethod
    def pay_fine(cls, db: Session, borrowing_id: int, amount, now: Optional[datetime.datetime] = None):
        now = now or utcnow()
        borrowing = cls.load_borrowing(db, borrowing_id, now)
        borrowing.pay_fine(amount, now)
        cls.save(db, borrowing)
        logger.info(f"Fine of {borrowing.fine_amount} paid on borrowing {borrowing_id}")
        return borrowing

    # Borrowing queries

    @classmethod
    def has_overdue(cls, db: Session, user_id: int, now: Optional[datetime.datetime] = None) -> bool:
        """Whether the user holds an overdue loan. With `now` the user's
        loans are brought up to date first."""
        if now is not None:
            cls.refresh_overdue(db, now, user_id=user_id)
        return db.query(Borrowing).filter(
            Borrowing.user_id == user_id,
            Borrowing.status == BorrowingStatus.OVERDUE,
            Borrowing.returned_at.is_(None),
        ).count() > 0

    @classmethod
    def get_borrowings(cls, db: Session, now: datetime.datetime, status=None, user_id=None,
                       book_id=None, start=None, end=None, page: int = 1, limit: Optional[int] = None):
        """Returns a page of borrowings, newest first, and the total count
        matching the filters."""
        limit = limit or cls.DEFAULT_LIMIT
        cls.refresh_overdue(db, now)
        query = db.query(Borrowing)
        if status:
            query = query.filter(Borrowing.status == status)
        if user_id:
            query = query.filter(Borrowing.user_id == user_id)
        if book_id:
            query = query.filter(Borrowing.book_id == book_id)
        if start and end:
            query = query.filter(Borrowing.borrowed_at.between(to_utc(start), to_utc(end)))
        total = query.count()
        borrowings = query.order_by(Borrowing.borrowed_at.desc()).offset(
            (page - 1) * limit).limit(limit).all()
        return borrowings, total

    @classmethod
    def get_user_borrowings(cls, db: Session, user_id: int, now: datetime.datetime):
        cls.refresh_overdue(db, now, user_id=user_id)
        return db.query(Borrowing).filter(
            Borrowing.user_id == user_id
        ).order_by(Borrowing.borrowed_at.desc()).all()

    @classmethod
    def get_active_borrowings(cls, db: Session, user_id: int, now: datetime.datetime):
        cls.refresh_overdue(db, now, user_id=user_id)
        return db.query(Borrowing).filter(
            Borrowing.user_id == user_id,
            Borrowing.status.in_(OPEN_STATUSES),
        ).order_by(Borrowing.borrowed_at.desc()).all()

    @classmethod
    def get_borrowing_history(cls, db: Session, user_id: int, now: datetime.datetime,
                              limit: int = HISTORY_LIMIT):
        return cls.get_user_borrowings(db, user_id, now)[:limit]

    @classmethod
    def get_overdue_borrowings(cls, db: Session, now: datetime.datetime):
        cls.refresh_overdue(db, now)
        return db.query(Borrowing).filter(
            Borrowing.status == BorrowingStatus.OVERDUE,
            Borrowing.returned_at.is_(None),
        ).order_by(Borrowing.due_at).all()

    # Catalog

    @classmethod
    def get_book(cls, db: Session, book_id: int):
        if not (book := db.get(Book, book_id)):
            raise BookNotFoundError("Book not found")
        return book

    @classmethod
    def add_book(cls, db: Session, added_by: int, **fields):
        if Book.exists(db, fields["isbn"]):
            raise BookExistsError(f"Book with ISBN '{fields['isbn']}' already exists.")
        if not db.get(Category, fields["category_id"]):
            raise CategoryNotFoundError("Category not found")
        fields.setdefault("available_copies", fields.get("copies", 1))
        book = Book(added_by_id=added_by, **fields)
        try:
            db.add(book)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise BookExistsError(f"Book with ISBN '{fields['isbn']}' already exists.") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise DatabaseInsertError(f"Failed to add book to db: {str(e)}.") from e
        logger.info(f"Book {book.id} added: {book.title}")
        return book

    @classmethod
    def update_book(cls, db: Session, book_id: int, **changes):
        book = cls.get_book(db, book_id)
        isbn = changes.get("isbn")
        if isbn and isbn != book.isbn and Book.exists(db, isbn):
            raise BookExistsError(f"Book with ISBN '{isbn}' already exists.")
        if "category_id" in changes and not db.get(Category, changes["category_id"]):
            raise CategoryNotFoundError("Category not found")
        # Changing the number of copies resets availability unless given
        if "copies" in changes and "available_copies" not in changes:
            changes["available_copies"] = changes["copies"]
        for key, value in changes.items():
            setattr(book, key, value)
        cls._commit(db, f"Book {book_id}")
        return book

    @classmethod
    def remove_book(cls, db: Session, book_id: int):
        """Retires a book from the catalog. Books with copies on loan
        cannot be retired."""
        book = cls.get_book(db, book_id)
        on_loan = db.query(Borrowing).filter(
            Borrowing.book_id == book_id,
            Borrowing.status.in_(OPEN_STATUSES),
        ).count()
        if on_loan:
            raise BookInUseError("Cannot delete a book that is currently borrowed")
        book.is_active = False
        cls._commit(db, f"Book {book_id}")
        return book

    @classmethod
    def rate_book(cls, db: Session, book_id: int, rating: int):
        book = cls.get_book(db, book_id)
        book.update_rating(rating)
        cls._commit(db, f"Book {book_id}")
        return book

    @classmethod
    def search_books(cls, db: Session, query: Optional[str] = None, category_id=None, status=None,
                     author=None, publication_year=None, language=None, include_inactive=False,
                     page: int = 1, limit: Optional[int] = None):
        limit = limit or cls.DEFAULT_LIMIT
        q = db.query(Book)
        if not include_inactive:
            q = q.filter(Book.is_active.is_(True))
        if query:
            pattern = f"%{query}%"
            q = q.filter(or_(
                Book.title.ilike(pattern),
                Book.author.ilike(pattern),
                Book.description.ilike(pattern),
            ))
        if category_id:
            q = q.filter(Book.category_id == category_id)
        if status:
            q = q.filter(Book.status == status)
        if author:
            q = q.filter(Book.author.ilike(f"%{author}%"))
        if publication_year:
            q = q.filter(Book.publication_year == publication_year)
        if language:
            q = q.filter(Book.language == language)
        total = q.count()
        books = q.order_by(Book.created_at.desc(), Book.id.desc()).offset(
            (page - 1) * limit).limit(limit).all()
        return books, total

    @classmethod
    def get_popular_books(cls, db: Session, limit: int = 10):
        return db.query(Book).filter(Book.is_active.is_(True)).order_by(
            Book.rating_average.desc(), Book.rating_count.desc()
        ).limit(limit).all()

    @classmethod
    def get_recent_books(cls, db: Session, limit: int = 10):
        return db.query(Book).filter(Book.is_active.is_(True)).order_by(
            Book.created_at.desc(), Book.id.desc()
        ).limit(limit).all()

    # Categories

    @classmethod
    def get_category(cls, db: Session, category_id: int):
        if not (category := db.get(Category, category_id)):
            raise CategoryNotFoundError("Category not found")
        return category

    @classmethod
    def add_category(cls, db: Session, created_by: int, **fields):
        if Category.exists(db, fields["name"]):
            raise CategoryExistsError(f"Category '{fields['name']}' already exists.")
        if fields.get("parent_id"):
            cls.get_category(db, fields["parent_id"])
        category = Category(created_by_id=created_by, **fields)
        try:
            db.add(category)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise CategoryExistsError(f"Category '{fields['name']}' already exists.") from e
        return category

    @classmethod
    def update_category(cls, db: Session, category_id: int, **changes):
        category = cls.get_category(db, category_id)
        name = changes.get("name")
        if name and name != category.name and Category.exists(db, name):
            raise CategoryExistsError(f"Category '{name}' already exists.")
        parent_id = changes.get("parent_id")
        if parent_id:
            if parent_id == category_id:
                raise CategoryInUseError("A category cannot be its own parent")
            cls.get_category(db, parent_id)
        for key, value in changes.items():
            setattr(category, key, value)
        cls._commit(db, f"Category {category_id}")
        return category

    @classmethod
    def remove_category(cls, db: Session, category_id: int):
        category = cls.get_category(db, category_id)
        if not category.can_be_deleted(db):
            raise CategoryInUseError("Cannot delete a category with books or subcategories")
        db.delete(category)
        cls._commit(db, f"Category {category_id}")

    # Users

    @classmethod
    def get_user(cls, db: Session, user_id: int):
        if not (user := db.get(User, user_id)):
            raise UserNotFoundError("User not found")
        return user

    @classmethod
    def add_user(cls, db: Session, **fields):
        fields["email"] = fields["email"].strip().lower()
        if User.exists(db, fields["email"]):
            raise UserExistsError(f"User with email '{fields['email']}' already exists.")
        user = User(**fields)
        try:
            db.add(user)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise UserExistsError(f"User with email '{fields['email']}' already exists.") from e
        logger.info(f"User {user.id} registered as {user.role.value}")
        return user

    @classmethod
    def update_user(cls, db: Session, user_id: int, **changes):
        user = cls.get_user(db, user_id)
        if email := changes.get("email"):
            changes["email"] = email = email.strip().lower()
            if email != user.email and User.exists(db, email):
                raise UserExistsError(f"User with email '{email}' already exists.")
        for key, value in changes.items():
            setattr(user, key, value)
        cls._commit(db, f"User {user_id}")
        return user

    @classmethod
    def get_users(cls, db: Session, role=None, is_active=None, page: int = 1, limit: Optional[int] = None):
        limit = limit or cls.DEFAULT_LIMIT
        q = db.query(User)
        if role:
            q = q.filter(User.role == role)
        if is_active is not None:
            q = q.filter(User.is_active.is_(is_active))
        total = q.count()
        return q.order_by(User.created_at.desc(), User.id.desc()).offset(
            (page - 1) * limit).limit(limit).all(), total

    @classmethod
    def calculate_fine(cls, db: Session, user_id: int, now: Optional[datetime.datetime] = None):
        """Sums the user's unpaid fines at `now` and caches the total on
        the user record."""
        now = now or utcnow()
        user = cls.get_user(db, user_id)
        cls.refresh_overdue(db, now, user_id=user_id)
        unpaid = db.query(Borrowing).filter(
            Borrowing.user_id == user_id,
            Borrowing.fine_paid.is_(False),
        ).all()
        user.fine_amount = money(sum((b.fine_amount for b in unpaid), 0))
        cls._commit(db, f"User {user_id}")
        return user.fine_amount
