import os

# Must be set before libris.configs is imported
os.environ["TESTING"] = "true"

import datetime
import pytest
from fastapi.testclient import TestClient
from libris.app import app
from libris.core.api import LibrisAPI
from libris.core.auth import create_session_token
from libris.core.db import Base, SessionLocal, engine, get_db
from libris.core.models import Role

JAN_1 = datetime.datetime(2024, 1, 1, 10, 0)
JAN_15 = datetime.datetime(2024, 1, 15, 10, 0)
JAN_20 = datetime.datetime(2024, 1, 20, 10, 0)

_isbn_counter = iter(range(1000000000, 9999999999))


def new_isbn():
    return f"978{next(_isbn_counter)}"


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def admin(db):
    return LibrisAPI.add_user(db, first_name="Ada", last_name="Admin",
                              email="admin@example.org", role=Role.ADMIN)

@pytest.fixture
def librarian(db):
    return LibrisAPI.add_user(db, first_name="Lee", last_name="Librarian",
                              email="librarian@example.org", role=Role.LIBRARIAN)

@pytest.fixture
def member(db):
    return LibrisAPI.add_user(db, first_name="Max", last_name="Member",
                              email="member@example.org")

@pytest.fixture
def other_member(db):
    return LibrisAPI.add_user(db, first_name="Olive", last_name="Other",
                              email="olive@example.org")

@pytest.fixture
def category(db, librarian):
    return LibrisAPI.add_category(db, created_by=librarian.id, name="Fiction")

@pytest.fixture
def make_book(db, librarian, category):
    def _make_book(title="Dune", copies=2, **fields):
        fields.setdefault("author", "Frank Herbert")
        fields.setdefault("isbn", new_isbn())
        fields.setdefault("publisher", "Chilton")
        fields.setdefault("publication_year", 1965)
        return LibrisAPI.add_book(db, added_by=librarian.id, title=title,
                                  category_id=category.id, copies=copies, **fields)
    return _make_book

@pytest.fixture
def book(make_book):
    return make_book()

@pytest.fixture
def lend(db, librarian):
    """Borrows `book` for `user` on 2024-01-01, due 2024-01-15."""
    def _lend(user, book, now=JAN_1, due_at=JAN_15):
        return LibrisAPI.borrow(db, user_id=user.id, book_id=book.id, due_at=due_at,
                                processed_by=librarian.id, now=now)
    return _lend

@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()

@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {create_session_token(user.id)}"}
    return _auth_headers
