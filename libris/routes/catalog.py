#!/usr/bin/env python

"""
    Catalog routes for Libris: books and categories.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from libris.core.api import LibrisAPI
from libris.core.db import get_db
from libris.core.exceptions import LibrisAPIError
from libris.core.models import BookStatus, Category, User
from libris.routes.schemas import (
    BookCreate,
    BookUpdate,
    CategoryCreate,
    CategoryUpdate,
    RatingRequest,
)
from libris.schemas.book import Book as BookView
from libris.schemas.category import Category as CategoryView
from libris.utils.auth import current_user, staff_user
from libris.utils.http import http_error, ok, pagination

router = APIRouter()


def _book(book) -> dict:
    return BookView.model_validate(book).model_dump(mode="json")

def _category(category) -> dict:
    return CategoryView.model_validate(category).model_dump(mode="json")


@router.post('/books', status_code=status.HTTP_201_CREATED)
def add_book(body: BookCreate, staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        book = LibrisAPI.add_book(db, added_by=staff.id, **body.model_dump())
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Book added successfully", book=_book(book))

@router.get('/books')
def get_books(
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        status: Optional[BookStatus] = None,
        author: Optional[str] = None,
        publication_year: Optional[int] = None,
        language: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(LibrisAPI.DEFAULT_LIMIT, ge=1, le=100),
        db: Session = Depends(get_db)):
    books, total = LibrisAPI.search_books(
        db, query=search, category_id=category_id, status=status, author=author,
        publication_year=publication_year, language=language, page=page, limit=limit)
    return ok(books=[_book(b) for b in books], pagination=pagination(page, limit, total))

@router.get('/books/popular')
def get_popular_books(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    return ok(books=[_book(b) for b in LibrisAPI.get_popular_books(db, limit=limit)])

@router.get('/books/recent')
def get_recent_books(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    return ok(books=[_book(b) for b in LibrisAPI.get_recent_books(db, limit=limit)])

@router.get('/books/{book_id}')
def get_book(book_id: int, db: Session = Depends(get_db)):
    try:
        book = LibrisAPI.get_book(db, book_id)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(book=_book(book))

@router.put('/books/{book_id}')
def update_book(book_id: int, body: BookUpdate,
                staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        book = LibrisAPI.update_book(db, book_id, **body.model_dump(exclude_unset=True))
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Book updated successfully", book=_book(book))

@router.delete('/books/{book_id}')
def remove_book(book_id: int, staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        LibrisAPI.remove_book(db, book_id)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Book deleted successfully")

@router.post('/books/{book_id}/rate')
def rate_book(book_id: int, body: RatingRequest,
              user: User = Depends(current_user), db: Session = Depends(get_db)):
    try:
        book = LibrisAPI.rate_book(db, book_id, body.rating)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Rating added successfully", rating_average=book.rating_average,
              rating_count=book.rating_count)


@router.post('/categories', status_code=status.HTTP_201_CREATED)
def add_category(body: CategoryCreate, staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        category = LibrisAPI.add_category(db, created_by=staff.id, **body.model_dump())
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Category created successfully", category=_category(category))

@router.get('/categories')
def get_categories(db: Session = Depends(get_db)):
    return ok(categories=[
        dict(_category(category), book_count=count)
        for category, count in Category.with_counts(db)
    ])

@router.get('/categories/hierarchy')
def get_category_hierarchy(db: Session = Depends(get_db)):
    return ok(categories=Category.hierarchy(db))

@router.get('/categories/{category_id}')
def get_category(category_id: int, db: Session = Depends(get_db)):
    try:
        category = LibrisAPI.get_category(db, category_id)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok(category=_category(category))

@router.put('/categories/{category_id}')
def update_category(category_id: int, body: CategoryUpdate,
                    staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        category = LibrisAPI.update_category(
            db, category_id, **body.model_dump(exclude_unset=True))
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Category updated successfully", category=_category(category))

@router.delete('/categories/{category_id}')
def remove_category(category_id: int, staff: User = Depends(staff_user), db: Session = Depends(get_db)):
    try:
        LibrisAPI.remove_category(db, category_id)
    except LibrisAPIError as e:
        raise http_error(e)
    return ok("Category deleted successfully")
