from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional
from pydantic import AfterValidator, BaseModel, EmailStr, Field
from libris.configs import NOTES_MAX_LENGTH, RENEWAL_DAYS
from libris.core.models import BookStatus, Role
from libris.core.utils import HEX_COLOR_RE, PHONE_RE, is_valid_isbn

HEX_COLOR = HEX_COLOR_RE.pattern
PHONE = PHONE_RE.pattern


def _check_isbn(value):
    if value is not None and not is_valid_isbn(value):
        raise ValueError("Please enter a valid ISBN")
    return value

def _check_year(value):
    if value is not None and value > datetime.now().year:
        raise ValueError("Publication year cannot be in the future")
    return value

Isbn = Annotated[str, AfterValidator(_check_isbn)]
PublicationYear = Annotated[int, Field(ge=1000), AfterValidator(_check_year)]


class BorrowRequest(BaseModel):
    book_id: int
    user_id: int
    due_date: datetime
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)

class ReturnRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)

class RenewRequest(BaseModel):
    additional_days: int = Field(RENEWAL_DAYS, ge=1, le=30)

class PayFineRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Payment, at least the fine owed")


class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    author: str = Field(..., min_length=1, max_length=100)
    isbn: Isbn
    category_id: int
    publisher: str = Field(..., min_length=1, max_length=100)
    publication_year: PublicationYear
    edition: str = "1st Edition"
    language: str = "English"
    pages: Optional[int] = Field(None, ge=1)
    description: Optional[str] = Field(None, max_length=2000)
    cover_image: Optional[str] = None
    status: BookStatus = BookStatus.AVAILABLE
    shelf: Optional[str] = None
    section: Optional[str] = None
    floor: Optional[str] = None
    room: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    copies: int = Field(1, ge=1)

class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    author: Optional[str] = Field(None, min_length=1, max_length=100)
    isbn: Optional[Isbn] = None
    category_id: Optional[int] = None
    publisher: Optional[str] = Field(None, min_length=1, max_length=100)
    publication_year: Optional[PublicationYear] = None
    edition: Optional[str] = None
    language: Optional[str] = None
    pages: Optional[int] = Field(None, ge=1)
    description: Optional[str] = Field(None, max_length=2000)
    cover_image: Optional[str] = None
    status: Optional[BookStatus] = None
    shelf: Optional[str] = None
    section: Optional[str] = None
    floor: Optional[str] = None
    room: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    copies: Optional[int] = Field(None, ge=1)
    available_copies: Optional[int] = Field(None, ge=0)

class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[int] = None
    color: str = Field("#2196F3", pattern=HEX_COLOR)
    icon: str = "book"

class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[int] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR)
    icon: Optional[str] = None
    is_active: Optional[bool] = None


class UserCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    role: Role = Role.MEMBER
    phone: Optional[str] = Field(None, pattern=PHONE)
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    date_of_birth: Optional[datetime] = None

class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    phone: Optional[str] = Field(None, pattern=PHONE)
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    is_active: Optional[bool] = None
    membership_expiry: Optional[datetime] = None
