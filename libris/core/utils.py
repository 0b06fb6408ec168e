import datetime
import math
import re
from decimal import Decimal, ROUND_HALF_UP

ONE_DAY = datetime.timedelta(days=1)
CENTS = Decimal("0.01")

ISBN_RE = re.compile(
    r"^(?:ISBN(?:-1[03])?:? )?(?=[0-9X]{10}$|(?=(?:[0-9]+[- ]){3})[- 0-9X]{13}$"
    r"|97[89][0-9]{10}$|(?=(?:[0-9]+[- ]){4})[- 0-9]{17}$)"
    r"(?:97[89][- ]?)?[0-9]{1,5}[- ]?[0-9]+[- ]?[0-9]+[- ]?[0-9X]$"
)
PHONE_RE = re.compile(r"^[\+]?[1-9][\d]{0,15}$")
HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")


def utcnow() -> datetime.datetime:
    """Current UTC time as a naive datetime, the form stored in the db."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)

def to_utc(value: datetime.datetime) -> datetime.datetime:
    """Normalizes an aware datetime to naive UTC; naive values pass through."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value

def days_ceil(start: datetime.datetime, end: datetime.datetime) -> int:
    """Whole days from `start` to `end`, any partial day counting as one."""
    return math.ceil((end - start) / ONE_DAY)

def to_decimal(value) -> Decimal:
    """Exact Decimal for a payment or amount. Floats go through str so
    3.1 stays 3.1 rather than its binary expansion."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value)

def money(value) -> Decimal:
    """Fixed point amount with two decimals."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)

def is_valid_isbn(isbn: str) -> bool:
    return bool(ISBN_RE.match(isbn or ""))
