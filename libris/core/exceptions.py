
class LibrisAPIError(Exception): pass

class PreconditionFailed(LibrisAPIError):
    """A borrowing could not be created or transitioned.

    `reason` is one of the short codes below so callers can branch on it
    without parsing the message.
    """

    NO_COPIES = "no-copies"
    OVERDUE_ITEMS = "overdue-items"
    DUPLICATE_LOAN = "duplicate-loan"
    INVALID_DUE_DATE = "invalid-due-date"
    INACTIVE_BORROWER = "inactive-borrower"
    LOST = "lost"

    MESSAGES = {
        NO_COPIES: "Book is not available for borrowing",
        OVERDUE_ITEMS: "User has overdue books. Please return them before borrowing new books.",
        DUPLICATE_LOAN: "User has already borrowed this book",
        INVALID_DUE_DATE: "Due date must be in the future",
        INACTIVE_BORROWER: "User account is not active",
        LOST: "Book has been marked as lost",
    }

    def __init__(self, reason: str, message: str = None):
        self.reason = reason
        super().__init__(message or self.MESSAGES.get(reason, reason))

class NotRenewable(LibrisAPIError): pass

class AlreadyReturned(LibrisAPIError): pass

class InsufficientPayment(LibrisAPIError): pass

class VersionConflict(LibrisAPIError): pass

class NotFound(LibrisAPIError): pass

class BorrowingNotFoundError(NotFound): pass

class BookNotFoundError(NotFound): pass

class UserNotFoundError(NotFound): pass

class CategoryNotFoundError(NotFound): pass

class BookExistsError(LibrisAPIError): pass

class BookInUseError(LibrisAPIError): pass

class UserExistsError(LibrisAPIError): pass

class CategoryExistsError(LibrisAPIError): pass

class CategoryInUseError(LibrisAPIError): pass

class DatabaseInsertError(LibrisAPIError): pass

class AuthenticationError(LibrisAPIError): pass

class PermissionDeniedError(LibrisAPIError): pass
