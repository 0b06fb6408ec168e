import math
from fastapi import HTTPException, status
from libris.core.exceptions import (
    AuthenticationError,
    BookExistsError,
    CategoryExistsError,
    DatabaseInsertError,
    NotFound,
    PermissionDeniedError,
    PreconditionFailed,
    UserExistsError,
    VersionConflict,
)

ERROR_STATUS = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (VersionConflict, status.HTTP_409_CONFLICT),
    (BookExistsError, status.HTTP_409_CONFLICT),
    (UserExistsError, status.HTTP_409_CONFLICT),
    (CategoryExistsError, status.HTTP_409_CONFLICT),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (DatabaseInsertError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)

def http_error(e: Exception) -> HTTPException:
    """Maps a LibrisAPIError onto the HTTPException the caller should see.
    Anything not listed is a rejected request (400)."""
    if isinstance(e, PreconditionFailed):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(e), "reason": e.reason},
        )
    for exc_type, code in ERROR_STATUS:
        if isinstance(e, exc_type):
            return HTTPException(status_code=code, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

def ok(message: str = None, **data) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body

def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "current": page,
        "pages": math.ceil(total / limit) if limit else 0,
        "total": total,
        "limit": limit,
    }
