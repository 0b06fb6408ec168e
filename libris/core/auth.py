import logging
from typing import Optional
from itsdangerous import URLSafeTimedSerializer, BadSignature
from sqlalchemy.orm import Session
from libris.configs import SEED, TOKEN_TTL
from libris.core.models import User
from libris.core.utils import utcnow
from libris.core.exceptions import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)

SERIALIZER = None  # Will be initialized lazily

def _get_serializer():
    """Get or initialize the SERIALIZER lazily."""
    global SERIALIZER
    if SERIALIZER is None:
        SERIALIZER = URLSafeTimedSerializer(SEED, salt="auth-token")
    return SERIALIZER

def create_session_token(user_id: int) -> str:
    """Returns a signed, timestamped token naming the user."""
    return _get_serializer().dumps({"user_id": user_id})

def verify_session_token(token: Optional[str], max_age: int = TOKEN_TTL) -> Optional[int]:
    """Returns the user id carried by a valid token, else None.
    Expired tokens are rejected like forged ones."""
    if not token:
        return None
    try:
        data = _get_serializer().loads(token, max_age=max_age)
    except BadSignature:
        return None
    if isinstance(data, dict):
        return data.get("user_id")
    return None

def authenticate(db: Session, token: Optional[str]) -> User:
    user_id = verify_session_token(token)
    if user_id is None:
        raise AuthenticationError("Not authenticated")
    user = db.get(User, user_id)
    if not user or not user.is_active:
        logger.warning(f"Token presented for unknown or inactive user {user_id}")
        raise AuthenticationError("Not authenticated")
    return user

def require_staff(user: User) -> User:
    if not user.is_staff:
        raise PermissionDeniedError("Access denied")
    return user

def login(db: Session, user: User) -> str:
    """Issues a token for `user` and records the login time."""
    user.last_login = utcnow()
    db.commit()
    return create_session_token(user.id)
