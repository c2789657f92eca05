import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from ..config import settings
from ..exceptions import AuthenticationError, InvalidIdentity

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"


@dataclass(frozen=True)
class Identity:
    """
    Личность, от имени которой выполняется запрос.
    Авторизованный пользователь (user_id) важнее гостевой сессии (session_id).
    """

    user_id: Optional[str] = None
    session_id: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def user(cls, user_id: str, role: str = "USER", email: Optional[str] = None) -> "Identity":
        return cls(user_id=user_id, role=role, email=email)

    @classmethod
    def guest(cls, session_id: str) -> "Identity":
        return cls(session_id=session_id)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None and self.session_id is None

    def owner_key(self) -> tuple[str, str]:
        """Ключ владельца корзины: ("user", id) или ("session", id)"""
        if self.user_id:
            return "user", self.user_id
        if self.session_id:
            return "session", self.session_id
        raise InvalidIdentity()

    def owns(self, cart) -> bool:
        kind, value = self.owner_key()
        if kind == "user":
            return cart.user_id == value
        return cart.session_id == value


def generate_session_id() -> str:
    """Новый идентификатор гостевой сессии"""
    return f"guest_{uuid.uuid4().hex}"


def create_access_token(
        user_id: str,
        email: Optional[str] = None,
        role: str = "USER",
        expires_delta: Optional[timedelta] = None
) -> str:
    """Создает JWT токен с указанным временем истечения"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"userId": user_id, "email": email, "role": role, "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Identity:
    """Проверяет подпись и срок действия токена"""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")

    user_id = payload.get("userId")
    if not user_id:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")

    return Identity.user(str(user_id), role=payload.get("role") or "USER", email=payload.get("email"))
