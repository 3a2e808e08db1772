"""Password hashing and bearer token handling."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from .errors import Unauthenticated

_TOKEN_ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL = timedelta(hours=1)


class PasswordHasher:
    """One-way salted password hashing backed by bcrypt."""

    def __init__(self, *, rounds: int = 12) -> None:
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        if not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            return False


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str


class TokenService:
    """Issue and verify signed, time-boxed session tokens."""

    def __init__(self, secret: str, *, ttl: timedelta = DEFAULT_TOKEN_TTL) -> None:
        if not secret:
            raise ValueError("A token secret must be provided")
        self._secret = secret
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: str, email: str, *, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "userId": user_id,
            "email": email,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=_TOKEN_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode ``token``; every failure surfaces as :class:`Unauthenticated`."""

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_TOKEN_ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise Unauthenticated("Token has expired.") from exc
        except jwt.PyJWTError as exc:
            raise Unauthenticated("Invalid token.") from exc

        user_id = payload.get("userId")
        email = payload.get("email")
        if not isinstance(user_id, str) or not user_id or not isinstance(email, str):
            raise Unauthenticated("Invalid token.")
        return TokenClaims(user_id=user_id, email=email)


__all__ = ["DEFAULT_TOKEN_TTL", "PasswordHasher", "TokenClaims", "TokenService"]
