"""Authorization gate for the feed API."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .credentials import TokenService
from .errors import Forbidden, Unauthenticated
from .models import Post

logger = logging.getLogger("feedserver.security")


@dataclass(frozen=True)
class AuthContext:
    """Identity attached to a request. Anonymous when ``user_id`` is ``None``."""

    user_id: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def require_user(self) -> str:
        if self.user_id is None:
            raise Unauthenticated("Not authenticated.")
        return self.user_id


ANONYMOUS = AuthContext()


class BearerAuth:
    """Resolve the bearer token on a request without rejecting it.

    Operations that need an identity call :meth:`AuthContext.require_user`.
    """

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens
        self._bearer = HTTPBearer(auto_error=False)

    def authenticate(self, token: Optional[str]) -> AuthContext:
        if not token:
            return ANONYMOUS
        try:
            claims = self._tokens.verify(token)
        except Unauthenticated as exc:
            logger.debug("Rejected bearer token: %s", exc.message)
            return ANONYMOUS
        return AuthContext(user_id=claims.user_id, email=claims.email)

    async def __call__(self, request: Request) -> AuthContext:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            return ANONYMOUS
        return self.authenticate(credentials.credentials.strip())


def ensure_owner(post: Post, auth: AuthContext) -> None:
    """Raise :class:`Forbidden` unless the caller created ``post``."""

    user_id = auth.require_user()
    if post.creator_id != user_id:
        raise Forbidden("Not authorized!")


__all__ = ["ANONYMOUS", "AuthContext", "BearerAuth", "ensure_owner"]
