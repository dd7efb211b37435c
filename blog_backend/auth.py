"""
Bearer-token authentication for protected routes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from blog_backend.dependencies import get_token_service
from blog_backend.errors import Unauthorized
from blog_backend.security import InvalidToken, TokenService


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, established once per request."""

    user_id: int
    username: str


def parse_bearer(header: str) -> Optional[str]:
    """Return the token from ``Bearer <token>``, or None if malformed."""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def require_identity(
    authorization: Optional[str] = Header(default=None),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    if not authorization:
        raise Unauthorized("missing authorization header")

    token = parse_bearer(authorization)
    if token is None:
        raise Unauthorized("invalid authorization header")

    try:
        claims = tokens.verify(token)
    except InvalidToken:
        raise Unauthorized("invalid or expired token")

    return Identity(user_id=claims.user_id, username=claims.username)
