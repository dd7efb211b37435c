"""
Password hashing and signed bearer tokens.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

import jwt
from passlib.context import CryptContext

from blog_backend.errors import CredentialError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["exp", "iat", "iss", "user_id", "username"]


class InvalidToken(Exception):
    """Raised for any token that fails decoding or validation."""


class TokenSubject(Protocol):
    id: int
    username: str


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    username: str
    issuer: str
    issued_at: datetime
    expires_at: datetime


def hash_password(password: str) -> str:
    try:
        return pwd_context.hash(password)
    except (ValueError, TypeError) as exc:
        raise CredentialError("failed to hash password") from exc


def verify_password(password: str, password_hash: str) -> bool:
    # An unrecognised stored hash is treated like a wrong password.
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


class TokenService:
    """Issues and verifies HS256 tokens carrying the user's identity."""

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "blog-backend",
        ttl: timedelta = timedelta(hours=24),
        algorithm: str = TOKEN_ALGORITHM,
    ):
        if not secret:
            raise ValueError("a signing secret is required")
        self.secret = secret
        self.issuer = issuer
        self.ttl = ttl
        self.algorithm = algorithm

    def issue(self, user: TokenSubject, *, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "user_id": user.id,
            "username": user.username,
            "iss": self.issuer,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(str(exc)) from exc

        user_id = payload["user_id"]
        username = payload["username"]
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise InvalidToken("user_id claim must be an integer")
        if not isinstance(username, str):
            raise InvalidToken("username claim must be a string")

        return TokenClaims(
            user_id=user_id,
            username=username,
            issuer=payload["iss"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
