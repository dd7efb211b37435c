import base64
import json
import unittest
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from blog_backend.security import (
    InvalidToken,
    TokenService,
    hash_password,
    verify_password,
)

SECRET = "unit-test-secret-0123456789abcdef0123"


@dataclass
class FakeUser:
    id: int
    username: str


def _b64(data: dict) -> str:
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class PasswordHashingTests(unittest.TestCase):
    def test_hash_verifies_and_is_salted(self):
        first = hash_password("hunter2")
        second = hash_password("hunter2")
        self.assertNotEqual(first, "hunter2")
        self.assertNotEqual(first, second)
        self.assertTrue(verify_password("hunter2", first))
        self.assertTrue(verify_password("hunter2", second))

    def test_wrong_password_is_rejected(self):
        hashed = hash_password("hunter2")
        self.assertFalse(verify_password("hunter3", hashed))

    def test_unrecognised_hash_is_a_mismatch(self):
        self.assertFalse(verify_password("hunter2", "not-a-hash"))


class TokenServiceTests(unittest.TestCase):
    def setUp(self):
        self.tokens = TokenService(SECRET, issuer="blog-backend")
        self.user = FakeUser(id=7, username="alice")

    def test_issued_token_verifies(self):
        claims = self.tokens.verify(self.tokens.issue(self.user))
        self.assertEqual(claims.user_id, 7)
        self.assertEqual(claims.username, "alice")
        self.assertEqual(claims.issuer, "blog-backend")
        self.assertEqual(claims.expires_at - claims.issued_at, timedelta(hours=24))

    def test_token_from_another_secret_is_rejected(self):
        other = TokenService("another-secret-0123456789abcdef0123")
        with self.assertRaises(InvalidToken):
            self.tokens.verify(other.issue(self.user))

    def test_token_with_other_algorithm_is_rejected(self):
        now = datetime.now(timezone.utc)
        payload = {
            "user_id": 7,
            "username": "alice",
            "iss": "blog-backend",
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=1)).timestamp()),
        }
        token = jwt.encode(payload, SECRET, algorithm="HS512")
        with self.assertRaises(InvalidToken):
            self.tokens.verify(token)

    def test_unsigned_token_is_rejected(self):
        now = datetime.now(timezone.utc)
        header = _b64({"alg": "none", "typ": "JWT"})
        payload = _b64(
            {
                "user_id": 7,
                "username": "alice",
                "iss": "blog-backend",
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(hours=1)).timestamp()),
            }
        )
        with self.assertRaises(InvalidToken):
            self.tokens.verify(f"{header}.{payload}.")

    def test_expired_token_is_rejected(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=25)
        token = self.tokens.issue(self.user, now=issued)
        with self.assertRaises(InvalidToken):
            self.tokens.verify(token)

    def test_wrong_issuer_is_rejected(self):
        other = TokenService(SECRET, issuer="someone-else")
        with self.assertRaises(InvalidToken):
            self.tokens.verify(other.issue(self.user))

    def test_token_without_identity_is_rejected(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "iss": "blog-backend",
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(hours=1)).timestamp()),
            },
            SECRET,
            algorithm="HS256",
        )
        with self.assertRaises(InvalidToken):
            self.tokens.verify(token)

    def test_garbage_is_rejected(self):
        with self.assertRaises(InvalidToken):
            self.tokens.verify("not.a.token")

    def test_empty_secret_is_refused(self):
        with self.assertRaises(ValueError):
            TokenService("")


if __name__ == "__main__":
    unittest.main()
