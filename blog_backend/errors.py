"""
Error taxonomy for the HTTP layer.

Handlers raise ``ApiError`` subclasses; ``blog_backend.app`` turns them into
``{"error": message}`` responses with the matching status code.
"""

from __future__ import annotations


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class StoreError(Exception):
    """Unexpected persistence failure. Never shown to the caller."""


class DuplicateRecordError(StoreError):
    """A unique constraint was violated."""


class CredentialError(Exception):
    """The password hashing primitive failed."""
