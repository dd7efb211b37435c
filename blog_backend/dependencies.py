"""
Dependency wiring for the FastAPI app.

The persistence client and token service are built once by ``create_app``
and stored on ``app.state``; these accessors hand them to route handlers.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import Request

from blog_backend.config import Settings
from blog_backend.db import DbClient, InMemoryDbClient, SqlDbClient
from blog_backend.security import TokenService


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends:
        return InMemoryDbClient()
    return SqlDbClient(settings.database_url)


def build_token_service(settings: Settings) -> TokenService:
    return TokenService(
        settings.signing_secret,
        issuer=settings.jwt_issuer,
        ttl=timedelta(hours=settings.token_ttl_hours),
    )


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens
