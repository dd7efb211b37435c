"""
HTTP routes for the blog API.
"""

from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query

from blog_backend.auth import Identity, require_identity
from blog_backend.db import DbClient, PostRecord
from blog_backend.dependencies import get_db_client, get_token_service
from blog_backend.errors import (
    Conflict,
    DuplicateRecordError,
    Forbidden,
    NotFound,
    Unauthorized,
)
from blog_backend.schemas import (
    CommentRequest,
    CommentResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PostRequest,
    PostResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
    UserSummary,
)
from blog_backend.security import TokenService, hash_password, verify_password

logger = logging.getLogger(__name__)

# Largest value a 64-bit signed database integer can hold.
MAX_DB_INT = 2**63 - 1

PostId = Annotated[int, Path(ge=0, le=MAX_DB_INT)]

router = APIRouter()


def _require_post(db: DbClient, post_id: int, *, with_author: bool = False) -> PostRecord:
    post = db.get_post(post_id, with_author=with_author)
    if not post:
        raise NotFound("post not found")
    return post


def _require_owner(post: PostRecord, identity: Identity) -> None:
    if post.user_id != identity.user_id:
        raise Forbidden("not the post author")


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(payload: RegisterRequest, db: DbClient = Depends(get_db_client)):
    if db.find_user_by_username_or_email(payload.username, payload.email):
        raise Conflict("username or email already exists")

    password_hash = hash_password(payload.password)
    try:
        user = db.create_user(payload.username, payload.email, password_hash)
    except DuplicateRecordError:
        # Lost a race with a concurrent registration.
        raise Conflict("username or email already exists")

    logger.info("Registered user %s (id=%d)", user.username, user.id)
    return RegisterResponse(
        message="user registered", user=UserResponse.from_record(user)
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    db: DbClient = Depends(get_db_client),
    tokens: TokenService = Depends(get_token_service),
):
    user = db.find_user_by_username(payload.username)
    if not user or not verify_password(payload.password, user.password_hash):
        raise Unauthorized("invalid username or password")

    return LoginResponse(
        token=tokens.issue(user),
        user=UserSummary(id=user.id, username=user.username, email=user.email),
    )


@router.get("/posts", response_model=list[PostResponse])
def list_posts(
    limit: Optional[int] = Query(None, gt=0, le=MAX_DB_INT),
    offset: Optional[int] = Query(None, ge=0, le=MAX_DB_INT),
    db: DbClient = Depends(get_db_client),
):
    posts = db.list_posts(limit=limit, offset=offset or 0)
    return [PostResponse.from_record(post) for post in posts]


@router.get("/posts/{post_id}", response_model=PostResponse)
def get_post(post_id: PostId, db: DbClient = Depends(get_db_client)):
    return PostResponse.from_record(_require_post(db, post_id, with_author=True))


@router.post("/posts", response_model=PostResponse, status_code=201)
def create_post(
    payload: PostRequest,
    identity: Identity = Depends(require_identity),
    db: DbClient = Depends(get_db_client),
):
    post = db.create_post(identity.user_id, payload.title, payload.content)
    return PostResponse.from_record(post)


@router.put("/posts/{post_id}", response_model=PostResponse)
def update_post(
    payload: PostRequest,
    post_id: PostId,
    identity: Identity = Depends(require_identity),
    db: DbClient = Depends(get_db_client),
):
    _require_owner(_require_post(db, post_id), identity)
    post = db.update_post(post_id, payload.title, payload.content)
    if not post:
        raise NotFound("post not found")
    return PostResponse.from_record(post)


@router.delete("/posts/{post_id}", response_model=MessageResponse)
def delete_post(
    post_id: PostId,
    identity: Identity = Depends(require_identity),
    db: DbClient = Depends(get_db_client),
):
    _require_owner(_require_post(db, post_id), identity)
    if not db.delete_post(post_id):
        raise NotFound("post not found")
    logger.info("User %d deleted post %d", identity.user_id, post_id)
    return MessageResponse(message="post deleted")


@router.get("/posts/{post_id}/comments", response_model=list[CommentResponse])
def list_comments(post_id: PostId, db: DbClient = Depends(get_db_client)):
    _require_post(db, post_id)
    return [CommentResponse.from_record(c) for c in db.list_comments(post_id)]


@router.post(
    "/posts/{post_id}/comments", response_model=CommentResponse, status_code=201
)
def create_comment(
    payload: CommentRequest,
    post_id: PostId,
    identity: Identity = Depends(require_identity),
    db: DbClient = Depends(get_db_client),
):
    _require_post(db, post_id)
    comment = db.create_comment(post_id, identity.user_id, payload.content)
    return CommentResponse.from_record(comment)
