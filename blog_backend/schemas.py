"""
Pydantic schemas for the blog API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from blog_backend.db import CommentRecord, PostRecord, UserRecord

# bcrypt only reads the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if "\x00" in value:
            raise ValueError("password must not contain NUL characters")
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class PostRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)


class CommentRequest(BaseModel):
    content: str = Field(..., min_length=1)


class UserSummary(BaseModel):
    id: int
    username: str
    email: str


class UserResponse(UserSummary):
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class RegisterResponse(BaseModel):
    message: str
    user: UserResponse


class LoginResponse(BaseModel):
    token: str
    user: UserSummary


class PostResponse(BaseModel):
    id: int
    title: str
    content: str
    user_id: int
    author: Optional[UserResponse] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, post: PostRecord) -> "PostResponse":
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            user_id=post.user_id,
            author=UserResponse.from_record(post.author) if post.author else None,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )


class CommentResponse(BaseModel):
    id: int
    content: str
    user_id: int
    post_id: int
    user: Optional[UserResponse] = None
    created_at: datetime

    @classmethod
    def from_record(cls, comment: CommentRecord) -> "CommentResponse":
        return cls(
            id=comment.id,
            content=comment.content,
            user_id=comment.user_id,
            post_id=comment.post_id,
            user=UserResponse.from_record(comment.user) if comment.user else None,
            created_at=comment.created_at,
        )


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: Literal["ok"]


class ErrorResponse(BaseModel):
    error: str
