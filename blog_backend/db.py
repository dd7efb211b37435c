"""
Database abstraction for SQLAlchemy and an in-memory test implementation.
"""

from __future__ import annotations

import itertools
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional, Protocol

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    or_,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import (
    Session,
    declarative_base,
    joinedload,
    relationship,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

from blog_backend.errors import DuplicateRecordError, StoreError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DbClient(Protocol):
    """Interface for database access."""

    def find_user_by_username(self, username: str) -> Optional["UserRecord"]:
        ...

    def find_user_by_username_or_email(
        self, username: str, email: str
    ) -> Optional["UserRecord"]:
        ...

    def get_user(self, user_id: int) -> Optional["UserRecord"]:
        ...

    def create_user(
        self, username: str, email: str, password_hash: str
    ) -> "UserRecord":
        ...

    def delete_user(self, user_id: int) -> bool:
        ...

    def create_post(self, user_id: int, title: str, content: str) -> "PostRecord":
        ...

    def get_post(
        self, post_id: int, *, with_author: bool = False
    ) -> Optional["PostRecord"]:
        ...

    def update_post(
        self, post_id: int, title: str, content: str
    ) -> Optional["PostRecord"]:
        ...

    def delete_post(self, post_id: int) -> bool:
        ...

    def list_posts(
        self, limit: Optional[int] = None, offset: int = 0
    ) -> list["PostRecord"]:
        ...

    def create_comment(
        self, post_id: int, user_id: int, content: str
    ) -> "CommentRecord":
        ...

    def list_comments(self, post_id: int) -> list["CommentRecord"]:
        ...

    def close(self) -> None:
        ...


@dataclass
class UserRecord:
    id: int
    username: str
    email: str
    password_hash: str
    created_at: datetime
    updated_at: datetime


@dataclass
class PostRecord:
    id: int
    title: str
    content: str
    user_id: int
    created_at: datetime
    updated_at: datetime
    author: Optional[UserRecord] = None


@dataclass
class CommentRecord:
    id: int
    content: str
    user_id: int
    post_id: int
    created_at: datetime
    user: Optional[UserRecord] = None


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[int, UserRecord] = {}
        self.posts: Dict[int, PostRecord] = {}
        self.comments: Dict[int, CommentRecord] = {}
        self._ids = {
            "users": itertools.count(1),
            "posts": itertools.count(1),
            "comments": itertools.count(1),
        }
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.posts.clear()
            self.comments.clear()
            for key in self._ids:
                self._ids[key] = itertools.count(1)

    def close(self) -> None:
        pass

    def find_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.username == username:
                    return replace(user)
        return None

    def find_user_by_username_or_email(
        self, username: str, email: str
    ) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.username == username or user.email == email:
                    return replace(user)
        return None

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self._lock:
            user = self.users.get(user_id)
            return replace(user) if user else None

    def create_user(
        self, username: str, email: str, password_hash: str
    ) -> UserRecord:
        with self._lock:
            for user in self.users.values():
                if user.username == username or user.email == email:
                    raise DuplicateRecordError("username or email already exists")
            now = _utcnow()
            record = UserRecord(
                id=next(self._ids["users"]),
                username=username,
                email=email,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self.users[record.id] = record
            return replace(record)

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            if self.users.pop(user_id, None) is None:
                return False
            owned_posts = {
                post_id
                for post_id, post in self.posts.items()
                if post.user_id == user_id
            }
            for post_id in owned_posts:
                del self.posts[post_id]
            self.comments = {
                comment_id: comment
                for comment_id, comment in self.comments.items()
                if comment.user_id != user_id and comment.post_id not in owned_posts
            }
            return True

    def _with_author(self, post: PostRecord) -> PostRecord:
        author = self.users.get(post.user_id)
        return replace(post, author=replace(author) if author else None)

    def create_post(self, user_id: int, title: str, content: str) -> PostRecord:
        with self._lock:
            if user_id not in self.users:
                raise StoreError(f"user {user_id} does not exist")
            now = _utcnow()
            record = PostRecord(
                id=next(self._ids["posts"]),
                title=title,
                content=content,
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
            self.posts[record.id] = record
            return self._with_author(record)

    def get_post(
        self, post_id: int, *, with_author: bool = False
    ) -> Optional[PostRecord]:
        with self._lock:
            post = self.posts.get(post_id)
            if not post:
                return None
            return self._with_author(post) if with_author else replace(post)

    def update_post(
        self, post_id: int, title: str, content: str
    ) -> Optional[PostRecord]:
        with self._lock:
            post = self.posts.get(post_id)
            if not post:
                return None
            post.title = title
            post.content = content
            post.updated_at = _utcnow()
            return self._with_author(post)

    def delete_post(self, post_id: int) -> bool:
        with self._lock:
            if self.posts.pop(post_id, None) is None:
                return False
            self.comments = {
                comment_id: comment
                for comment_id, comment in self.comments.items()
                if comment.post_id != post_id
            }
            return True

    def list_posts(
        self, limit: Optional[int] = None, offset: int = 0
    ) -> list[PostRecord]:
        end = offset + limit if limit is not None else None
        with self._lock:
            ordered = sorted(
                self.posts.values(),
                key=lambda post: (post.created_at, post.id),
                reverse=True,
            )
            return [self._with_author(post) for post in ordered[offset:end]]

    def create_comment(
        self, post_id: int, user_id: int, content: str
    ) -> CommentRecord:
        with self._lock:
            if post_id not in self.posts:
                raise StoreError(f"post {post_id} does not exist")
            user = self.users.get(user_id)
            if not user:
                raise StoreError(f"user {user_id} does not exist")
            record = CommentRecord(
                id=next(self._ids["comments"]),
                content=content,
                user_id=user_id,
                post_id=post_id,
                created_at=_utcnow(),
            )
            self.comments[record.id] = record
            return replace(record, user=replace(user))

    def list_comments(self, post_id: int) -> list[CommentRecord]:
        results: list[CommentRecord] = []
        with self._lock:
            ordered = sorted(
                (c for c in self.comments.values() if c.post_id == post_id),
                key=lambda comment: (comment.created_at, comment.id),
            )
            for comment in ordered:
                user = self.users.get(comment.user_id)
                results.append(replace(comment, user=replace(user) if user else None))
        return results


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        url = make_url(database_url)
        is_sqlite = url.get_backend_name() == "sqlite"
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # Every thread must see the same in-memory database.
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_recycle"] = 1800

        self.engine = create_engine(url, **engine_kwargs)
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)
        logger.info("Database initialized (%s)", url.get_backend_name())

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.Session()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(str(exc)) from exc
        finally:
            session.close()

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            username=row.username,
            email=row.email,
            password_hash=row.password_hash,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    def _to_post_record(
        self, row: "PostRow", author: Optional["UserRow"] = None
    ) -> PostRecord:
        return PostRecord(
            id=row.id,
            title=row.title,
            content=row.content,
            user_id=row.user_id,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
            author=self._to_user_record(author) if author is not None else None,
        )

    def _to_comment_record(
        self, row: "CommentRow", user: Optional["UserRow"] = None
    ) -> CommentRecord:
        return CommentRecord(
            id=row.id,
            content=row.content,
            user_id=row.user_id,
            post_id=row.post_id,
            created_at=_as_utc(row.created_at),
            user=self._to_user_record(user) if user is not None else None,
        )

    def find_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self._session() as session:
            stmt = select(UserRow).where(UserRow.username == username)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def find_user_by_username_or_email(
        self, username: str, email: str
    ) -> Optional[UserRecord]:
        with self._session() as session:
            stmt = (
                select(UserRow)
                .where(or_(UserRow.username == username, UserRow.email == email))
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def create_user(
        self, username: str, email: str, password_hash: str
    ) -> UserRecord:
        with self._session() as session:
            row = UserRow(username=username, email=email, password_hash=password_hash)
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError("username or email already exists") from exc
            session.refresh(row)
            return self._to_user_record(row)

    def delete_user(self, user_id: int) -> bool:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def create_post(self, user_id: int, title: str, content: str) -> PostRecord:
        with self._session() as session:
            row = PostRow(user_id=user_id, title=title, content=content)
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_post_record(row, session.get(UserRow, user_id))

    def get_post(
        self, post_id: int, *, with_author: bool = False
    ) -> Optional[PostRecord]:
        with self._session() as session:
            options = [joinedload(PostRow.author)] if with_author else []
            row = session.get(PostRow, post_id, options=options)
            if not row:
                return None
            return self._to_post_record(row, row.author if with_author else None)

    def update_post(
        self, post_id: int, title: str, content: str
    ) -> Optional[PostRecord]:
        with self._session() as session:
            row = session.get(PostRow, post_id, options=[joinedload(PostRow.author)])
            if not row:
                return None
            row.title = title
            row.content = content
            row.updated_at = _utcnow()
            session.commit()
            return self._to_post_record(row, row.author)

    def delete_post(self, post_id: int) -> bool:
        with self._session() as session:
            row = session.get(PostRow, post_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_posts(
        self, limit: Optional[int] = None, offset: int = 0
    ) -> list[PostRecord]:
        with self._session() as session:
            stmt = (
                select(PostRow)
                .options(joinedload(PostRow.author))
                .order_by(PostRow.created_at.desc(), PostRow.id.desc())
                .offset(offset)
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = session.execute(stmt).scalars().all()
            return [self._to_post_record(row, row.author) for row in rows]

    def create_comment(
        self, post_id: int, user_id: int, content: str
    ) -> CommentRecord:
        with self._session() as session:
            row = CommentRow(post_id=post_id, user_id=user_id, content=content)
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_comment_record(row, session.get(UserRow, user_id))

    def list_comments(self, post_id: int) -> list[CommentRecord]:
        with self._session() as session:
            stmt = (
                select(CommentRow)
                .options(joinedload(CommentRow.user))
                .where(CommentRow.post_id == post_id)
                .order_by(CommentRow.created_at.asc(), CommentRow.id.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_comment_record(row, row.user) for row in rows]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    posts = relationship(
        "PostRow", back_populates="author", cascade="all, delete"
    )
    comments = relationship(
        "CommentRow", back_populates="user", cascade="all, delete"
    )


class PostRow(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    author = relationship("UserRow", back_populates="posts")
    comments = relationship(
        "CommentRow", back_populates="post", cascade="all, delete"
    )


class CommentRow(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True)
    content = Column(Text, nullable=False)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    post_id = Column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("UserRow", back_populates="comments")
    post = relationship("PostRow", back_populates="comments")
