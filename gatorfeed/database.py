"""SQLite storage for users, feeds, follows and posts."""

from __future__ import annotations

import os
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from .models import (
    Feed,
    FeedFollow,
    FeedFollowInfo,
    FeedWithOwner,
    FollowedFeed,
    Post,
    User,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS feeds (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    last_fetched_at TEXT
);
CREATE TABLE IF NOT EXISTS feed_follows (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    feed_id TEXT NOT NULL REFERENCES feeds (id) ON DELETE CASCADE,
    UNIQUE (user_id, feed_id)
);
CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    feed_id TEXT NOT NULL REFERENCES feeds (id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    title TEXT NOT NULL,
    url TEXT NOT NULL,
    description TEXT NOT NULL,
    published_at TEXT NOT NULL
);
"""

_FEED_COLUMNS = "id, user_id, created_at, updated_at, name, url, last_fetched_at"
_POST_COLUMNS = "id, feed_id, created_at, updated_at, title, url, description, published_at"


class DatabaseError(Exception):
    """A database operation failed."""


class NotFoundError(DatabaseError):
    """A query that should return a row returned none."""


@contextmanager
def _errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise DatabaseError(f"{action}: {exc}") from exc


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _dt(text: str | None) -> datetime | None:
    return None if text is None else datetime.fromisoformat(text)


def _user(row: sqlite3.Row) -> User:
    return User(
        id=uuid.UUID(row["id"]),
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
        name=row["name"],
    )


def _feed(row: sqlite3.Row) -> Feed:
    return Feed(
        id=uuid.UUID(row["id"]),
        user_id=uuid.UUID(row["user_id"]),
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
        name=row["name"],
        url=row["url"],
        last_fetched_at=_dt(row["last_fetched_at"]),
    )


def _post(row: sqlite3.Row) -> Post:
    return Post(
        id=uuid.UUID(row["id"]),
        feed_id=uuid.UUID(row["feed_id"]),
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
        title=row["title"],
        url=row["url"],
        description=row["description"],
        published_at=_dt(row["published_at"]),
    )


class Database:
    """A connection to the feed database, usable as a context manager."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        with _errors("failed to open database"):
            self._conn = sqlite3.connect(os.fspath(path), isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        with _errors("failed to close database"):
            self._conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Run the enclosed operations atomically; roll back on any exception."""
        if self._conn.in_transaction:
            raise DatabaseError("a transaction is already in progress")
        with _errors("failed to begin transaction"):
            self._conn.execute("BEGIN")
        try:
            yield self
        except BaseException:
            with _errors("failed to roll back transaction"):
                self._conn.execute("ROLLBACK")
            raise
        with _errors("failed to commit transaction"):
            self._conn.execute("COMMIT")

    def _execute(self, action: str, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with _errors(action):
            return self._conn.execute(sql, params)

    def _one(self, action: str, what: str, sql: str, params: tuple = ()) -> sqlite3.Row:
        with _errors(action):
            row = self._conn.execute(sql, params).fetchone()
        if row is None:
            raise NotFoundError(f"{what} not found")
        return row

    # users

    def create_user(self, user: User) -> User:
        self._execute(
            "failed to create user",
            "INSERT INTO users (id, created_at, updated_at, name) VALUES (?, ?, ?, ?)",
            (str(user.id), _ts(user.created_at), _ts(user.updated_at), user.name),
        )
        row = self._one(
            "failed to read user", "user",
            "SELECT id, created_at, updated_at, name FROM users WHERE id = ?",
            (str(user.id),),
        )
        return _user(row)

    def get_user(self, name: str) -> User:
        row = self._one(
            "failed to get user", f"user {name!r}",
            "SELECT id, created_at, updated_at, name FROM users WHERE name = ?",
            (name,),
        )
        return _user(row)

    def get_users(self) -> list[User]:
        cursor = self._execute(
            "failed to get users",
            "SELECT id, created_at, updated_at, name FROM users ORDER BY rowid",
        )
        return [_user(row) for row in cursor]

    def delete_users(self) -> None:
        self._execute("failed to delete users", "DELETE FROM users")

    # feeds

    def create_feed(self, feed: Feed) -> Feed:
        self._execute(
            "failed to create feed",
            "INSERT INTO feeds (id, created_at, updated_at, name, url, user_id) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (str(feed.id), _ts(feed.created_at), _ts(feed.updated_at),
             feed.name, feed.url, str(feed.user_id)),
        )
        row = self._one(
            "failed to read feed", "feed",
            f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?", (str(feed.id),),
        )
        return _feed(row)

    def get_feed(self, url: str) -> Feed:
        row = self._one(
            "failed to get feed", f"feed {url!r}",
            f"SELECT {_FEED_COLUMNS} FROM feeds WHERE url = ?", (url,),
        )
        return _feed(row)

    def delete_feed(self, url: str) -> None:
        self._execute("failed to delete feed", "DELETE FROM feeds WHERE url = ?", (url,))

    def get_next_feed_to_fetch(self) -> Feed:
        """Return the feed fetched longest ago, never-fetched feeds first."""
        row = self._one(
            "failed to get next feed", "feed",
            f"SELECT {_FEED_COLUMNS} FROM feeds "
            "ORDER BY last_fetched_at IS NOT NULL, last_fetched_at ASC, rowid LIMIT 1",
        )
        return _feed(row)

    def get_user_feeds(self) -> list[FeedWithOwner]:
        cursor = self._execute(
            "failed to get feeds",
            "SELECT f.id, f.created_at, f.updated_at, f.name, f.url, u.name AS user_name "
            "FROM feeds AS f JOIN users AS u ON f.user_id = u.id ORDER BY f.rowid",
        )
        return [
            FeedWithOwner(
                id=uuid.UUID(row["id"]),
                created_at=_dt(row["created_at"]),
                updated_at=_dt(row["updated_at"]),
                name=row["name"],
                url=row["url"],
                user_name=row["user_name"],
            )
            for row in cursor
        ]

    def mark_feed_fetched(self, feed_id: uuid.UUID) -> None:
        now = _ts(datetime.now(timezone.utc))
        self._execute(
            "failed to mark feed fetched",
            "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
            (now, now, str(feed_id)),
        )

    # follows

    def create_feed_follow(self, follow: FeedFollow) -> FeedFollowInfo:
        self._execute(
            "failed to create feed follow",
            "INSERT INTO feed_follows (id, created_at, updated_at, user_id, feed_id) "
            "VALUES (?, ?, ?, ?, ?)",
            (str(follow.id), _ts(follow.created_at), _ts(follow.updated_at),
             str(follow.user_id), str(follow.feed_id)),
        )
        row = self._one(
            "failed to read feed follow", "feed follow",
            "SELECT ff.id, ff.created_at, ff.updated_at, f.name AS feed_name, "
            "u.name AS user_name FROM feed_follows AS ff "
            "JOIN users AS u ON ff.user_id = u.id "
            "JOIN feeds AS f ON ff.feed_id = f.id WHERE ff.id = ?",
            (str(follow.id),),
        )
        return FeedFollowInfo(
            id=uuid.UUID(row["id"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
            feed_name=row["feed_name"],
            user_name=row["user_name"],
        )

    def delete_feed_follow(self, user_id: uuid.UUID, url: str) -> FeedFollow:
        """Remove the user's follow of a feed at ``url`` that the same user added."""
        row = self._one(
            "failed to find feed follow", f"feed follow for {url!r}",
            "SELECT ff.id, ff.created_at, ff.updated_at, ff.user_id, ff.feed_id "
            "FROM feed_follows AS ff JOIN feeds AS f ON ff.feed_id = f.id "
            "WHERE f.user_id = ? AND f.url = ? AND ff.user_id = f.user_id",
            (str(user_id), url),
        )
        self._execute(
            "failed to delete feed follow",
            "DELETE FROM feed_follows WHERE id = ?", (row["id"],),
        )
        return FeedFollow(
            id=uuid.UUID(row["id"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
            user_id=uuid.UUID(row["user_id"]),
            feed_id=uuid.UUID(row["feed_id"]),
        )

    def get_feed_follows_for_user(self, user_id: uuid.UUID) -> list[FollowedFeed]:
        cursor = self._execute(
            "failed to get feed follows",
            "SELECT ff.id, ff.created_at, ff.updated_at, f.name AS feed_name "
            "FROM feed_follows AS ff JOIN feeds AS f ON ff.feed_id = f.id "
            "WHERE ff.user_id = ? ORDER BY ff.rowid",
            (str(user_id),),
        )
        return [
            FollowedFeed(
                id=uuid.UUID(row["id"]),
                created_at=_dt(row["created_at"]),
                updated_at=_dt(row["updated_at"]),
                feed_name=row["feed_name"],
            )
            for row in cursor
        ]

    # posts

    def create_post(
        self,
        feed_id: uuid.UUID,
        title: str,
        url: str,
        description: str,
        published_at: datetime,
    ) -> Post:
        post_id = str(uuid.uuid4())
        now = _ts(datetime.now(timezone.utc))
        self._execute(
            "failed to create post",
            f"INSERT INTO posts ({_POST_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (post_id, str(feed_id), now, now, title, url, description, _ts(published_at)),
        )
        row = self._one(
            "failed to read post", "post",
            f"SELECT {_POST_COLUMNS} FROM posts WHERE id = ?", (post_id,),
        )
        return _post(row)

    def get_posts_from_user(self, user_id: uuid.UUID, limit: int, offset: int) -> list[Post]:
        """Return posts of the feeds the user follows, newest first."""
        if limit < 0:
            raise DatabaseError("LIMIT must not be negative")
        if offset < 0:
            raise DatabaseError("OFFSET must not be negative")
        columns = ", ".join(f"p.{name.strip()}" for name in _POST_COLUMNS.split(","))
        cursor = self._execute(
            "failed to get posts",
            f"SELECT {columns} FROM posts AS p "
            "JOIN feed_follows AS ff ON p.feed_id = ff.feed_id "
            "WHERE ff.user_id = ? ORDER BY p.published_at DESC LIMIT ? OFFSET ?",
            (str(user_id), limit, offset),
        )
        return [_post(row) for row in cursor]