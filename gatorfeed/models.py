"""Records stored in and read from the feed database."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class User:
    """A registered user."""

    name: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, kw_only=True)
class Feed:
    """An RSS feed added by a user."""

    name: str
    url: str
    user_id: uuid.UUID
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    last_fetched_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class FeedFollow:
    """A user following a feed."""

    user_id: uuid.UUID
    feed_id: uuid.UUID
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, kw_only=True)
class Post:
    """A single post collected from a feed."""

    feed_id: uuid.UUID
    title: str
    url: str
    description: str
    published_at: datetime
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, kw_only=True)
class FeedFollowInfo:
    """A newly created follow, with the names of its feed and user."""

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    feed_name: str
    user_name: str


@dataclass(frozen=True, kw_only=True)
class FeedWithOwner:
    """A feed together with the name of the user who added it."""

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    name: str
    url: str
    user_name: str


@dataclass(frozen=True, kw_only=True)
class FollowedFeed:
    """A follow of a user, with the name of the followed feed."""

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    feed_name: str