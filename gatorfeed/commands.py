"""Command handlers and the registry that dispatches to them."""

from __future__ import annotations

import functools
import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from .config import Config, ConfigError
from .database import Database, DatabaseError
from .models import Feed, FeedFollow, User
from .rss import FeedError, RSSFeed, fetch_feed

DEFAULT_BROWSE_LIMIT = 2
RFC1123Z = "%a, %d %b %Y %H:%M:%S %z"

_log = logging.getLogger(__name__)


class CommandError(Exception):
    """A command was misused or could not complete."""


@dataclass
class State:
    """What every handler works with: the configuration and the database."""

    config: Config
    db: Database


@dataclass(frozen=True)
class Command:
    """A command name with its arguments."""

    name: str
    arguments: Sequence[str] = ()


Handler = Callable[[State, Command], None]
UserHandler = Callable[[State, Command, User], None]

_HANDLED = (CommandError, DatabaseError, ConfigError, FeedError)


@dataclass
class Commands:
    """A registry of named command handlers."""

    registry: dict[str, Handler] = field(default_factory=dict)

    def register(self, name: str, handler: Handler) -> None:
        if name in self.registry:
            raise CommandError(f"command '{name}' already registered")
        self.registry[name] = handler

    def run(self, state: State, command: Command) -> None:
        handler = self.registry.get(command.name)
        if handler is None:
            raise CommandError(f"command '{command.name}' not registered")
        try:
            handler(state, command)
        except _HANDLED as exc:
            raise CommandError(f"failed to run command '{command.name}': {exc}") from exc


_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_TERM = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_MAX_NS = 2**63 - 1


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"300ms"``, ``"-1.5h"`` or ``"2h45m"``."""
    rest = text
    negative = False
    if rest.startswith(("+", "-")):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")
    total = Decimal(0)
    pos = 0
    while pos < len(rest):
        match = _TERM.match(rest, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        try:
            value = Decimal(match.group(1))
        except InvalidOperation as exc:
            raise ValueError(f"invalid duration {text!r}") from exc
        total += value * _UNIT_NS[match.group(2)]
        pos = match.end()
    nanoseconds = int(total)
    if nanoseconds > _MAX_NS:
        raise ValueError(f"invalid duration {text!r}")
    if negative:
        nanoseconds = -nanoseconds
    return timedelta(microseconds=nanoseconds / 1000)


def logged_in(handler: UserHandler) -> Handler:
    """Wrap a handler so that it receives the currently logged-in user."""

    @functools.wraps(handler)
    def wrapper(state: State, command: Command) -> None:
        user = state.db.get_user(state.config.user_name)
        handler(state, command, user)

    return wrapper


def _usage(command: Command, args: str = "") -> CommandError:
    suffix = f" {args}" if args else ""
    return CommandError(f"incorrect command usage.\nusage: {command.name}{suffix}")


def login_handler(state: State, command: Command) -> None:
    if len(command.arguments) != 1:
        raise _usage(command, "<userName>")
    user_name = command.arguments[0]
    try:
        state.db.get_user(user_name)
    except DatabaseError as exc:
        raise CommandError(f"failed to get user: {exc}") from exc
    try:
        state.config.set_user(user_name)
    except ConfigError as exc:
        raise CommandError(f"failed to set user in config: {exc}") from exc
    _log.info("Login: %s", user_name)


def register_handler(state: State, command: Command) -> None:
    if len(command.arguments) != 1:
        raise _usage(command, "<userName>")
    user_name = command.arguments[0]
    try:
        user = state.db.create_user(User(name=user_name))
    except DatabaseError as exc:
        raise CommandError(f"failed to create user: {exc}") from exc
    try:
        state.config.set_user(user_name)
    except ConfigError as exc:
        raise CommandError(f"failed to set user in config: {exc}") from exc
    _log.info("Register: %s(%s)", user.name, user.id)


def users_handler(state: State, command: Command) -> None:
    if command.arguments:
        raise _usage(command)
    try:
        users = state.db.get_users()
    except DatabaseError as exc:
        raise CommandError(f"failed to get users: {exc}") from exc
    _log.info("Users: %d users", len(users))
    for user in users:
        if user.name == state.config.user_name:
            print(f"* {user.name} (current)")
        else:
            print(f"* {user.name}")


def reset_handler(state: State, command: Command) -> None:
    if command.arguments:
        raise CommandError(f"incorrect command usage. use: {command.name}")
    try:
        state.db.delete_users()
    except DatabaseError as exc:
        raise CommandError(f"failed to delete users: {exc}") from exc
    _log.info("Reset")


def aggregate_feed_handler(state: State, command: Command) -> None:
    """Scrape the stalest feed now and then once every interval, until a scrape fails."""
    if len(command.arguments) != 1:
        raise CommandError(
            f"incorrect command usage. use: {command.name} <timeBetweenRequests>"
        )
    try:
        interval = parse_duration(command.arguments[0])
    except ValueError as exc:
        raise CommandError(f"failed to parse duration from argument: {exc}") from exc
    if interval <= timedelta(0):
        raise CommandError("non-positive interval for ticker")
    _log.info("Aggregate Feed: collecting feeds every %s", command.arguments[0])
    seconds = interval.total_seconds()
    next_tick = time.monotonic()
    while True:
        try:
            scrape_feeds(state)
        except CommandError as exc:
            raise CommandError(f"failed to scrape feeds: {exc}") from exc
        next_tick += seconds
        now = time.monotonic()
        if next_tick > now:
            time.sleep(next_tick - now)
        else:
            next_tick = now


def scrape_feeds(state: State, fetch: Callable[[str], RSSFeed] = fetch_feed) -> None:
    """Fetch the feed due next and store its posts."""
    try:
        feed = state.db.get_next_feed_to_fetch()
    except DatabaseError as exc:
        raise CommandError(f"failed to get next feed to fetch: {exc}") from exc
    try:
        fetched = fetch(feed.url)
    except FeedError as exc:
        raise CommandError(f"failed to fetch feed: {exc}") from exc
    try:
        state.db.mark_feed_fetched(feed.id)
    except DatabaseError as exc:
        raise CommandError(f"failed to mark feed as fetched: {exc}") from exc
    _log.info("Fetched: %s (%d items)", feed.name, len(fetched.items))
    for index, item in enumerate(fetched.items):
        try:
            published_at = datetime.strptime(item.pub_date, RFC1123Z)
        except ValueError:
            continue
        try:
            post = state.db.create_post(
                feed.id, item.title, item.link, item.description, published_at
            )
        except DatabaseError as exc:
            raise CommandError(f"failed to create post: {exc}") from exc
        print(f"\t{index}. {post.title}")
        print(f"\t\t {item.description}")


def add_feed_handler(state: State, command: Command, user: User) -> None:
    if len(command.arguments) != 2:
        raise _usage(command, "<feedName> <feedUrl>")
    feed_name, feed_url = command.arguments
    try:
        feed = state.db.create_feed(Feed(name=feed_name, url=feed_url, user_id=user.id))
    except DatabaseError as exc:
        raise CommandError(f"failed to create feed: {exc}") from exc
    try:
        state.db.create_feed_follow(FeedFollow(user_id=user.id, feed_id=feed.id))
    except DatabaseError as exc:
        raise CommandError(f"failed to follow feed: {exc}") from exc
    print(feed)
    _log.info("Add Feed: '%s' added '%s' (%s)", user.name, feed_name, feed_url)


def delete_feed_handler(state: State, command: Command) -> None:
    if len(command.arguments) != 1:
        raise _usage(command, "<feedUrl>")
    feed_url = command.arguments[0]
    try:
        state.db.delete_feed(feed_url)
    except DatabaseError as exc:
        raise CommandError(f"failed to delete feed: {exc}") from exc
    _log.info("Delete Feed: %s", feed_url)


def feeds_handler(state: State, command: Command) -> None:
    if command.arguments:
        raise _usage(command)
    try:
        feeds = state.db.get_user_feeds()
    except DatabaseError as exc:
        raise CommandError(f"failed to get all feeds: {exc}") from exc
    for feed in feeds:
        print(f"* {feed.name}({feed.url}) from {feed.user_name}")
    _log.info("Feeds: %d feeds", len(feeds))


def follow_feed_handler(state: State, command: Command, user: User) -> None:
    if len(command.arguments) != 1:
        raise _usage(command, "<feedUrl>")
    feed_url = command.arguments[0]
    try:
        feed = state.db.get_feed(feed_url)
    except DatabaseError as exc:
        raise CommandError(f"failed to get feed: {exc}") from exc
    try:
        follow = state.db.create_feed_follow(FeedFollow(user_id=user.id, feed_id=feed.id))
    except DatabaseError as exc:
        raise CommandError(f"failed to follow feed: {exc}") from exc
    _log.info("Follow: '%s' followed '%s' feed", follow.user_name, follow.feed_name)


def followed_feeds_handler(state: State, command: Command, user: User) -> None:
    if command.arguments:
        raise _usage(command)
    try:
        follows = state.db.get_feed_follows_for_user(user.id)
    except DatabaseError as exc:
        raise CommandError(f"failed to get followed feeds: {exc}") from exc
    for follow in follows:
        print(f"* {user.name} follows {follow.feed_name}")
    _log.info("Follows: %s follows %d feeds", user.name, len(follows))


def unfollow_feed_handler(state: State, command: Command, user: User) -> None:
    if len(command.arguments) != 1:
        raise _usage(command, "<feedUrl>")
    feed_url = command.arguments[0]
    try:
        state.db.delete_feed_follow(user.id, feed_url)
    except DatabaseError as exc:
        raise CommandError(f"failed to delete feed: {exc}") from exc
    _log.info("Unfollow '%s' unfollowed '%s'", user.name, feed_url)


def browse_posts_handler(state: State, command: Command, user: User) -> None:
    usage = f"incorrect command usage. use: {command.name} [limit]"
    if len(command.arguments) > 1:
        raise CommandError(usage)
    limit = DEFAULT_BROWSE_LIMIT
    if command.arguments:
        try:
            limit = int(command.arguments[0])
        except ValueError as exc:
            raise CommandError(usage) from exc
    try:
        posts = state.db.get_posts_from_user(user.id, limit, 0)
    except DatabaseError as exc:
        raise CommandError(f"failed to get posts from user: {exc}") from exc
    for post in posts:
        print(f"{post.title} ({post.published_at.strftime('%Y-%m-%d %H:%M:%S')})")
        print("-----------------------------------------")
        print(post.description)
        print("=========================================")