from datetime import datetime, timedelta, timezone

import pytest

from gatorfeed.commands import (
    Command,
    CommandError,
    Commands,
    State,
    add_feed_handler,
    aggregate_feed_handler,
    browse_posts_handler,
    delete_feed_handler,
    feeds_handler,
    follow_feed_handler,
    followed_feeds_handler,
    logged_in,
    login_handler,
    parse_duration,
    register_handler,
    reset_handler,
    scrape_feeds,
    unfollow_feed_handler,
    users_handler,
)
from gatorfeed.config import Config, read
from gatorfeed.database import Database, NotFoundError
from gatorfeed.rss import FeedError, RSSFeed, RSSItem

FEED_URL = "https://example.com/feed.xml"


@pytest.fixture
def state(tmp_path):
    config = Config(db_url=str(tmp_path / "gator.db"), path=tmp_path / "cfg.json")
    db = Database(config.db_url)
    yield State(config=config, db=db)
    db.close()


def _register(state, name):
    register_handler(state, Command("register", (name,)))


def _add_feed(state, name="Blog", url=FEED_URL):
    logged_in(add_feed_handler)(state, Command("addfeed", (name, url)))


def test_register_sets_current_user_and_saves(state):
    _register(state, "alice")
    assert state.config.user_name == "alice"
    assert read(state.config.path).user_name == "alice"
    assert state.db.get_user("alice").name == "alice"


def test_register_twice_fails(state):
    _register(state, "alice")
    with pytest.raises(CommandError, match="failed to create user"):
        _register(state, "alice")
    assert [user.name for user in state.db.get_users()] == ["alice"]


def test_usage_error_messages(state):
    with pytest.raises(CommandError, match="usage: login <userName>"):
        login_handler(state, Command("login", ()))
    with pytest.raises(CommandError, match="use: reset"):
        reset_handler(state, Command("reset", ("extra",)))
    with pytest.raises(CommandError, match="usage: delfeed <feedUrl>"):
        delete_feed_handler(state, Command("delfeed", ()))


def test_login_unknown_user(state):
    with pytest.raises(CommandError, match="failed to get user"):
        login_handler(state, Command("login", ("nobody",)))
    assert state.config.user_name == ""


def test_login_switches_user(state):
    _register(state, "alice")
    _register(state, "bob")
    login_handler(state, Command("login", ("alice",)))
    assert read(state.config.path).user_name == "alice"


def test_users_marks_current(state, capsys):
    _register(state, "alice")
    _register(state, "bob")
    capsys.readouterr()
    users_handler(state, Command("users", ()))
    assert capsys.readouterr().out.splitlines() == ["* alice", "* bob (current)"]


def test_reset_removes_users(state):
    _register(state, "alice")
    reset_handler(state, Command("reset", ()))
    assert state.db.get_users() == []


def test_commands_registry_errors(state):
    commands = Commands()
    commands.register("users", users_handler)
    with pytest.raises(CommandError, match="command 'users' already registered"):
        commands.register("users", users_handler)
    with pytest.raises(CommandError, match="command 'nope' not registered"):
        commands.run(state, Command("nope", ()))


def test_run_wraps_handler_errors(state):
    commands = Commands()
    commands.register("login", login_handler)
    with pytest.raises(CommandError, match="failed to run command 'login'"):
        commands.run(state, Command("login", ()))


def test_logged_in_requires_user(state):
    with pytest.raises(NotFoundError):
        logged_in(followed_feeds_handler)(state, Command("following", ()))


def test_add_feed_follows_and_lists(state, capsys):
    _register(state, "alice")
    _add_feed(state)
    user = state.db.get_user("alice")
    follows = state.db.get_feed_follows_for_user(user.id)
    assert [f.feed_name for f in follows] == ["Blog"]
    capsys.readouterr()
    feeds_handler(state, Command("feeds", ()))
    assert capsys.readouterr().out == f"* Blog({FEED_URL}) from alice\n"


def test_follow_and_following(state, capsys):
    _register(state, "alice")
    _add_feed(state)
    _register(state, "bob")
    logged_in(follow_feed_handler)(state, Command("follow", (FEED_URL,)))
    capsys.readouterr()
    logged_in(followed_feeds_handler)(state, Command("following", ()))
    assert capsys.readouterr().out == "* bob follows Blog\n"
    with pytest.raises(CommandError, match="failed to follow feed"):
        logged_in(follow_feed_handler)(state, Command("follow", (FEED_URL,)))


def test_follow_unknown_feed(state):
    _register(state, "alice")
    with pytest.raises(CommandError, match="failed to get feed"):
        logged_in(follow_feed_handler)(state, Command("follow", (FEED_URL,)))


def test_unfollow_removes_follow(state):
    _register(state, "alice")
    _add_feed(state)
    logged_in(unfollow_feed_handler)(state, Command("unfollow", (FEED_URL,)))
    user = state.db.get_user("alice")
    assert state.db.get_feed_follows_for_user(user.id) == []
    with pytest.raises(CommandError, match="failed to delete feed"):
        logged_in(unfollow_feed_handler)(state, Command("unfollow", (FEED_URL,)))


def test_delete_feed(state):
    _register(state, "alice")
    _add_feed(state)
    delete_feed_handler(state, Command("delfeed", (FEED_URL,)))
    assert state.db.get_user_feeds() == []


def test_scrape_feeds_stores_dated_items(state, capsys):
    _register(state, "alice")
    _add_feed(state)
    requested = []

    def fake_fetch(url):
        requested.append(url)
        return RSSFeed(
            title="Blog",
            items=[
                RSSItem(
                    title="First",
                    link="https://example.com/1",
                    description="about",
                    pub_date="Mon, 02 Jan 2006 15:04:05 -0700",
                ),
                RSSItem(title="Undated", link="https://example.com/2", pub_date="yesterday"),
            ],
        )

    capsys.readouterr()
    scrape_feeds(state, fake_fetch)
    assert requested == [FEED_URL]
    user = state.db.get_user("alice")
    posts = state.db.get_posts_from_user(user.id, 10, 0)
    assert [p.title for p in posts] == ["First"]
    expected = datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone(timedelta(hours=-7)))
    assert posts[0].published_at == expected
    assert state.db.get_feed(FEED_URL).last_fetched_at is not None
    assert "\t0. First\n\t\t about\n" in capsys.readouterr().out


def test_scrape_feeds_fetch_failure(state):
    _register(state, "alice")
    _add_feed(state)

    def failing(url):
        raise FeedError("boom")

    with pytest.raises(CommandError, match="failed to fetch feed"):
        scrape_feeds(state, failing)


def test_scrape_feeds_without_feeds(state):
    with pytest.raises(CommandError, match="failed to get next feed to fetch"):
        scrape_feeds(state, lambda url: RSSFeed())


def test_browse_uses_default_limit_newest_first(state, capsys):
    _register(state, "alice")
    _add_feed(state)
    feed = state.db.get_feed(FEED_URL)
    for day in (1, 2, 3):
        state.db.create_post(
            feed.id, f"Post {day}", f"https://example.com/{day}", "text",
            datetime(2024, 1, day, tzinfo=timezone.utc),
        )
    capsys.readouterr()
    logged_in(browse_posts_handler)(state, Command("browse", ()))
    out = capsys.readouterr().out
    titles = [line.split(" (")[0] for line in out.splitlines() if line.startswith("Post")]
    assert titles == ["Post 3", "Post 2"]
    assert out.count("=========================================") == 2


def test_browse_with_limit_and_bad_usage(state, capsys):
    _register(state, "alice")
    _add_feed(state)
    feed = state.db.get_feed(FEED_URL)
    for day in (1, 2, 3):
        state.db.create_post(
            feed.id, f"Post {day}", "https://example.com/", "text",
            datetime(2024, 1, day, tzinfo=timezone.utc),
        )
    capsys.readouterr()
    logged_in(browse_posts_handler)(state, Command("browse", ("3",)))
    assert capsys.readouterr().out.count("-----------------------------------------") == 3
    with pytest.raises(CommandError, match=r"use: browse \[limit\]"):
        logged_in(browse_posts_handler)(state, Command("browse", ("1", "2")))
    with pytest.raises(CommandError, match=r"use: browse \[limit\]"):
        logged_in(browse_posts_handler)(state, Command("browse", ("many",)))


@pytest.mark.parametrize(
    "left, right",
    [("1m30s", "90s"), ("1.5h", "90m"), ("1000ms", "1s"), ("1us", "1µs"), ("+2s", "2s")],
)
def test_parse_duration_equivalences(left, right):
    assert parse_duration(left) == parse_duration(right)


def test_parse_duration_values():
    assert parse_duration("1s") == timedelta(seconds=1)
    assert parse_duration("0") == timedelta(0)
    assert parse_duration("-2s") == -parse_duration("2s")


@pytest.mark.parametrize("text", ["", "5", "1x", "s", "-", "1s2", "1.2.3s"])
def test_parse_duration_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_aggregate_argument_errors(state):
    with pytest.raises(CommandError, match="<timeBetweenRequests>"):
        aggregate_feed_handler(state, Command("agg", ()))
    with pytest.raises(CommandError, match="failed to parse duration"):
        aggregate_feed_handler(state, Command("agg", ("soon",)))
    with pytest.raises(CommandError, match="non-positive interval"):
        aggregate_feed_handler(state, Command("agg", ("0s",)))


def test_aggregate_stops_when_scrape_fails(state):
    with pytest.raises(CommandError, match="failed to scrape feeds"):
        aggregate_feed_handler(state, Command("agg", ("1s",)))