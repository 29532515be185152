"""The command-line entry point."""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence

from . import commands as c
from .config import ConfigError, load_db, read

_log = logging.getLogger(__name__)


def build_commands() -> c.Commands:
    """Return the registry of every command the program offers."""
    registry = c.Commands()
    registry.register("login", c.login_handler)
    registry.register("register", c.register_handler)
    registry.register("users", c.users_handler)
    registry.register("reset", c.reset_handler)
    registry.register("agg", c.aggregate_feed_handler)
    registry.register("addfeed", c.logged_in(c.add_feed_handler))
    registry.register("delfeed", c.delete_feed_handler)
    registry.register("feeds", c.feeds_handler)
    registry.register("follow", c.logged_in(c.follow_feed_handler))
    registry.register("following", c.logged_in(c.followed_feeds_handler))
    registry.register("unfollow", c.logged_in(c.unfollow_feed_handler))
    registry.register("browse", c.logged_in(c.browse_posts_handler))
    return registry


def main(argv: Sequence[str] | None = None) -> int:
    """Run one command; return the process exit status."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(message)s",
        datefmt="%Y/%m/%d %H:%M:%S",
    )
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        config = read()
    except ConfigError as exc:
        _log.error("reading config file failed, %s", exc)
        return 1
    try:
        db = load_db(config)
    except ConfigError as exc:
        _log.error("loading DB failed, %s", exc)
        return 1
    with db:
        if not args:
            _log.error("not enough arguments were provided")
            _log.error("Usage: cli <command> [args...]")
            return 1
        command = c.Command(name=args[0], arguments=tuple(args[1:]))
        state = c.State(config=config, db=db)
        try:
            build_commands().run(state, command)
        except c.CommandError as exc:
            _log.error("running command failed, %s", exc)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())