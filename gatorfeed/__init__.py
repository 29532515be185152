"""Command-line RSS feed aggregator with users, feeds, follows and posts in SQLite."""

__version__ = "0.1.0"