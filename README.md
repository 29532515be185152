# gatorfeed

A small command-line RSS aggregator. Users register, add RSS feeds, follow
feeds, and browse the posts collected from the feeds they follow. Everything
is stored in a local SQLite database file. It needs nothing beyond the
Python standard library.

## Installation

```
pip install .
```

This installs the `gatorfeed` command. The same entry point can also be run
as `python -m gatorfeed.cli`.

## Configuration

gatorfeed reads its settings from `.gatorconfig.json` in your home directory.
The file must exist before any command is run:

```json
{
  "db_url": "/home/you/gator.db",
  "current_user_name": ""
}
```

- `db_url` is the path of the SQLite database file. It must be set; the file
  and its tables are created on first use.
- `current_user_name` is the logged-in user. `login` and `register` rewrite
  the file with the new name, so you rarely edit it by hand.

## Usage

```
gatorfeed <command> [args...]
```

| Command | Arguments | What it does |
| --- | --- | --- |
| `register` | `<name>` | Create a user and log in as that user |
| `login` | `<name>` | Switch to an existing user |
| `users` | | List all users, marking the current one |
| `reset` | | Delete every user, together with their feeds, follows and posts |
| `addfeed` | `<name> <url>` | Add a feed as the current user, follow it, and print the stored feed |
| `delfeed` | `<url>` | Delete the feed with that URL, whoever added it |
| `feeds` | | List all feeds with the user who added each |
| `follow` | `<url>` | Follow an existing feed |
| `following` | | List the feeds the current user follows |
| `unfollow` | `<url>` | Stop following a feed that the current user added |
| `agg` | `<interval>` | Fetch feeds repeatedly, one per interval |
| `browse` | `[limit]` | Show the newest posts from followed feeds (two by default) |

`addfeed`, `follow`, `following`, `unfollow` and `browse` need a logged-in
user. User names and feed URLs are unique; following the same feed twice is
an error.

### Collecting posts

The `agg` interval uses duration syntax such as `30s`, `1m`, `1.5h` or
`1h30m` (units `ns`, `us`, `ms`, `s`, `m`, `h`); it must be positive. `agg`
scrapes once straight away and then once per interval. Each scrape picks the
feed fetched least recently (never-fetched feeds first), downloads it with
the user agent `gator`, marks it fetched, and stores every item whose
publication date has the form `Mon, 02 Jan 2006 15:04:05 -0700`; items with
other dates are skipped. HTML entities in titles and descriptions are
unescaped. The stored items are printed as they are added.

`agg` runs until a scrape fails — for example when there are no feeds, or a
feed cannot be downloaded or parsed — and then exits with an error. Leave it
running in one terminal and use `browse` in another.

### Example

```
gatorfeed register alice
gatorfeed addfeed "Example Blog" https://blog.example.com/rss.xml
gatorfeed agg 1m
gatorfeed browse 5
```

Progress messages are logged to standard error. Any failure is reported there
too, and the command exits with status 1.

## Using it as a library

- `gatorfeed.database.Database(path)` opens (and creates) the database; it is
  a context manager and offers `transaction()` and one method per query, such
  as `create_user`, `get_feed`, `get_posts_from_user`. Failures raise
  `DatabaseError`, missing rows `NotFoundError`.
- `gatorfeed.rss.parse_feed(data)` parses an RSS document into an `RSSFeed`
  (`title`, `link`, `description`, `items`); `fetch_feed(url, timeout=None)`
  downloads and parses one. Errors raise `FeedError`.
- `gatorfeed.config.read(path=None)` loads the configuration file and
  `load_db(config)` opens its database.
- `gatorfeed.commands` holds the command handlers, the `Commands` registry and
  `parse_duration`; `gatorfeed.cli.build_commands()` returns the registry the
  command line uses.

## Limitations

- Storage is a single local SQLite file only; there is no database server
  support.
- `agg` has no download timeout and stops at the first failed scrape; it does
  not retry or skip a broken feed.
- Only RSS (`<channel>`/`<item>`) documents are read.

## Development

```
pip install -e ".[test]"
pytest
```