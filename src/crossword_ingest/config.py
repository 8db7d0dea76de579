"""crossword_ingest.config

Explicit configuration passed to every component.

Environment variables are read only at the CLI boundary via
``IngestConfig.from_env``; components never touch ``os.environ``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import psycopg

from crossword_ingest.shared import ConfigError

DB_DSN_ENV = "CROSSWORD_DB_DSN"
DB_PASSWORD_ENV = "CROSSWORD_DB_PASSWORD"
UPSTREAM_COOKIE_ENV = "CROSSWORD_UPSTREAM_COOKIE"

DEFAULT_USER_AGENT = "crossword-ingest/1.0"
DEFAULT_HTTP_TIMEOUT = 30


# ---------------------------------------------------------------------------
# Puzzle sources
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PuzzleSource:
    slug: str
    name: str
    api_url: str     # formatted with date=YYYY-MM-DD
    game_url: str    # link back to the published puzzle

    def api_url_for(self, puzzle_date: str) -> str:
        return self.api_url.format(date=puzzle_date)

    def game_url_for(self, puzzle_date: str) -> str:
        return self.game_url.format(date=puzzle_date)


SOURCES: dict[str, PuzzleSource] = {
    "nyt-mini": PuzzleSource(
        slug="nyt-mini",
        name="NYT Mini Crossword",
        api_url="https://www.nytimes.com/svc/crosswords/v6/puzzle/mini/{date}.json",
        game_url="https://www.nytimes.com/crosswords/game/mini/{date}",
    ),
}

DEFAULT_SOURCE = "nyt-mini"


def get_source(slug: str) -> PuzzleSource:
    try:
        return SOURCES[slug]
    except KeyError:
        raise ConfigError(
            f"Unknown puzzle source {slug!r}; known: {', '.join(sorted(SOURCES))}"
        ) from None


# ---------------------------------------------------------------------------
# IngestConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IngestConfig:
    db_dsn: str
    db_password: str
    upstream_cookie: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str],
        db_dsn: str | None = None,
        password_env: str = DB_PASSWORD_ENV,
        cookie_env: str = UPSTREAM_COOKIE_ENV,
    ) -> IngestConfig:
        """Build config from an environment mapping.

        An explicit ``db_dsn`` (from --db-dsn) wins over the environment.
        Raises ConfigError naming every missing required variable.
        """
        dsn = db_dsn or environ.get(DB_DSN_ENV, "")
        password = environ.get(password_env, "")
        missing = []
        if not dsn:
            missing.append(DB_DSN_ENV)
        if not password:
            missing.append(password_env)
        if missing:
            raise ConfigError(f"Missing env var(s): {', '.join(missing)}")
        return cls(
            db_dsn=dsn,
            db_password=password,
            upstream_cookie=environ.get(cookie_env) or None,
        )

    def connect(self, autocommit: bool = False) -> psycopg.Connection:
        return psycopg.connect(
            self.db_dsn, password=self.db_password, autocommit=autocommit
        )
