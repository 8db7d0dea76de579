"""crossword_ingest.ingest_puzzle

Single-date ingestion: fetch → build → validate → stage → promote.

Usage:
    python -m crossword_ingest.ingest_puzzle 2024-06-01 --dry-run
    crossword-ingest --source nyt-mini --keep-staging --debug

Per-date states:
  Fetching → Building → (Aborted | Staging) → Promoting → (Failed | CleaningUp) → Done

  Aborted: BatchAbortError before any write.
  Failed:  StagingWriteError / PromotionError; staged rows retained.

Dry run stops after validation and never touches staging or promotion.

Environment:
  CROSSWORD_DB_DSN           PostgreSQL DSN (or --db-dsn)
  CROSSWORD_DB_PASSWORD      service credential
  CROSSWORD_UPSTREAM_COOKIE  optional cookie sent to the puzzle API
"""

from __future__ import annotations

import json
import logging
import os
import sys

import click
import psycopg

from crossword_ingest.build_rows import build_rows, check_complete, clue_plain_text
from crossword_ingest.config import (
    DB_PASSWORD_ENV,
    DEFAULT_SOURCE,
    SOURCES,
    UPSTREAM_COOKIE_ENV,
    IngestConfig,
    get_source,
)
from crossword_ingest.dates import is_iso_date, parse_date_arg
from crossword_ingest.failure_log import FailureLog
from crossword_ingest.fetch import PuzzleFetcher
from crossword_ingest.shared import ConfigError, IngestError, IngestResult
from crossword_ingest.staging import StagingLoader

log = logging.getLogger(__name__)


def ingest_puzzle(
    source_slug: str,
    puzzle_date: str,
    *,
    fetcher: PuzzleFetcher,
    loader: StagingLoader | None,
    failure_log: FailureLog,
    dry_run: bool = False,
    keep_staging: bool = False,
    debug: bool = False,
) -> IngestResult:
    """Run the full pipeline for one date. Raises IngestError subclasses on failure.

    ``loader`` may be None only for dry runs.
    """
    source = get_source(source_slug)

    payload = fetcher.fetch(source.slug, puzzle_date)
    # The upstream publication date wins when it is a real date.
    if payload.publication_date and is_iso_date(payload.publication_date):
        if payload.publication_date != puzzle_date:
            log.info(
                "Upstream publication date %s differs from requested %s",
                payload.publication_date, puzzle_date,
            )
        puzzle_date = payload.publication_date

    if debug:
        log.debug("Clue labels: %s", [
            {
                "label": c.label,
                "direction": c.direction,
                "text": clue_plain_text(c.text_runs),
                "cells": len(c.cells),
            }
            for c in payload.clues
        ])

    built = build_rows(payload, source, puzzle_date)
    if debug:
        log.debug("Rows to stage: %s", [
            {"number": r.number, "direction": r.direction, "clue_text": r.clue_text}
            for r in built.rows
        ])
    check_complete(built, source.slug, puzzle_date, failure_log)

    result = IngestResult(
        url=payload.url,
        puzzle_date=puzzle_date,
        puzzle_id=payload.puzzle_id,
        expected=built.expected,
        built=len(built.rows),
        dry_run=dry_run,
        keep_staging=keep_staging,
    )
    if dry_run:
        return result

    if loader is None:
        raise ValueError("a StagingLoader is required unless dry_run is set")
    loaded = loader.load(source.slug, puzzle_date, built.rows, keep_staging=keep_staging)
    result.inserted = loaded.inserted
    return result


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_config(
    db_dsn: str | None,
    password_env: str,
    cookie_env: str,
) -> IngestConfig:
    """Build config from the process environment or exit 1 with a FATAL line."""
    try:
        return IngestConfig.from_env(
            os.environ, db_dsn=db_dsn,
            password_env=password_env, cookie_env=cookie_env,
        )
    except ConfigError as exc:
        click.echo(f"FATAL: {exc}", err=True)
        sys.exit(1)


def open_connection(config: IngestConfig) -> psycopg.Connection:
    """Connect to the database or exit 1 with a FATAL line."""
    try:
        return config.connect()
    except psycopg.OperationalError as exc:
        click.echo(f"FATAL: cannot connect to database: {exc}", err=True)
        sys.exit(1)


@click.command()
@click.argument("puzzle_date", required=False)
@click.option(
    "--source",
    "source_slug",
    default=DEFAULT_SOURCE,
    show_default=True,
    type=click.Choice(sorted(SOURCES)),
)
@click.option("--dry-run", is_flag=True, default=False, help="Fetch and validate only")
@click.option("--keep-staging", is_flag=True, default=False, help="Leave staged rows after promotion")
@click.option("--debug", is_flag=True, default=False, help="Log clue labels and staged rows")
@click.option("--db-dsn", default=None, help="PostgreSQL DSN (default: $CROSSWORD_DB_DSN)")
@click.option("--db-password-env", default=DB_PASSWORD_ENV, show_default=True, help="Env var name holding the DB credential")
@click.option("--cookie-env", default=UPSTREAM_COOKIE_ENV, show_default=True, help="Env var name holding the upstream cookie")
def main(
    puzzle_date: str | None,
    source_slug: str,
    dry_run: bool,
    keep_staging: bool,
    debug: bool,
    db_dsn: str | None,
    db_password_env: str,
    cookie_env: str,
) -> None:
    """Ingest one puzzle date (default: today, UTC)."""
    configure_logging(debug)
    try:
        date_str = parse_date_arg(puzzle_date)
    except ValueError as exc:
        click.echo(f"FATAL: {exc}", err=True)
        sys.exit(1)

    config = load_config(db_dsn, db_password_env, cookie_env)
    failure_log = FailureLog(config)
    fetcher = PuzzleFetcher(config, failure_log)

    click.echo(f"Starting {source_slug} ingest for {date_str} (dry_run={dry_run})")
    conn = None if dry_run else open_connection(config)
    try:
        loader = StagingLoader(conn, failure_log) if conn is not None else None
        result = ingest_puzzle(
            source_slug, date_str,
            fetcher=fetcher,
            loader=loader,
            failure_log=failure_log,
            dry_run=dry_run,
            keep_staging=keep_staging,
            debug=debug,
        )
    except IngestError as exc:
        click.echo(f"Ingest failed [{exc.stage}]: {exc}", err=True)
        sys.exit(1)
    finally:
        if conn is not None:
            conn.close()

    click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    click.echo("Done.")


if __name__ == "__main__":
    main()
