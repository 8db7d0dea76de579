"""crossword_ingest.ingest_range

Ingest every date in an inclusive range, one at a time.

Usage:
    python -m crossword_ingest.ingest_range 2024-06-01 2024-06-30 --delay=900

Design decisions:
  - Strictly sequential, ascending; fixed delay between dates as a throttle
    against the upstream API (no adaptive backoff).
  - Per-date isolation: a failing date is recorded (stage 'range_ingest')
    and the run continues with the next date.
  - Exit 1 if any date failed.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import click

from crossword_ingest.config import DB_PASSWORD_ENV, DEFAULT_SOURCE, SOURCES, UPSTREAM_COOKIE_ENV
from crossword_ingest.dates import date_range_inclusive, is_iso_date
from crossword_ingest.failure_log import FailureLog
from crossword_ingest.fetch import PuzzleFetcher
from crossword_ingest.ingest_puzzle import (
    configure_logging,
    ingest_puzzle,
    load_config,
    open_connection,
)
from crossword_ingest.shared import DateResult, IngestResult, RangeSummary, write_run_report
from crossword_ingest.staging import StagingLoader

log = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 750


class RangeRunner:
    def __init__(
        self,
        ingest_one: Callable[[str], IngestResult],
        failure_log: FailureLog,
        source_slug: str,
        delay_ms: int = DEFAULT_DELAY_MS,
        sleep: Callable[[float], None] = time.sleep,
        on_result: Callable[[DateResult], None] | None = None,
    ) -> None:
        self._ingest_one = ingest_one
        self._failure_log = failure_log
        self._source_slug = source_slug
        self._delay_ms = delay_ms
        self._sleep = sleep
        self._on_result = on_result

    def run(self, start: str, end: str) -> RangeSummary:
        """Raises ValueError for invalid bounds before any date is attempted."""
        dates = list(date_range_inclusive(start, end))
        summary = RangeSummary(start=start, end=end)

        for idx, puzzle_date in enumerate(dates):
            if idx > 0 and self._delay_ms > 0:
                self._sleep(self._delay_ms / 1000.0)

            try:
                res = self._ingest_one(puzzle_date)
                date_result = DateResult(date=puzzle_date, ok=True, inserted=res.inserted)
            except Exception as exc:
                msg = str(exc)
                log.error("%s failed: %s", puzzle_date, msg)
                self._failure_log.record(
                    self._source_slug, puzzle_date, "range_ingest", msg,
                )
                date_result = DateResult(date=puzzle_date, ok=False, error=msg)

            summary.results.append(date_result)
            if self._on_result:
                self._on_result(date_result)

        return summary


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _echo_result(r: DateResult) -> None:
    if r.ok:
        click.echo(f"{r.date} ok (inserted {r.inserted if r.inserted is not None else '?'})")
    else:
        click.echo(f"{r.date} failed: {r.error}", err=True)


@click.command()
@click.argument("start")
@click.argument("end")
@click.option("--delay", "delay_ms", default=DEFAULT_DELAY_MS, show_default=True, type=click.IntRange(min=0), help="Milliseconds to wait between dates")
@click.option(
    "--source",
    "source_slug",
    default=DEFAULT_SOURCE,
    show_default=True,
    type=click.Choice(sorted(SOURCES)),
)
@click.option("--db-dsn", default=None, help="PostgreSQL DSN (default: $CROSSWORD_DB_DSN)")
@click.option("--db-password-env", default=DB_PASSWORD_ENV, show_default=True, help="Env var name holding the DB credential")
@click.option("--cookie-env", default=UPSTREAM_COOKIE_ENV, show_default=True, help="Env var name holding the upstream cookie")
@click.option("--report-dir", default="./artifacts/reports", show_default=True, type=click.Path(), help="Directory for the JSON run report")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--debug", is_flag=True, default=False)
def main(
    start: str,
    end: str,
    delay_ms: int,
    source_slug: str,
    db_dsn: str | None,
    db_password_env: str,
    cookie_env: str,
    report_dir: str,
    run_id: str | None,
    debug: bool,
) -> None:
    """Ingest every date from START to END inclusive (YYYY-MM-DD)."""
    configure_logging(debug)
    if not is_iso_date(start) or not is_iso_date(end):
        click.echo("FATAL: start/end must be YYYY-MM-DD", err=True)
        sys.exit(1)
    if start > end:
        click.echo(f"FATAL: start date {start} is after end date {end}", err=True)
        sys.exit(1)

    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()
    config = load_config(db_dsn, db_password_env, cookie_env)
    failure_log = FailureLog(config)
    fetcher = PuzzleFetcher(config, failure_log)

    click.echo(f"[{run_id}] Range ingest: start={start} end={end} delay_ms={delay_ms}")
    conn = open_connection(config)
    try:
        loader = StagingLoader(conn, failure_log)

        def ingest_one(puzzle_date: str) -> IngestResult:
            return ingest_puzzle(
                source_slug, puzzle_date,
                fetcher=fetcher,
                loader=loader,
                failure_log=failure_log,
                debug=debug,
            )

        runner = RangeRunner(
            ingest_one, failure_log, source_slug,
            delay_ms=delay_ms, on_result=_echo_result,
        )
        summary = runner.run(start, end)
    finally:
        conn.close()

    report_path = write_run_report(
        run_id, started_at, "range_ingest", source_slug, summary, Path(report_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    click.echo(f"Done. ok={summary.ok_count}, failed={summary.failed_count}")

    if summary.failed_count > 0:
        click.echo("Failed dates:")
        for r in summary.failed:
            click.echo(f"- {r.date}: {r.error}")
        sys.exit(1)


if __name__ == "__main__":
    main()
