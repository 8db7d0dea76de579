"""crossword_ingest.failure_log

Append-only sink for ingestion failures (ingest_failure table).

``FailureLog.record`` never raises: a logging failure must not mask the
ingestion error that triggered it.

Write order:
  1. Full insert including the JSON details column.
  2. On a database error, minimal insert without details (older schemas
     lack the column).
  3. If that also fails, a local warning only.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import psycopg

from crossword_ingest.config import IngestConfig

log = logging.getLogger(__name__)

_INSERT_WITH_DETAILS = """
    INSERT INTO ingest_failure (source_slug, puzzle_date, stage, message, details)
    VALUES (%s, %s, %s, %s, %s)
"""

_INSERT_MINIMAL = """
    INSERT INTO ingest_failure (source_slug, puzzle_date, stage, message)
    VALUES (%s, %s, %s, %s)
"""


class FailureLog:
    """Records failures on a short-lived autocommit connection per call.

    A separate connection keeps the write independent of the pipeline's
    transaction, which may already be aborted when the failure is recorded.
    """

    def __init__(
        self,
        config: IngestConfig,
        connect: Callable[[], psycopg.Connection] | None = None,
    ) -> None:
        self._connect = connect or (lambda: config.connect(autocommit=True))

    def record(
        self,
        source_slug: str,
        puzzle_date: str,
        stage: str,
        message: str,
        details: Any | None = None,
    ) -> None:
        log.warning("ingest failure [%s %s] %s: %s", source_slug, puzzle_date, stage, message)
        try:
            conn = self._connect()
        except Exception as exc:
            log.warning("Failed to log ingest failure (connect): %s", exc)
            return
        try:
            self._write(conn, source_slug, puzzle_date, stage, message, details)
        except Exception as exc:
            log.warning("Failed to log ingest failure: %s", exc)
        finally:
            try:
                conn.close()
            except Exception as exc:
                log.warning("Failed to close failure-log connection: %s", exc)

    def _write(
        self,
        conn: psycopg.Connection,
        source_slug: str,
        puzzle_date: str,
        stage: str,
        message: str,
        details: Any | None,
    ) -> None:
        try:
            conn.execute(
                _INSERT_WITH_DETAILS,
                (
                    source_slug, puzzle_date, stage, message,
                    json.dumps(details, default=str) if details is not None else None,
                ),
            )
            return
        except psycopg.Error as exc:
            log.debug("Full failure-log insert failed (%s); retrying without details", exc)

        try:
            conn.execute(_INSERT_MINIMAL, (source_slug, puzzle_date, stage, message))
        except psycopg.Error as exc:
            log.warning("Failed to log ingest failure: %s", exc)
