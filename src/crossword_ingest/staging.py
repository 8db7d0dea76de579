"""crossword_ingest.staging

Staging-then-promote load for one (source_slug, puzzle_date) key.

Steps:
  1. DELETE staged rows for the key          (stage 'clear_staging')
  2. INSERT all rows in one batch, COMMIT    (stage 'insert_staging')
  3. SELECT process_staging_occurrence_seed() (stage 'rpc_promote')
  4. DELETE staged rows unless keep_staging   (stage 'cleanup_staging')

Idempotency: step 1 runs in the same transaction as step 2, so re-running
a date replaces its staged batch instead of accumulating duplicates.

Promotion failure rolls back only the promotion; the staged rows committed
in step 2 stay in place for inspection and are replaced on the next run.

The key is assumed to be owned by a single ingest process; no lock is taken.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import psycopg

from crossword_ingest.build_rows import ClueOccurrenceCandidate
from crossword_ingest.failure_log import FailureLog
from crossword_ingest.shared import PromotionError, StagingWriteError

log = logging.getLogger(__name__)

STAGING_TABLE = "staging_occurrence_seed"
PROMOTE_PROCEDURE = "process_staging_occurrence_seed"

_DELETE_STAGED = f"""
    DELETE FROM {STAGING_TABLE}
    WHERE source_slug = %s AND puzzle_date = %s
"""

_INSERT_STAGED = f"""
    INSERT INTO {STAGING_TABLE}
        (source_slug, puzzle_date, number, direction, clue_text, answer,
         enumeration, enumeration_source, source_url, slug_readable,
         slug_md5, inserted_at)
    VALUES (%(source_slug)s, %(puzzle_date)s, %(number)s, %(direction)s,
            %(clue_text)s, %(answer)s, %(enumeration)s, %(enumeration_source)s,
            %(source_url)s, %(slug_readable)s, %(slug_md5)s, %(inserted_at)s)
"""


@dataclass
class LoadResult:
    inserted: int


class StagingLoader:
    def __init__(self, conn: psycopg.Connection, failure_log: FailureLog) -> None:
        self._conn = conn
        self._failure_log = failure_log

    def load(
        self,
        source_slug: str,
        puzzle_date: str,
        rows: list[ClueOccurrenceCandidate],
        keep_staging: bool = False,
    ) -> LoadResult:
        self._replace_staged(source_slug, puzzle_date, rows)
        self._promote(source_slug, puzzle_date)
        if not keep_staging:
            self._cleanup(source_slug, puzzle_date)
        else:
            log.info("Keeping staged rows for %s %s", source_slug, puzzle_date)
        return LoadResult(inserted=len(rows))

    # ------------------------------------------------------------------ #

    def _fail(
        self,
        source_slug: str,
        puzzle_date: str,
        stage: str,
        exc: Exception,
    ) -> None:
        try:
            self._conn.rollback()
        except psycopg.Error as rb_exc:
            log.warning("Rollback after %s failure failed: %s", stage, rb_exc)
        self._failure_log.record(source_slug, puzzle_date, stage, str(exc))

    def _replace_staged(
        self,
        source_slug: str,
        puzzle_date: str,
        rows: list[ClueOccurrenceCandidate],
    ) -> None:
        try:
            self._conn.execute(_DELETE_STAGED, (source_slug, puzzle_date))
        except psycopg.Error as exc:
            self._fail(source_slug, puzzle_date, "clear_staging", exc)
            raise StagingWriteError(
                f"Clearing staged rows failed: {exc}", stage="clear_staging"
            ) from exc

        inserted_at = datetime.now(timezone.utc)
        params = [r.to_staging_row(inserted_at) for r in rows]
        try:
            with self._conn.cursor() as cur:
                cur.executemany(_INSERT_STAGED, params)
            self._conn.commit()
        except psycopg.Error as exc:
            self._fail(source_slug, puzzle_date, "insert_staging", exc)
            raise StagingWriteError(
                f"Insert into staging failed: {exc}", stage="insert_staging"
            ) from exc
        log.info("Staged %d rows for %s %s", len(rows), source_slug, puzzle_date)

    def _promote(self, source_slug: str, puzzle_date: str) -> None:
        try:
            self._conn.execute(f"SELECT {PROMOTE_PROCEDURE}()")
            self._conn.commit()
        except psycopg.Error as exc:
            self._fail(source_slug, puzzle_date, "rpc_promote", exc)
            raise PromotionError(f"Promotion failed: {exc}") from exc
        log.info("Promoted staged rows for %s %s", source_slug, puzzle_date)

    def _cleanup(self, source_slug: str, puzzle_date: str) -> None:
        try:
            self._conn.execute(_DELETE_STAGED, (source_slug, puzzle_date))
            self._conn.commit()
        except psycopg.Error as exc:
            self._fail(source_slug, puzzle_date, "cleanup_staging", exc)
            raise StagingWriteError(
                f"Staging cleanup failed: {exc}", stage="cleanup_staging"
            ) from exc
