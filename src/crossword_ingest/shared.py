"""crossword_ingest.shared

Shared types used by every ingestion stage.
Includes the exception hierarchy, run result records, and
report-writing support.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class IngestError(Exception):
    """Base class for ingestion failures.

    ``stage`` names the pipeline stage that failed and matches the stage
    written to the ingest_failure table.
    """

    stage = "ingest"


class ConfigError(IngestError):
    """Raised when required configuration is missing or invalid."""

    stage = "config"


class FetchError(IngestError):
    """Upstream HTTP call failed (non-2xx status or transport error)."""

    stage = "fetch"

    def __init__(
        self,
        message: str,
        url: str,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.body = body


class ParseError(IngestError):
    """Upstream payload is missing required structure."""

    stage = "parse"


class BatchAbortError(IngestError):
    """At least one clue failed to build; nothing is written for the date."""

    stage = "build_rows"

    def __init__(self, built: int, expected: int, failures: list[Any]) -> None:
        super().__init__(f"ingest aborted: built {built}/{expected} rows")
        self.built = built
        self.expected = expected
        self.failures = failures


class StagingWriteError(IngestError):
    """Clearing, inserting or cleaning up staged rows failed."""

    stage = "insert_staging"

    def __init__(self, message: str, stage: str = "insert_staging") -> None:
        super().__init__(message)
        self.stage = stage


class PromotionError(IngestError):
    """The promotion procedure reported failure; staged rows are retained."""

    stage = "rpc_promote"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class IngestResult:
    url: str
    puzzle_date: str
    puzzle_id: Any
    expected: int
    built: int
    inserted: int = 0
    dry_run: bool = False
    keep_staging: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "puzzle_date": self.puzzle_date,
            "puzzle_id": self.puzzle_id,
            "expected": self.expected,
            "built": self.built,
            "inserted": self.inserted,
            "dry_run": self.dry_run,
            "keep_staging": self.keep_staging,
        }


@dataclass
class DateResult:
    date: str
    ok: bool
    inserted: int | None = None
    error: str | None = None


@dataclass
class RangeSummary:
    start: str
    end: str
    results: list[DateResult] = field(default_factory=list)

    @property
    def ok_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed_count(self) -> int:
        return len(self.results) - self.ok_count

    @property
    def failed(self) -> list[DateResult]:
        return [r for r in self.results if not r.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "ok": self.ok_count,
            "failed": self.failed_count,
            "results": [
                {"date": r.date, "ok": r.ok, "inserted": r.inserted, "error": r.error}
                for r in self.results
            ],
        }


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    source_slug: str,
    summary: RangeSummary,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "source_slug": source_slug,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        **summary.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
