"""crossword_ingest.build_rows

Transform a RawPuzzlePayload into normalized clue-occurrence rows.

Processing per clue:
  1.  Skip clues lacking direction, label or text (not counted as expected).
  2.  Parse the leading number from the label ('5D' → 5); it must be
      positive.
  3.  Normalize direction to across/down.
  4.  Extract clue text from the first text run (plain, else formatted).
  5.  Resolve the raw answer: explicit answer field, else the referenced
      grid cell letters concatenated in order.
  6.  answer = letters only, uppercased; enumeration from the RAW answer.
  7.  slug_md5 / slug_readable from the clue text.

A failing clue is collected as a ClueBuildFailure and never stops the
others.  The all-or-nothing decision belongs to the caller: see
check_complete.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from crossword_ingest.config import PuzzleSource
from crossword_ingest.failure_log import FailureLog
from crossword_ingest.fetch import RawClue, RawPuzzlePayload, TextRun
from crossword_ingest.normalize import (
    derive_enumeration,
    normalize_answer,
    normalize_direction,
    parse_clue_number,
    slug_md5,
    slug_readable,
    trim,
)
from crossword_ingest.shared import BatchAbortError

ENUMERATION_SOURCE = "derived"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class ClueOccurrenceCandidate:
    source_slug: str
    puzzle_date: str
    number: int
    direction: str
    clue_text: str
    answer: str
    enumeration: str
    source_url: str
    slug_md5: str
    slug_readable: str
    enumeration_source: str = ENUMERATION_SOURCE

    def to_staging_row(self, inserted_at: datetime) -> dict[str, Any]:
        row = asdict(self)
        row["inserted_at"] = inserted_at
        return row


@dataclass
class ClueBuildFailure:
    label: str | None
    direction: str | None
    text: str | None
    error: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BuildResult:
    expected: int
    rows: list[ClueOccurrenceCandidate] = field(default_factory=list)
    failures: list[ClueBuildFailure] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.failures and len(self.rows) == self.expected


class ClueBuildError(ValueError):
    """A single clue could not be built; caught and collected per clue."""


# ---------------------------------------------------------------------------
# Per-clue helpers
# ---------------------------------------------------------------------------

def clue_plain_text(runs: list[TextRun]) -> str:
    if not runs:
        return ""
    first = runs[0]
    text = first.plain if first.plain is not None else first.formatted
    return (text or "").strip()


def is_applicable(clue: RawClue) -> bool:
    return bool(trim(clue.direction) and trim(clue.label) and clue_plain_text(clue.text_runs))


def resolve_raw_answer(clue: RawClue, cell_letters: list[str]) -> str:
    """Explicit answer if non-blank, else the referenced cell letters in order."""
    explicit = (clue.answer or "").strip()
    if explicit:
        return explicit
    letters = [
        cell_letters[i] if 0 <= i < len(cell_letters) else ""
        for i in clue.cells
    ]
    return "".join(letters).upper()


def build_candidate(
    clue: RawClue,
    cell_letters: list[str],
    source_slug: str,
    puzzle_date: str,
    source_url: str,
) -> ClueOccurrenceCandidate:
    label = clue.label.strip()
    number = parse_clue_number(label)
    if number is None or number < 1:
        raise ClueBuildError(f"Bad label {label!r}")

    direction = normalize_direction(clue.direction)
    if direction is None:
        raise ClueBuildError(f"Unknown direction: {clue.direction}")

    clue_text = clue_plain_text(clue.text_runs)
    answer_raw = resolve_raw_answer(clue, cell_letters)
    answer = normalize_answer(answer_raw)
    if not clue_text:
        raise ClueBuildError("Missing clue text")
    if not answer:
        raise ClueBuildError("Missing answer")

    return ClueOccurrenceCandidate(
        source_slug=source_slug,
        puzzle_date=puzzle_date,
        number=number,
        direction=direction,
        clue_text=clue_text,
        answer=answer,
        enumeration=derive_enumeration(answer_raw),
        source_url=source_url,
        slug_md5=slug_md5(clue_text),
        slug_readable=slug_readable(clue_text),
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def build_rows(
    payload: RawPuzzlePayload,
    source: PuzzleSource,
    puzzle_date: str,
) -> BuildResult:
    cell_letters = [c.answer.upper() for c in payload.cells]
    source_url = source.game_url_for(puzzle_date)
    applicable = [c for c in payload.clues if is_applicable(c)]

    result = BuildResult(expected=len(applicable))
    for clue in applicable:
        try:
            result.rows.append(build_candidate(
                clue, cell_letters, source.slug, puzzle_date, source_url,
            ))
        except ClueBuildError as exc:
            result.failures.append(ClueBuildFailure(
                label=clue.label or None,
                direction=clue.direction or None,
                text=clue_plain_text(clue.text_runs) or None,
                error=str(exc),
            ))
    return result


def check_complete(
    result: BuildResult,
    source_slug: str,
    puzzle_date: str,
    failure_log: FailureLog,
) -> None:
    """All-or-nothing gate: raise BatchAbortError unless every clue was built."""
    if result.is_complete:
        return
    failure_log.record(
        source_slug, puzzle_date, "build_rows",
        f"Row build mismatch: built {len(result.rows)} / expected {result.expected}",
        {"failures": [f.to_dict() for f in result.failures]},
    )
    raise BatchAbortError(len(result.rows), result.expected, result.failures)
