"""crossword_ingest.fetch

Fetch one puzzle payload from the upstream puzzle API and map it into a
typed RawPuzzlePayload.

Contract:
  - Non-2xx or transport failure → FetchError (stage 'fetch').
  - Undecodable JSON, missing body[0] or empty clues[] → ParseError
    (stage 'parse').
  - Every failure is recorded to the FailureLog before it is raised.
  - No retries here; the range runner moves on to the next date instead.

Per-clue fields are coerced leniently during parsing.  Whether a clue is
applicable (has direction, label and text) is decided by the row builder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from crossword_ingest.config import IngestConfig, get_source
from crossword_ingest.failure_log import FailureLog
from crossword_ingest.shared import FetchError, ParseError

log = logging.getLogger(__name__)

BODY_PREFIX_CHARS = 500


# ---------------------------------------------------------------------------
# Typed payload
# ---------------------------------------------------------------------------

@dataclass
class TextRun:
    plain: str | None = None
    formatted: str | None = None


@dataclass
class RawCell:
    answer: str = ""


@dataclass
class RawClue:
    label: str
    direction: str
    text_runs: list[TextRun] = field(default_factory=list)
    cells: list[int] = field(default_factory=list)
    answer: str | None = None


@dataclass
class RawPuzzlePayload:
    puzzle_id: Any
    publication_date: str | None
    cells: list[RawCell]
    clues: list[RawClue]
    url: str = ""


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def _parse_text_runs(value: Any) -> list[TextRun]:
    if not isinstance(value, list):
        return []
    runs = []
    for item in value:
        if isinstance(item, dict):
            plain = item.get("plain")
            formatted = item.get("formatted")
            runs.append(TextRun(
                plain=str(plain) if plain is not None else None,
                formatted=str(formatted) if formatted is not None else None,
            ))
    return runs


def _parse_cell_indexes(value: Any) -> list[int]:
    if not isinstance(value, list):
        return []
    return [i for i in value if isinstance(i, int) and not isinstance(i, bool)]


def _parse_clue(raw: Any) -> RawClue:
    if not isinstance(raw, dict):
        return RawClue(label="", direction="")
    answer = raw.get("answer")
    return RawClue(
        label=_as_str(raw.get("label")),
        direction=_as_str(raw.get("direction")),
        text_runs=_parse_text_runs(raw.get("text")),
        cells=_parse_cell_indexes(raw.get("cells")),
        answer=answer if isinstance(answer, str) else None,
    )


def parse_payload(data: Any, url: str = "") -> RawPuzzlePayload:
    """Map upstream JSON into RawPuzzlePayload, raising ParseError on bad shape."""
    if not isinstance(data, dict):
        raise ParseError("Unexpected puzzle payload: not a JSON object")

    body = data.get("body")
    puzzle = body[0] if isinstance(body, list) and body else None
    if not isinstance(puzzle, dict):
        raise ParseError("Unexpected puzzle payload: missing body[0]")

    clues = puzzle.get("clues")
    if not isinstance(clues, list) or not clues:
        raise ParseError("Unexpected puzzle payload: missing clues[]")

    raw_cells = puzzle.get("cells")
    cells = [
        RawCell(answer=_as_str(c.get("answer")) if isinstance(c, dict) else "")
        for c in (raw_cells if isinstance(raw_cells, list) else [])
    ]

    pub_date = data.get("publicationDate")
    return RawPuzzlePayload(
        puzzle_id=data.get("id"),
        publication_date=pub_date if isinstance(pub_date, str) and pub_date else None,
        cells=cells,
        clues=[_parse_clue(c) for c in clues],
        url=url,
    )


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

class PuzzleFetcher:
    def __init__(
        self,
        config: IngestConfig,
        failure_log: FailureLog,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config
        self._failure_log = failure_log
        self._session = session or requests.Session()
        self._session.headers.update({
            "user-agent": config.user_agent,
            "accept": "application/json",
        })
        if config.upstream_cookie:
            self._session.headers.update({"cookie": config.upstream_cookie})

    def fetch(self, source_slug: str, puzzle_date: str) -> RawPuzzlePayload:
        url = get_source(source_slug).api_url_for(puzzle_date)
        log.info("Fetching %s", url)

        try:
            resp = self._session.get(url, timeout=self._config.http_timeout)
        except requests.RequestException as exc:
            message = f"Puzzle fetch failed: {exc}"
            self._failure_log.record(
                source_slug, puzzle_date, "fetch", message, {"url": url},
            )
            raise FetchError(message, url=url) from exc

        if not resp.ok:
            body = (resp.text or "")[:BODY_PREFIX_CHARS]
            message = f"Puzzle fetch failed {resp.status_code} {resp.reason}"
            self._failure_log.record(
                source_slug, puzzle_date, "fetch", message,
                {"url": url, "status": resp.status_code, "body": body},
            )
            raise FetchError(
                f"{message}\nURL: {url}\nBody: {body}",
                url=url,
                status_code=resp.status_code,
                body=body,
            )

        try:
            return parse_payload(resp.json(), url=url)
        except ValueError as exc:
            # requests raises a ValueError subclass for undecodable JSON.
            message = f"Unexpected puzzle payload: invalid JSON ({exc})"
            self._failure_log.record(
                source_slug, puzzle_date, "parse", message, {"url": url},
            )
            raise ParseError(message) from exc
        except ParseError as exc:
            self._failure_log.record(
                source_slug, puzzle_date, "parse", str(exc), {"url": url},
            )
            raise
