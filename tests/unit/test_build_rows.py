"""Unit tests for crossword_ingest.build_rows."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from crossword_ingest.build_rows import (
    BuildResult,
    build_rows,
    check_complete,
    clue_plain_text,
    resolve_raw_answer,
)
from crossword_ingest.config import get_source
from crossword_ingest.fetch import RawClue, TextRun, parse_payload
from crossword_ingest.normalize import slug_md5
from crossword_ingest.shared import BatchAbortError

SOURCE = get_source("nyt-mini")
DATE = "2024-06-01"

# 3x3 grid:  C A T / A R E / B E D
GRID = "CATAREBED"


def _clue(label, direction, text, cells=None, answer=None) -> dict:
    c = {"label": label, "direction": direction, "text": [{"plain": text}]}
    if cells is not None:
        c["cells"] = cells
    if answer is not None:
        c["answer"] = answer
    return c


def _mini_payload(extra_clues: list[dict] | None = None):
    clues = [
        _clue("1", "Across", "Feline pet", [0, 1, 2]),
        _clue("4", "Across", "Exist", [3, 4, 5]),
        _clue("5", "Across", "Place to sleep", [6, 7, 8]),
        _clue("1", "Down", "Taxi", [0, 3, 6]),
        _clue("2", "Down", "Are, in a puzzle", [1, 4, 7]),
        _clue("3", "Down", "Teddy, for short", [2, 5, 8]),
    ]
    clues += extra_clues or []
    return parse_payload({
        "id": 1,
        "publicationDate": DATE,
        "body": [{"cells": [{"answer": ch} for ch in GRID], "clues": clues}],
    })


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestCluePlainText:
    def test_plain_preferred(self):
        assert clue_plain_text([TextRun(plain=" Pet ", formatted="<b>Pet</b>")]) == "Pet"

    def test_formatted_fallback(self):
        assert clue_plain_text([TextRun(formatted="Pet")]) == "Pet"

    def test_only_first_run(self):
        assert clue_plain_text([TextRun(plain=""), TextRun(plain="Second")]) == ""

    def test_no_runs(self):
        assert clue_plain_text([]) == ""


class TestResolveRawAnswer:
    def test_explicit_answer_preferred(self):
        clue = RawClue(label="1", direction="Across", cells=[0, 1], answer="ice cream")
        assert resolve_raw_answer(clue, ["X", "Y"]) == "ice cream"

    def test_blank_explicit_falls_back_to_cells(self):
        clue = RawClue(label="1", direction="Across", cells=[1, 0], answer="   ")
        assert resolve_raw_answer(clue, ["a", "b"]) == "BA"

    def test_out_of_range_cells_ignored(self):
        clue = RawClue(label="1", direction="Across", cells=[0, 5, -1])
        assert resolve_raw_answer(clue, ["A", "B"]) == "A"


# ---------------------------------------------------------------------------
# build_rows
# ---------------------------------------------------------------------------

class TestBuildRows:
    def test_reconstructs_answers_from_cells(self):
        result = build_rows(_mini_payload(), SOURCE, DATE)
        assert result.is_complete
        assert result.expected == 6
        got = {(r.number, r.direction): r.answer for r in result.rows}
        assert got == {
            (1, "across"): "CAT",
            (4, "across"): "ARE",
            (5, "across"): "BED",
            (1, "down"): "CAB",
            (2, "down"): "ARE",
            (3, "down"): "TED",
        }

    def test_row_fields(self):
        row = build_rows(_mini_payload(), SOURCE, DATE).rows[0]
        assert row.source_slug == "nyt-mini"
        assert row.puzzle_date == DATE
        assert row.clue_text == "Feline pet"
        assert row.enumeration == "3"
        assert row.enumeration_source == "derived"
        assert row.source_url == "https://www.nytimes.com/crosswords/game/mini/2024-06-01"
        assert row.slug_md5 == slug_md5("Feline pet")
        assert row.slug_readable == "feline-pet"

    def test_explicit_multi_word_answer(self):
        payload = _mini_payload([_clue("6", "Across", "Sundae base", answer="ICE CREAM")])
        row = build_rows(payload, SOURCE, DATE).rows[-1]
        assert row.answer == "ICECREAM"
        assert row.enumeration == "3,5"

    def test_inapplicable_clues_excluded_from_expected(self):
        payload = _mini_payload([
            _clue("", "Across", "No label", answer="X"),
            _clue("7", "", "No direction", answer="X"),
            _clue("8", "Down", "", answer="X"),
        ])
        result = build_rows(payload, SOURCE, DATE)
        assert result.expected == 6
        assert result.failures == []
        assert result.is_complete

    def test_bad_label_is_single_failure(self):
        payload = _mini_payload([_clue("D9", "Down", "Odd label", answer="ODD")])
        result = build_rows(payload, SOURCE, DATE)
        assert len(result.rows) == 6
        assert len(result.failures) == 1
        assert "Bad label" in result.failures[0].error
        assert result.failures[0].label == "D9"
        assert not result.is_complete

    @pytest.mark.parametrize("label", ["0", "00A", "0D"])
    def test_zero_clue_number_fails(self, label):
        payload = _mini_payload([_clue(label, "Across", "Nothing", answer="NIL")])
        result = build_rows(payload, SOURCE, DATE)
        assert len(result.rows) == 6
        assert len(result.failures) == 1
        assert "Bad label" in result.failures[0].error
        assert all(r.number > 0 for r in result.rows)
        assert not result.is_complete

    def test_zero_clue_number_aborts_before_write(self):
        payload = _mini_payload([_clue("0", "Across", "Nothing", answer="NIL")])
        failure_log = MagicMock()
        with pytest.raises(BatchAbortError):
            check_complete(build_rows(payload, SOURCE, DATE), SOURCE.slug, DATE, failure_log)
        assert failure_log.record.call_args.args[2] == "build_rows"

    def test_unknown_direction_fails(self):
        payload = _mini_payload([_clue("9", "Diagonal", "Sideways", answer="ODD")])
        result = build_rows(payload, SOURCE, DATE)
        assert "Unknown direction" in result.failures[0].error

    def test_missing_answer_fails_without_stopping_others(self):
        # One clue with no explicit answer and no cells among nine valid ones.
        valid = [_clue(str(n), "Across", f"Clue {n}", answer="ABC") for n in range(10, 19)]
        broken = _clue("20", "Down", "Empty answer", answer="")
        payload = parse_payload({
            "body": [{"cells": [], "clues": valid[:4] + [broken] + valid[4:]}],
        })
        result = build_rows(payload, SOURCE, DATE)
        assert result.expected == 10
        assert len(result.rows) == 9
        assert result.failures[0].error == "Missing answer"
        assert result.failures[0].text == "Empty answer"

    def test_answer_of_only_symbols_fails(self):
        payload = _mini_payload([_clue("9", "Across", "Symbols", answer="123")])
        result = build_rows(payload, SOURCE, DATE)
        assert result.failures[0].error == "Missing answer"

    def test_slugs_stable_across_runs(self):
        a = build_rows(_mini_payload(), SOURCE, DATE).rows
        b = build_rows(_mini_payload(), SOURCE, DATE).rows
        assert [(r.slug_md5, r.slug_readable) for r in a] == [
            (r.slug_md5, r.slug_readable) for r in b
        ]

    def test_to_staging_row(self):
        row = build_rows(_mini_payload(), SOURCE, DATE).rows[0]
        ts = datetime(2024, 6, 1, tzinfo=timezone.utc)
        staged = row.to_staging_row(ts)
        assert staged["inserted_at"] == ts
        assert staged["enumeration_source"] == "derived"
        assert set(staged) == {
            "source_slug", "puzzle_date", "number", "direction", "clue_text",
            "answer", "enumeration", "enumeration_source", "source_url",
            "slug_readable", "slug_md5", "inserted_at",
        }


# ---------------------------------------------------------------------------
# check_complete
# ---------------------------------------------------------------------------

class TestCheckComplete:
    def test_complete_passes_silently(self):
        failure_log = MagicMock()
        check_complete(build_rows(_mini_payload(), SOURCE, DATE), "nyt-mini", DATE, failure_log)
        failure_log.record.assert_not_called()

    def test_failure_aborts_and_logs(self):
        payload = _mini_payload([_clue("9", "Across", "Blank", answer="")])
        result = build_rows(payload, SOURCE, DATE)
        failure_log = MagicMock()

        with pytest.raises(BatchAbortError) as exc_info:
            check_complete(result, "nyt-mini", DATE, failure_log)

        assert exc_info.value.built == 6
        assert exc_info.value.expected == 7
        args = failure_log.record.call_args.args
        assert args[2] == "build_rows"
        assert "built 6 / expected 7" in args[3]
        assert args[4]["failures"][0]["error"] == "Missing answer"

    def test_count_mismatch_aborts(self):
        result = BuildResult(expected=3)
        with pytest.raises(BatchAbortError):
            check_complete(result, "nyt-mini", DATE, MagicMock())
