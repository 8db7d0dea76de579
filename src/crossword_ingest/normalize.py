"""Normalization functions for puzzle clue ingestion.

Text helpers accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import hashlib
import re

_LEADING_INT = re.compile(r"^(\d+)")
_NON_LETTERS = re.compile(r"[^A-Za-z]+")
_NON_SLUG = re.compile(r"[^a-z0-9]+")

DIRECTIONS = ("across", "down")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: clue labels and directions
# ---------------------------------------------------------------------------

def parse_clue_number(label: str | None) -> int | None:
    """Leading integer of a clue label: '5D' -> 5, '05' -> 5, 'D5' -> None."""
    v = trim(label)
    if v is None:
        return None
    m = _LEADING_INT.match(v)
    return int(m.group(1)) if m else None


def normalize_direction(value: str | None) -> str | None:
    """Return 'across' or 'down', or None for anything else."""
    v = trim(value)
    if v is None:
        return None
    v = v.lower()
    return v if v in DIRECTIONS else None


# ---------------------------------------------------------------------------
# Rule 3: answers
# ---------------------------------------------------------------------------

def normalize_answer(raw: str) -> str:
    """Letters only, uppercased: 'ice cream' -> 'ICECREAM'."""
    return _NON_LETTERS.sub("", raw).upper()


def derive_enumeration(raw: str) -> str:
    """Word-length breakdown of a raw answer.

    Splits on runs of non-letters, so 'ICE CREAM' -> '3,5' and 'ABC' -> '3'.
    A raw answer with no letters at all yields '0'.
    """
    parts = [p for p in _NON_LETTERS.split(raw.strip()) if p]
    if not parts:
        return str(len(normalize_answer(raw)))
    return ",".join(str(len(p)) for p in parts)


# ---------------------------------------------------------------------------
# Rule 4: clue slugs
# ---------------------------------------------------------------------------

def slug_md5(clue_text: str) -> str:
    """Content-addressed identifier for a clue (md5 hex of the UTF-8 text)."""
    return hashlib.md5(clue_text.encode("utf-8")).hexdigest()


def slug_readable(clue_text: str) -> str:
    """Lowercase alnum with '-' separators, no leading/trailing '-'.

    Non-ASCII letters count as separators, matching the slugs the site
    already serves: 'Café au lait' -> 'caf-au-lait'.
    """
    v = _NON_SLUG.sub("-", clue_text.lower())
    return v.strip("-")
