"""
SwitchSage - Text Utilities
============================
Helper functions for text cleaning and display formatting used when
database records and user text are rendered into LLM prompts.

These utilities should remain stateless and side-effect-free.
"""

from __future__ import annotations

import json
import re
import unicodedata


# ── Non-printable character pattern ────────────────────────────────────
# Matches control characters (C0/C1), except \n, \r, \t which we handle
# separately. Also catches BOM, zero-width chars, soft hyphens, etc.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

NOT_AVAILABLE = "N/A"


def clean_text(text: str) -> str:
    """
    Normalise a free-text value before it is sanitised.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse runs of horizontal whitespace, preserving newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.

    Args:
        text: Raw value from a database record or a chat message.

    Returns:
        Cleaned, normalised text.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def or_na(value: str | None) -> str:
    """Return *value*, or the explicit ``N/A`` marker when it is empty."""
    if value is None:
        return NOT_AVAILABLE
    value = str(value)
    return value if value.strip() else NOT_AVAILABLE


def format_force(grams: float | None) -> str:
    """
    Render an actuation force in grams.

    ``45`` → ``"45g"``, ``62.5`` → ``"62.5g"``, ``None`` → ``"N/A"``.
    A zero force is treated as missing data, as the search layer stores
    unknown forces as ``0``.
    """
    if grams is None or grams == 0:
        return NOT_AVAILABLE
    return f"{grams:g}g"


def quote_identifier(value: str) -> str:
    """
    Render an identifier as a JSON string literal.

    The literal cannot break out of the surrounding prompt structure
    (newlines and quotes are escaped) and a model can echo it back
    verbatim inside its JSON answer.
    """
    return json.dumps(value, ensure_ascii=False)


def format_score(score: float | None) -> str:
    """Two-decimal score, or ``N/A`` when no score is known."""
    return NOT_AVAILABLE if score is None else f"{score:.2f}"
