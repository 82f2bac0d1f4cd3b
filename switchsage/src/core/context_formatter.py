"""
SwitchSage - Context Formatter
===============================
Renders candidate switch records into the numbered, model-readable block
used by the re-ranking prompt.

Every optional field is rendered, with ``N/A`` standing in for missing
data, so the model never mistakes an absent value for an omitted one.
Values are sanitized by the injected ``Sanitizer`` first and its
redaction log is returned alongside the text.

Truncating the candidate list is the caller's job.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple

from switchsage.src.core.models import Candidate
from switchsage.src.core.sanitizer import PromptSanitizer, SanitizationEntry, Sanitizer, log_sanitization
from switchsage.src.utils.text_utils import format_force, format_score, or_na, quote_identifier


class FormattedContext(NamedTuple):
    text: str
    redaction_log: list[SanitizationEntry]


class ContextFormatter:
    """
    Formats candidates for the re-ranking prompt.

    Parameters
    ----------
    sanitizer
        Optional custom ``Sanitizer``.  Defaults to ``PromptSanitizer``.
    operation
        Label used when the redaction log is reported.
    """

    __slots__ = ("_sanitizer", "_operation")

    def __init__(self, sanitizer: Sanitizer | None = None, operation: str = "RERANK_CONTEXTS") -> None:
        self._sanitizer = sanitizer or PromptSanitizer()
        self._operation = operation


    def format(self, candidates: Sequence[Candidate]) -> FormattedContext:
        """
        Sanitize and render *candidates* as a numbered block.

        The item id line carries the candidate's identity key (raw, as a
        JSON string literal) because the model must echo it back exactly.
        """
        outcome = self._sanitizer.sanitize(candidates)
        log_sanitization(self._operation, outcome.log)

        blocks = [self._render(position, original, clean) for position, (original, clean) in enumerate(zip(candidates, outcome.sanitized), 1)]
        return FormattedContext(text="\n\n".join(blocks), redaction_log=list(outcome.log))


    @staticmethod
    def _render(position: int, original: Candidate, clean: Candidate) -> str:
        lines = [
            f"{position}. {or_na(clean.name)}",
            f"   Item ID: {quote_identifier(original.key)}",
            f"   Manufacturer: {or_na(clean.manufacturer)}",
            f"   Type: {or_na(clean.type)}",
            f"   Spring: {or_na(clean.spring)}",
            f"   Actuation Force: {format_force(clean.actuation_force)}",
            f"   Description: {or_na(clean.description)}",
            f"   Initial Relevance Score: {format_score(clean.similarity)}",
        ]
        return "\n".join(lines)
