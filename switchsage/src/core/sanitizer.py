"""
SwitchSage - Prompt Sanitizer
==============================
Cleans every piece of text that is embedded into an outbound LLM prompt.

Two concerns, two sources of text:

**Database content** (switch records from search)
    1. Normalise whitespace and strip non-printable characters.
    2. Replace prompt-injection patterns (role markers, instruction
       overrides, template/special tokens) with ``[CONTENT_REMOVED]``.
    3. PII-scrub contact details (email, phone, URL).
    4. HTML-escape structural characters.
    5. Truncate to ``settings.MAX_CONTENT_LENGTH``.
    Every modification is recorded in a ``SanitizationEntry`` so callers
    can surface a redaction log.

**User text** (queries and chat history)
    PII-scrubbed only; the user's wording is otherwise preserved.

``PromptSanitizer`` is the default implementation of the ``Sanitizer``
protocol consumed by ``ContextFormatter``, ``RerankEngine`` and
``PromptAssembler``.  Swap in another implementation by injection.
"""

from __future__ import annotations

import html
import re
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import NamedTuple, Protocol, runtime_checkable

from switchsage.config.settings import settings
from switchsage.src.core.models import Candidate, ConversationTurn
from switchsage.src.utils.logger import get_stage_logger
from switchsage.src.utils.text_utils import NOT_AVAILABLE, clean_text

logger = get_stage_logger(__name__, "sanitize")

CONTENT_REMOVED = "[CONTENT_REMOVED]"
TRUNCATED_SUFFIX = "...[TRUNCATED]"

# ── Prompt-injection patterns ──────────────────────────────────────────
_INJECTION_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("ignore_instructions", re.compile(r"ignore\s+(?:previous|all)\s+(?:instructions?|prompts?|rules?)", re.IGNORECASE)),
    ("forget_context", re.compile(r"forget\s+(?:everything|all|previous)", re.IGNORECASE)),
    ("act_as", re.compile(r"act\s+as\s+(?:if\s+)?you\s+(?:are|were)", re.IGNORECASE)),
    ("pretend", re.compile(r"pretend\s+(?:to\s+be|you\s+are)", re.IGNORECASE)),
    ("roleplay", re.compile(r"roleplay\s+as", re.IGNORECASE)),
    ("simulate", re.compile(r"simulate\s+(?:being|a)\b", re.IGNORECASE)),
    ("role_marker", re.compile(r"\b(?:system|assistant|human|user)\s*[:=]", re.IGNORECASE)),
    ("bracket_role", re.compile(r"\[(?:system|assistant|user)\]", re.IGNORECASE)),
    ("tag_role", re.compile(r"<(?:system|assistant|user)>", re.IGNORECASE)),
    ("triple_quote", re.compile(r'"""[\s\S]*?"""')),
    ("code_fence", re.compile(r"```[\s\S]*?```")),
    ("double_brace", re.compile(r"\{\{[\s\S]*?\}\}")),
    ("double_bracket", re.compile(r"\[\[[\s\S]*?\]\]")),
    ("json_role", re.compile(r"\{\s*[\"']?(?:role|content|system|assistant|user)[\"']?\s*:", re.IGNORECASE)),
    ("template_expression", re.compile(r"[$%]\{[\s\S]*?\}")),
    ("special_token", re.compile(r"<\|.*?\|>")),
    ("inst_token", re.compile(r"\[/?INST\]", re.IGNORECASE)),
    ("sentence_token", re.compile(r"</?s>")),
    ("escape_sequence", re.compile(r"\\x[0-9a-f]{2}|\\u[0-9a-f]{4}", re.IGNORECASE)),
    ("markdown_role_heading", re.compile(r"#+\s*(?:system|assistant|user|instruction)", re.IGNORECASE)),
]

# ── PII patterns ───────────────────────────────────────────────────────
_PII_PATTERNS: dict[str, tuple[re.Pattern[str], str]] = {
    "email": (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL_REDACTED]"),
    "phone": (re.compile(r"(?:\+?1[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b"), "[PHONE_REDACTED]"),
    "ssn": (re.compile(r"\b(?:\d{3}[-.\s]?\d{2}[-.\s]?\d{4}|\d{9})\b"), "[SSN_REDACTED]"),
    "credit_card": (re.compile(r"\b(?:\d{4}[-.\s]?){3}\d{4}\b"), "[CARD_REDACTED]"),
    "ip_address": (re.compile(r"\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b"), "[IP_REDACTED]"),
    "url": (re.compile(r"https?://[-\w.]+(?::[0-9]+)?(?:/[\w/.]*(?:\?[\w&=%.]*)?(?:#[\w.]*)?)?"), "[URL_REDACTED]"),
    "address": (re.compile(r"\b\d+\s+[A-Za-z0-9\s]+(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Way|Place|Pl|Court|Ct)\b", re.IGNORECASE), "[ADDRESS_REDACTED]"),
    "birth_date": (re.compile(r"\b(?:0?[1-9]|1[0-2])[-/](?:0?[1-9]|[12][0-9]|3[01])[-/](?:19|20)\d{2}\b"), "[DATE_REDACTED]"),
    "bank_account": (re.compile(r"\b(?:account|acct|acc)\s*#?:?\s*\d{8,17}\b", re.IGNORECASE), "[BANK_ACCOUNT_REDACTED]"),
}

# Applied in dict order; the numeric patterns overlap, so order matters.
DEFAULT_PII_TYPES: tuple[str, ...] = tuple(_PII_PATTERNS)
QUERY_PII_TYPES: tuple[str, ...] = ("email", "phone", "ssn", "credit_card", "address")
CONTENT_PII_TYPES: tuple[str, ...] = ("email", "phone", "url")

_SANITIZED_FIELDS: tuple[str, ...] = ("name", "manufacturer", "type", "spring", "description")


# ══════════════════════════════════════════════════════════════════════
#  RESULT TYPES
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SanitizationEntry:
    """One modified field of one candidate."""

    index: int
    field: str
    removed_patterns: tuple[str, ...]

    def __str__(self) -> str:
        return f"Context[{self.index}] {self.field}: {', '.join(self.removed_patterns)}"


class SanitizationOutcome(NamedTuple):
    sanitized: list[Candidate]
    log: list[SanitizationEntry]


@dataclass(slots=True)
class PIIScrubResult:
    text: str
    detected: dict[str, int] = field(default_factory=dict)

    @property
    def redacted_count(self) -> int:
        return sum(self.detected.values())


# ══════════════════════════════════════════════════════════════════════
#  SANITIZER PROTOCOL
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class Sanitizer(Protocol):
    """Anything that can make candidates and user text prompt-safe."""

    def sanitize(self, candidates: Sequence[Candidate]) -> SanitizationOutcome: ...

    def scrub_query(self, text: str) -> str: ...

    def scrub_history(self, turns: Sequence[ConversationTurn]) -> list[ConversationTurn]: ...


# ══════════════════════════════════════════════════════════════════════
#  PII SCRUBBING
# ══════════════════════════════════════════════════════════════════════


def scrub_pii(text: str, enabled: Sequence[str] = DEFAULT_PII_TYPES) -> PIIScrubResult:
    """
    Redact PII of the *enabled* types from *text*.

    Only counts per type are reported; matched values are never logged
    or returned.
    """
    result = PIIScrubResult(text=text or "")
    if not result.text:
        return result

    for name, (pattern, replacement) in _PII_PATTERNS.items():
        if name not in enabled:
            continue
        result.text, count = pattern.subn(replacement, result.text)
        if count:
            result.detected[name] = count

    if result.detected:
        logger.debug("PII redacted %d item(s): %s", result.redacted_count, result.detected)
    return result


def log_sanitization(operation: str, log: Sequence[SanitizationEntry]) -> None:
    """Emit one WARNING summarising a redaction log (no-op when empty)."""
    if not log:
        return
    patterns = sorted({p for entry in log for p in entry.removed_patterns})
    logger.warning("%s: %d field(s) modified, patterns=%s", operation, len(log), patterns)


# ══════════════════════════════════════════════════════════════════════
#  DEFAULT SANITIZER
# ══════════════════════════════════════════════════════════════════════


class PromptSanitizer:
    """
    Default ``Sanitizer``: injection filtering for database content and
    PII scrubbing for both database content and user text.

    Parameters
    ----------
    max_content_length
        Per-field character cap.  Defaults to ``settings.MAX_CONTENT_LENGTH``.
    """

    __slots__ = ("_max_length",)

    def __init__(self, max_content_length: int | None = None) -> None:
        self._max_length = max_content_length or settings.MAX_CONTENT_LENGTH


    def sanitize_text(self, value: str) -> tuple[str, tuple[str, ...]]:
        """
        Sanitize a single database value.

        Returns
        -------
        tuple[str, tuple[str, ...]]
            The sanitized value and the names of the rules that changed it.
        """
        text = " ".join(clean_text(value).split())
        removed: list[str] = []

        for name, pattern in _INJECTION_PATTERNS:
            text, count = pattern.subn(CONTENT_REMOVED, text)
            if count:
                removed.append(name)

        pii = scrub_pii(text, CONTENT_PII_TYPES)
        if pii.detected:
            text = pii.text
            removed.extend(f"pii:{kind}" for kind in pii.detected)

        escaped = html.escape(text, quote=True)
        if escaped != text:
            text = escaped
            removed.append("html_escape")

        if len(text) > self._max_length:
            text = text[: self._max_length] + TRUNCATED_SUFFIX
            removed.append("truncated")

        return text, tuple(removed)


    def sanitize(self, candidates: Sequence[Candidate]) -> SanitizationOutcome:
        """Sanitize the descriptive fields of every candidate, in order."""
        sanitized: list[Candidate] = []
        log: list[SanitizationEntry] = []

        for index, candidate in enumerate(candidates):
            changes: dict[str, str | None] = {}
            for field_name in _SANITIZED_FIELDS:
                value = getattr(candidate, field_name)
                if not value:
                    continue
                clean, removed = self.sanitize_text(value)
                if not clean:
                    clean = NOT_AVAILABLE if field_name == "name" else None
                if removed:
                    log.append(SanitizationEntry(index=index, field=field_name, removed_patterns=removed))
                if clean != value:
                    changes[field_name] = clean
            sanitized.append(replace(candidate, **changes) if changes else candidate)

        return SanitizationOutcome(sanitized=sanitized, log=log)


    def scrub_query(self, text: str) -> str:
        """PII-scrub a user query before it leaves the process."""
        return scrub_pii(text, QUERY_PII_TYPES).text


    def scrub_history(self, turns: Sequence[ConversationTurn]) -> list[ConversationTurn]:
        """PII-scrub the user turns of a conversation; assistant turns pass through."""
        return [replace(turn, content=scrub_pii(turn.content).text) if turn.role == "user" else turn for turn in turns]
