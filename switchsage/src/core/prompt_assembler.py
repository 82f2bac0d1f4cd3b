"""
SwitchSage - Prompt Assembler
==============================
Builds the final generation prompt from a fixed sequence of sections:

    role → task → history → context → query
         → format_instructions → constraints → guideline

The order encodes priority for the answering model and never changes.
``SECTION_BUILDERS`` holds one builder per ``PromptSections`` field, in
field order; ``PromptAssembler`` feeds every builder the same prepared
``PromptInputs`` and joins the results.

Preparation
-----------
- History is cut to the last ``max_turns * 2`` messages, and user turns
  are PII-scrubbed.
- Context records are run through the ``Sanitizer``.
- The query is PII-scrubbed.
User text is wrapped in ``<user_query>`` tags; any tag of that name inside
the text itself is stripped first.

Empty inputs never produce empty sections: an explicit "no history"
sentence and an explicit "no knowledge found" notice (plus an instruction
not to invent details) stand in for them.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from switchsage.config.prompt_templates import (
    BEHAVIORAL_GUIDELINE_FACTUALNESS,
    CONSTRAINTS_HEADER,
    CORE_TASK_DESCRIPTION,
    GUIDELINE_HEADER,
    HISTORY_HEADER,
    KNOWLEDGE_BASE_HEADER,
    KNOWLEDGE_SCOPING_INSTRUCTION,
    NO_HISTORY_MESSAGE,
    NO_KNOWLEDGE_FOUND_MESSAGE,
    NO_KNOWLEDGE_INSTRUCTION,
    OUTPUT_FORMAT_HEADER,
    OUTPUT_FORMAT_INSTRUCTIONS,
    OUTPUT_QUALITIES,
    RESPONSE_CUE,
    ROLE_DEFINITION,
    SECURITY_DIRECTIVE,
    USER_QUERY_HEADER,
)
from switchsage.config.settings import settings
from switchsage.src.core.errors import ValidationError
from switchsage.src.core.models import Candidate, ConversationTurn, PromptSections
from switchsage.src.core.sanitizer import PromptSanitizer, Sanitizer, log_sanitization
from switchsage.src.utils.logger import get_stage_logger
from switchsage.src.utils.text_utils import format_force, or_na

logger = get_stage_logger(__name__, "prompt")

_RE_USER_TAG = re.compile(r"</?\s*user_query\s*>", re.IGNORECASE)

ROLE_LABELS: dict[str, str] = {"user": "User", "assistant": "Assistant"}


def wrap_user_text(text: str) -> str:
    """Wrap user-authored text in ``<user_query>`` tags."""
    return f"<user_query>{_RE_USER_TAG.sub('', text)}</user_query>"


def recent_turns(history: Sequence[ConversationTurn], max_turns: int) -> list[ConversationTurn]:
    """The last ``max_turns * 2`` messages, oldest first."""
    if max_turns <= 0:
        return []
    return list(history[-max_turns * 2 :])


@dataclass(frozen=True, slots=True)
class PromptInputs:
    """Already-truncated, already-sanitized inputs shared by every section builder."""

    history: tuple[ConversationTurn, ...]
    contexts: tuple[Candidate, ...]
    query: str


# ══════════════════════════════════════════════════════════════════════
#  SECTION BUILDERS
# ══════════════════════════════════════════════════════════════════════

SectionBuilder = Callable[[PromptInputs], str]


def _role(inputs: PromptInputs) -> str:
    return ROLE_DEFINITION


def _task(inputs: PromptInputs) -> str:
    return CORE_TASK_DESCRIPTION


def _history(inputs: PromptInputs) -> str:
    if not inputs.history:
        return f"{HISTORY_HEADER}\n{NO_HISTORY_MESSAGE}"

    lines: list[str] = []
    for turn in inputs.history:
        content = wrap_user_text(turn.content) if turn.role == "user" else turn.content
        lines.append(f"{ROLE_LABELS.get(turn.role, 'Assistant')}: {content}")
    return f"{HISTORY_HEADER}\n" + "\n".join(lines)


def _render_context(position: int, ctx: Candidate) -> str:
    lines = [
        f"Context Item {position}:",
        f"  Name: {or_na(ctx.name)}",
        f"  Manufacturer: {or_na(ctx.manufacturer)}",
        f"  Type: {or_na(ctx.type)}",
        f"  Spring: {or_na(ctx.spring)}",
        f"  Actuation Force: {format_force(ctx.actuation_force)}",
        f"  Description: {or_na(ctx.description)}",
    ]
    if ctx.similarity is not None:
        lines.append(f"  (Relevance Score: {ctx.similarity:.2f})")
    return "\n".join(lines)


def _context(inputs: PromptInputs) -> str:
    if not inputs.contexts:
        return f"{KNOWLEDGE_BASE_HEADER}\n{NO_KNOWLEDGE_FOUND_MESSAGE}\n{NO_KNOWLEDGE_INSTRUCTION}"
    blocks = [_render_context(position, ctx) for position, ctx in enumerate(inputs.contexts, 1)]
    return f"{KNOWLEDGE_BASE_HEADER}\n" + "\n\n".join(blocks)


def _query(inputs: PromptInputs) -> str:
    return f"{USER_QUERY_HEADER}\n{wrap_user_text(inputs.query)}"


def _format_instructions(inputs: PromptInputs) -> str:
    return f"{OUTPUT_FORMAT_HEADER}\n{OUTPUT_FORMAT_INSTRUCTIONS}"


def _constraints(inputs: PromptInputs) -> str:
    return f"{CONSTRAINTS_HEADER}\n" + "\n".join(f"- {quality}" for quality in OUTPUT_QUALITIES)


def _guideline(inputs: PromptInputs) -> str:
    return "\n\n".join((f"{GUIDELINE_HEADER}\n{BEHAVIORAL_GUIDELINE_FACTUALNESS}", KNOWLEDGE_SCOPING_INSTRUCTION, SECURITY_DIRECTIVE))


# One builder per PromptSections field, in field order.
SECTION_BUILDERS: tuple[SectionBuilder, ...] = (_role, _task, _history, _context, _query, _format_instructions, _constraints, _guideline)

if len(SECTION_BUILDERS) != len(PromptSections._fields):
    raise RuntimeError("SECTION_BUILDERS must provide exactly one builder per prompt section.")


# ══════════════════════════════════════════════════════════════════════
#  ASSEMBLER
# ══════════════════════════════════════════════════════════════════════


class PromptAssembler:
    """
    Composes the section builders into the final prompt.

    Parameters
    ----------
    max_turns
        Q&A pairs of history to keep.  Defaults to
        ``settings.CHAT_HISTORY_MAX_TURNS``.
    sanitizer
        Optional custom ``Sanitizer``.  Defaults to ``PromptSanitizer``.
    """

    __slots__ = ("_max_turns", "_sanitizer")

    def __init__(self, max_turns: int | None = None, sanitizer: Sanitizer | None = None) -> None:
        self._max_turns = settings.CHAT_HISTORY_MAX_TURNS if max_turns is None else max_turns
        if self._max_turns < 0:
            raise ValidationError(f"max_turns must be >= 0, got {self._max_turns}")
        self._sanitizer = sanitizer or PromptSanitizer()


    @property
    def max_turns(self) -> int:
        return self._max_turns


    def prepare(self, history: Sequence[ConversationTurn], contexts: Sequence[Candidate], query: str) -> PromptInputs:
        """Truncate history, sanitize contexts and scrub user text."""
        turns = self._sanitizer.scrub_history(recent_turns(history, self._max_turns))

        outcome = self._sanitizer.sanitize(contexts)
        log_sanitization("PROMPT_ASSEMBLER_CONTEXTS", outcome.log)

        return PromptInputs(history=tuple(turns), contexts=tuple(outcome.sanitized), query=self._sanitizer.scrub_query(query))


    def build_sections(self, history: Sequence[ConversationTurn], contexts: Sequence[Candidate], query: str) -> PromptSections:
        inputs = self.prepare(history, contexts, query)
        return PromptSections._make(builder(inputs) for builder in SECTION_BUILDERS)


    def build_prompt(self, history: Sequence[ConversationTurn], contexts: Sequence[Candidate], query: str) -> str:
        """
        Build the final generation prompt.

        Parameters
        ----------
        history
            Full conversation so far, oldest first.
        contexts
            Knowledge-base records, most relevant first.  Truncation to
            the context budget is the caller's job.
        query
            The current user question.

        Returns
        -------
        str
            Every section in fixed order, separated by blank lines,
            ending with the response cue.
        """
        t_start = time.perf_counter()
        sections = self.build_sections(history, contexts, query)
        prompt = "\n\n".join(sections) + f"\n\n{RESPONSE_CUE}\n"

        elapsed_ms = (time.perf_counter() - t_start) * 1000
        logger.debug("Built %d chars (history=%d/%d msgs, contexts=%d) in %.1fms", len(prompt), min(len(history), self._max_turns * 2), len(history), len(contexts), elapsed_ms)
        return prompt
