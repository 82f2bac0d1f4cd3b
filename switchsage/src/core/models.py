"""
SwitchSage - Pipeline Data Model
=================================
Typed, request-scoped containers that flow through the retrieval core.

``Candidate``
    One switch record returned by a search collaborator.
``RankedList``
    Best-first candidates tagged with the search that produced them.
``FusedCandidate``
    A candidate plus its per-source ranks and RRF score.
``RerankedItem``
    One validated entry of the re-ranking model's answer.  This is a
    pydantic model: the model's output is untrusted, so validation is
    part of the type.
``ConversationTurn``
    One chat message rendered into the prompt history.
``PromptSections``
    The fixed, ordered section tuple of the final prompt.

Nothing here is persisted; every instance lives for one pipeline call.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from switchsage.src.core.errors import ValidationError

# ── Type aliases ───────────────────────────────────────────────────────
Source = Literal["semantic", "keyword"]
Role = Literal["user", "assistant"]
SearchRecord = Mapping[str, Any]

FALLBACK_JUSTIFICATION = "fallback"
NEUTRAL_SCORE = 0.5


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ══════════════════════════════════════════════════════════════════════
#  CANDIDATES
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Candidate:
    """
    A switch record as returned by semantic or keyword search.

    ``id`` is the native identifier; when it is absent the display
    ``name`` doubles as the identity key (see ``key``).
    """

    name: str
    id: str | None = None
    manufacturer: str | None = None
    type: str | None = None
    spring: str | None = None
    actuation_force: float | None = None
    description: str | None = None
    similarity: float | None = None

    def __post_init__(self) -> None:
        if not (self.id or (self.name and self.name.strip())):
            raise ValidationError("Candidate needs a non-empty id or name.")

    @property
    def key(self) -> str:
        """Identity key: native id, falling back to the display name."""
        return self.id if self.id else self.name

    def with_similarity(self, similarity: float | None) -> Candidate:
        return replace(self, similarity=similarity)

    @classmethod
    def from_record(cls, record: SearchRecord) -> Candidate:
        """
        Build a candidate from a raw search row.

        Accepts both the camelCase shape emitted by the database layer
        (``actuationForce``, ``description_text``) and snake_case keys.
        """
        force = record.get("actuation_force", record.get("actuationForce"))
        description = record.get("description", record.get("description_text"))
        return cls(
            name=str(record.get("name") or ""),
            id=_optional_str(record.get("id")),
            manufacturer=_optional_str(record.get("manufacturer")),
            type=_optional_str(record.get("type")),
            spring=_optional_str(record.get("spring")),
            actuation_force=_optional_float(force),
            description=_optional_str(description),
            similarity=_optional_float(record.get("similarity")),
        )


@dataclass(frozen=True, slots=True)
class RankedList:
    """Best-first candidates tagged with their originating search."""

    source: Source
    items: tuple[Candidate, ...] = ()

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    @classmethod
    def of(cls, source: Source, rows: Iterable[Candidate | SearchRecord]) -> RankedList:
        """Build a ranked list from candidates or raw search rows."""
        items = tuple(row if isinstance(row, Candidate) else Candidate.from_record(row) for row in rows)
        return cls(source=source, items=items)


@dataclass(frozen=True, slots=True)
class FusedCandidate:
    """A candidate carrying its per-source ranks and combined RRF score."""

    candidate: Candidate
    fusion_score: float
    semantic_rank: int | None = None
    keyword_rank: int | None = None

    @property
    def key(self) -> str:
        return self.candidate.key

    def as_candidate(self) -> Candidate:
        """The underlying candidate with ``similarity`` set to the RRF score."""
        return self.candidate.with_similarity(self.fusion_score)


# ══════════════════════════════════════════════════════════════════════
#  RE-RANKING
# ══════════════════════════════════════════════════════════════════════


class RerankedItem(BaseModel):
    """
    One re-ranked candidate.

    Validation rejects, never repairs: a missing or blank id, a
    non-numeric score, a score outside [0, 1], or a blank justification
    all fail construction.  Integer ids are read as their decimal text.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    item_id: str = Field(min_length=1)
    relevance_score: float = Field(ge=0.0, le=1.0)
    justification: str = Field(min_length=1)

    @field_validator("item_id", "justification", mode="before")
    @classmethod
    def _non_blank_text(cls, v: Any, info: ValidationInfo) -> str:
        # models sometimes echo numeric ids unquoted
        if info.field_name == "item_id" and isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return v.strip()

    @field_validator("relevance_score", mode="before")
    @classmethod
    def _numeric_score(cls, v: Any) -> float:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("must be a number")
        return float(v)

    @classmethod
    def fallback_for(cls, candidate: Candidate) -> RerankedItem:
        """Neutral entry that preserves the candidate's prior similarity."""
        score = candidate.similarity
        if score is None or not 0.0 <= score <= 1.0:
            score = NEUTRAL_SCORE
        return cls(item_id=candidate.key, relevance_score=score, justification=FALLBACK_JUSTIFICATION)


# ══════════════════════════════════════════════════════════════════════
#  PROMPTING
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    """A single chat message."""

    role: Role
    content: str

    @classmethod
    def from_record(cls, record: SearchRecord) -> ConversationTurn:
        role = "user" if record.get("role") == "user" else "assistant"
        return cls(role=role, content=str(record.get("content") or ""))


class PromptSections(NamedTuple):
    """Rendered prompt sections, in their only permitted order."""

    role: str
    task: str
    history: str
    context: str
    query: str
    format_instructions: str
    constraints: str
    guideline: str


SECTION_ORDER: tuple[str, ...] = PromptSections._fields


@dataclass(frozen=True, slots=True)
class GenerationConfig:
    """Per-call generation overrides; ``None`` keeps the backend default."""

    temperature: float | None = None
    max_output_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class GenerationContext:
    """Request details attached to provider error logs."""

    intent: str | None = None
    query: str | None = None
