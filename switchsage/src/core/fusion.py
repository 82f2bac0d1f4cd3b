"""
SwitchSage - Reciprocal Rank Fusion
====================================
Merges the semantic (vector) and keyword (full-text) result lists into
one ranking.

Algorithm
---------
Each candidate scores ``Σ 1 / (rank + k)`` over the lists it appears in,
with 1-based ranks and ``k`` defaulting to 60.  A candidate found by both
searches accumulates both terms, so it always outranks a single-source
candidate holding the same rank.

Ordering is strictly by score, descending.  Python's sort is stable and
candidates are collected semantic-first, so ties keep first-seen order.

Identity
--------
Candidates are keyed by native id, falling back to the display name.
Two different records sharing a name and lacking ids therefore merge
into one fused entry.  When a key appears in both lists the semantic
record supplies the candidate data.  A key repeated inside one list
keeps its first (best) rank.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from switchsage.config.settings import settings
from switchsage.src.core.errors import ValidationError
from switchsage.src.core.models import Candidate, FusedCandidate, RankedList
from switchsage.src.utils.logger import get_stage_logger

logger = get_stage_logger(__name__, "fusion")

DEFAULT_RRF_K = 60


@dataclass(slots=True)
class _Entry:
    candidate: Candidate
    score: float = 0.0
    semantic_rank: int | None = None
    keyword_rank: int | None = None


def _ranks(results: Iterable[Candidate]) -> dict[str, tuple[int, Candidate]]:
    """Map each key to its first 1-based rank and record."""
    ranked: dict[str, tuple[int, Candidate]] = {}
    for rank, candidate in enumerate(results, 1):
        ranked.setdefault(candidate.key, (rank, candidate))
    return ranked


def _check_source(results: Iterable[Candidate], expected: str) -> None:
    if isinstance(results, RankedList) and results.source != expected:
        raise ValidationError(f"Expected a '{expected}' result list, got '{results.source}'.")


def fuse(semantic: Iterable[Candidate], keyword: Iterable[Candidate], k: float = DEFAULT_RRF_K) -> list[FusedCandidate]:
    """
    Fuse two best-first result lists with Reciprocal Rank Fusion.

    Parameters
    ----------
    semantic
        Vector-search results, best first.
    keyword
        Full-text-search results, best first.
    k
        RRF damping constant; must be positive.

    Returns
    -------
    list[FusedCandidate]
        The union of both lists, sorted by ``fusion_score`` descending.

    Raises
    ------
    ValidationError
        If ``k`` is not positive or a ``RankedList`` carries the wrong
        source tag.
    """
    if k <= 0:
        raise ValidationError(f"RRF k must be > 0, got {k}")
    _check_source(semantic, "semantic")
    _check_source(keyword, "keyword")

    semantic_ranks = _ranks(semantic)
    keyword_ranks = _ranks(keyword)

    entries: dict[str, _Entry] = {}

    for key, (rank, candidate) in semantic_ranks.items():
        entry = entries.setdefault(key, _Entry(candidate))
        entry.semantic_rank = rank
        entry.score += 1.0 / (rank + k)

    for key, (rank, candidate) in keyword_ranks.items():
        entry = entries.setdefault(key, _Entry(candidate))
        entry.keyword_rank = rank
        entry.score += 1.0 / (rank + k)

    fused = [
        FusedCandidate(candidate=e.candidate, fusion_score=e.score, semantic_rank=e.semantic_rank, keyword_rank=e.keyword_rank)
        for e in entries.values()
    ]
    fused.sort(key=lambda f: f.fusion_score, reverse=True)

    logger.info("RRF completed: %d semantic + %d keyword → %d fused (k=%s)", len(semantic_ranks), len(keyword_ranks), len(fused), k)
    return fused


def log_fusion_details(fused: list[FusedCandidate], top_n: int = 5) -> None:
    """Log the top fused entries with their per-source ranks (DEBUG)."""
    for position, item in enumerate(fused[:top_n], 1):
        semantic_info = f"semantic: #{item.semantic_rank}" if item.semantic_rank else "semantic: N/A"
        keyword_info = f"keyword: #{item.keyword_rank}" if item.keyword_rank else "keyword: N/A"
        logger.debug("%d. %s (RRF: %.6f) - %s, %s", position, item.candidate.name, item.fusion_score, semantic_info, keyword_info)


class RankFusionEngine:
    """
    Holds the configured RRF constant and fuses result lists with it.

    Parameters
    ----------
    k
        RRF damping constant.  Defaults to ``settings.RRF_K``.
    """

    __slots__ = ("_k",)

    def __init__(self, k: float | None = None) -> None:
        self._k = k if k is not None else settings.RRF_K
        if self._k <= 0:
            raise ValidationError(f"RRF k must be > 0, got {self._k}")


    @property
    def k(self) -> float:
        return self._k


    def fuse(self, semantic: Iterable[Candidate], keyword: Iterable[Candidate]) -> list[FusedCandidate]:
        fused = fuse(semantic, keyword, self._k)
        log_fusion_details(fused)
        return fused
