"""
SwitchSage - LLM Re-Ranking
============================
Re-scores the top fused candidates with a single model call and falls
back to a deterministic ranking whenever the model cannot be trusted.

Flow
----
1. Keep the full candidate list for the fallback path; show the model
   only the first ``top_n``.
2. PII-scrub the query.
3. Format the shown candidates (``ContextFormatter``).
4. Render ``RERANK_PROMPT_TEMPLATE``.
5. One ``provider.generate`` call: low temperature, bounded output,
   ``settings.RERANK_TIMEOUT_MS``.
6. ``parse_rerank_response`` → ``ParsedItems`` | ``ParseFailure``.
   The first well-formed JSON array in the text wins; entries failing
   ``RerankedItem`` validation are discarded, never repaired.
7. Complete the ranking so every input candidate appears exactly once.

Any failure in steps 2-6 returns ``fallback_ranking(candidates)``: input
order, prior similarity (or 0.5) as the score, ``"fallback"`` as the
justification.  The only exceptions that escape ``rerank`` are a
negative ``top_n`` and task cancellation.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError

from switchsage.config.prompt_templates import RERANK_PROMPT_TEMPLATE
from switchsage.config.settings import settings
from switchsage.src.core.context_formatter import ContextFormatter
from switchsage.src.core.errors import SwitchSageError, ValidationError
from switchsage.src.core.models import FALLBACK_JUSTIFICATION, Candidate, GenerationConfig, GenerationContext, RerankedItem
from switchsage.src.core.providers import LLMProvider
from switchsage.src.core.sanitizer import PromptSanitizer, Sanitizer
from switchsage.src.utils.logger import get_stage_logger

logger = get_stage_logger(__name__, "rerank")

RERANK_INTENT = "rerank"
UNSCORED_SCORE = 0.0

_DECODER = json.JSONDecoder()


# ══════════════════════════════════════════════════════════════════════
#  PARSING
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ParsedItems:
    """At least one valid item was recovered from the model output."""

    items: tuple[RerankedItem, ...]
    discarded: int = 0


@dataclass(frozen=True, slots=True)
class ParseFailure:
    """Nothing usable was found in the model output."""

    reason: str


ParseResult = ParsedItems | ParseFailure


def extract_json_array(text: str) -> list | None:
    """
    Return the first well-formed JSON array embedded in *text*.

    Each ``[`` is tried as the start of an array, so surrounding prose,
    code fences and stray brackets are skipped.
    """
    start = text.find("[")
    while start != -1:
        try:
            value, _ = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(value, list):
                return value
        start = text.find("[", start + 1)
    return None


def parse_rerank_response(raw: str | None) -> ParseResult:
    """Parse and validate the model's answer without raising."""
    if not raw or not raw.strip():
        return ParseFailure("empty response")

    array = extract_json_array(raw)
    if array is None:
        return ParseFailure("no JSON array found")

    items: list[RerankedItem] = []
    for entry in array:
        if not isinstance(entry, dict):
            continue
        try:
            items.append(RerankedItem.model_validate(entry))
        except PydanticValidationError:
            continue

    discarded = len(array) - len(items)
    if not items:
        return ParseFailure(f"no valid items ({discarded} discarded)")
    if discarded:
        logger.debug("Discarded %d invalid item(s) from model output.", discarded)
    return ParsedItems(items=tuple(items), discarded=discarded)


# ══════════════════════════════════════════════════════════════════════
#  RANKING ASSEMBLY
# ══════════════════════════════════════════════════════════════════════


def _distinct(candidates: Iterable[Candidate]) -> list[Candidate]:
    seen: set[str] = set()
    unique: list[Candidate] = []
    for candidate in candidates:
        if candidate.key not in seen:
            seen.add(candidate.key)
            unique.append(candidate)
    return unique


def fallback_ranking(candidates: Sequence[Candidate]) -> list[RerankedItem]:
    """One neutral item per distinct candidate, in input order."""
    return [RerankedItem.fallback_for(candidate) for candidate in _distinct(candidates)]


def match_scored(items: Iterable[RerankedItem], shown: Sequence[Candidate]) -> dict[str, RerankedItem]:
    """
    Map shown candidate keys to the model's items for them.

    Ids are compared ignoring surrounding whitespace; unknown ids are
    dropped and the first duplicate wins.
    """
    shown_keys = {candidate.key.strip(): candidate.key for candidate in shown}

    scored: dict[str, RerankedItem] = {}
    for item in items:
        key = shown_keys.get(item.item_id)
        if key is None or key in scored:
            continue
        scored[key] = item if item.item_id == key else item.model_copy(update={"item_id": key})
    return scored


def complete_ranking(scored: Mapping[str, RerankedItem], candidates: Sequence[Candidate]) -> list[RerankedItem]:
    """Scored items best first, then every unscored candidate in input order at zero."""
    ranked = sorted(scored.values(), key=lambda i: i.relevance_score, reverse=True)
    ranked.extend(
        RerankedItem(item_id=candidate.key, relevance_score=UNSCORED_SCORE, justification=FALLBACK_JUSTIFICATION)
        for candidate in _distinct(candidates)
        if candidate.key not in scored
    )
    return ranked


# ══════════════════════════════════════════════════════════════════════
#  ENGINE
# ══════════════════════════════════════════════════════════════════════


class RerankEngine:
    """
    Model-driven re-ranking with deterministic fallback.

    Parameters
    ----------
    provider
        The ``LLMProvider`` used for the single scoring call.
    sanitizer
        Optional ``Sanitizer`` for the query and candidate fields.
        Defaults to ``PromptSanitizer``.
    formatter
        Optional ``ContextFormatter``.  Defaults to one sharing *sanitizer*.
    timeout_ms
        Model-call budget.  Defaults to ``settings.RERANK_TIMEOUT_MS``.
    gen_config
        Scoring-call generation config.  Defaults to
        ``settings.RERANK_TEMPERATURE`` and ``settings.RERANK_MAX_OUTPUT_TOKENS``.
    """

    __slots__ = ("_provider", "_sanitizer", "_formatter", "_timeout_ms", "_gen_config")

    def __init__(self, provider: LLMProvider, sanitizer: Sanitizer | None = None, formatter: ContextFormatter | None = None, timeout_ms: int | None = None, gen_config: GenerationConfig | None = None) -> None:
        self._provider = provider
        self._sanitizer = sanitizer or PromptSanitizer()
        self._formatter = formatter or ContextFormatter(self._sanitizer)
        self._timeout_ms = timeout_ms or settings.RERANK_TIMEOUT_MS
        self._gen_config = gen_config or GenerationConfig(temperature=settings.RERANK_TEMPERATURE, max_output_tokens=settings.RERANK_MAX_OUTPUT_TOKENS)


    async def rerank(self, query: str, candidates: Sequence[Candidate], top_n: int | None = None) -> list[RerankedItem]:
        """
        Re-rank *candidates* for *query*.

        Returns
        -------
        list[RerankedItem]
            Exactly one item per distinct input candidate key, ordered by
            ``relevance_score`` descending on the model path and by input
            order on the fallback path.

        Raises
        ------
        ValidationError
            If ``top_n`` is negative.
        """
        top_n = settings.RE_RANK_TOP_N if top_n is None else top_n
        if top_n < 0:
            raise ValidationError(f"top_n must be >= 0, got {top_n}")

        candidates = list(candidates)
        if not candidates:
            return []
        if top_n == 0:
            logger.info("top_n=0; keeping fused order for %d candidate(s).", len(candidates))
            return fallback_ranking(candidates)

        shown = candidates[:top_n]
        t_start = time.perf_counter()

        try:
            scrubbed = self._sanitizer.scrub_query(query)
            contexts = self._formatter.format(shown)
            prompt = RERANK_PROMPT_TEMPLATE.format(query=scrubbed, contexts=contexts.text, count=len(shown))
            raw = await self._provider.generate(prompt, self._gen_config, GenerationContext(intent=RERANK_INTENT, query=scrubbed), self._timeout_ms)
            parsed = parse_rerank_response(raw)
        except SwitchSageError as exc:
            logger.warning("Model call failed (%s: %s); using fallback ranking.", exc.code, exc.message)
            return fallback_ranking(candidates)
        except Exception:
            logger.exception("Unexpected failure; using fallback ranking.")
            return fallback_ranking(candidates)

        elapsed_ms = (time.perf_counter() - t_start) * 1000

        if isinstance(parsed, ParseFailure):
            logger.warning("Unusable model output (%s) after %.1fms; using fallback ranking.", parsed.reason, elapsed_ms)
            return fallback_ranking(candidates)

        scored = match_scored(parsed.items, shown)
        if not scored:
            logger.warning("No model item matched a shown candidate; using fallback ranking.")
            return fallback_ranking(candidates)

        ranked = complete_ranking(scored, candidates)
        logger.info("%d/%d candidate(s) scored by model (%d shown) in %.1fms", len(scored), len(ranked), len(shown), elapsed_ms)
        return ranked
