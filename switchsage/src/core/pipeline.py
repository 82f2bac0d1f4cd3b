"""
SwitchSage - Retrieval Pipeline
================================
Request-scoped orchestration of the retrieval core.

Flow (``prepare``)
------------------
1. Fuse      → RRF over semantic + keyword results (``settings.RRF_K``).
2. Slice     → keep the best ``settings.TOP_N`` fused candidates, with
               ``similarity`` set to the fusion score.
3. Re-rank   → one model call over the first ``settings.RE_RANK_TOP_N``
               (deterministic fallback on any failure).
4. Reorder   → contexts follow the re-ranked order, ``similarity`` set to
               the relevance score, cut to ``settings.CONTEXT_RESULTS_COUNT``.
5. Assemble  → final prompt (``PromptAssembler``).

``answer`` runs ``prepare`` and then the final generation call
(``settings.API_TIMEOUT_MS``).  A ``ProviderError`` from that call
propagates; the host decides how to surface it.

Concurrency
-----------
The pipeline holds only its collaborators, so one instance can serve many
concurrent requests.  Stage order inside a request is strictly sequential.

Usage:
    from switchsage.src.core.pipeline import RetrievalPipeline
    from switchsage.src.core.providers import ProviderSelector

    pipeline = RetrievalPipeline(ProviderSelector().select())
    answer = await pipeline.answer("quiet linear for the office?", semantic_rows, keyword_rows)
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from switchsage.config.settings import Settings
from switchsage.config.settings import settings as default_settings
from switchsage.src.core.fusion import RankFusionEngine
from switchsage.src.core.models import Candidate, ConversationTurn, FusedCandidate, GenerationConfig, GenerationContext, RankedList, RerankedItem, SearchRecord, Source
from switchsage.src.core.prompt_assembler import PromptAssembler
from switchsage.src.core.providers import LLMProvider
from switchsage.src.core.rerank import RerankEngine
from switchsage.src.core.sanitizer import PromptSanitizer, Sanitizer
from switchsage.src.utils.logger import get_stage_logger

logger = get_stage_logger(__name__, "pipeline")

ANSWER_INTENT = "general_switch_info"

SearchResults = RankedList | Iterable[Candidate | SearchRecord]
HistoryInput = Iterable[ConversationTurn | SearchRecord]


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Everything ``prepare`` produced for one request."""

    prompt: str
    fused: tuple[FusedCandidate, ...]
    reranked: tuple[RerankedItem, ...]
    contexts: tuple[Candidate, ...]
    timings_ms: dict[str, float] = field(default_factory=dict)


def _ranked(source: Source, results: SearchResults) -> RankedList:
    if isinstance(results, RankedList):
        return results
    return RankedList.of(source, results)


def _turns(history: HistoryInput | None) -> list[ConversationTurn]:
    return [turn if isinstance(turn, ConversationTurn) else ConversationTurn.from_record(turn) for turn in history or ()]


def order_by_rerank(candidates: Sequence[Candidate], reranked: Sequence[RerankedItem], limit: int) -> list[Candidate]:
    """Candidates in re-ranked order, carrying their relevance score, at most *limit*."""
    by_key = {candidate.key: candidate for candidate in candidates}
    ordered = [by_key[item.item_id].with_similarity(item.relevance_score) for item in reranked if item.item_id in by_key]
    return ordered[:limit]


class RetrievalPipeline:
    """
    Fusion → re-rank → prompt assembly, with an optional final answer call.

    Parameters
    ----------
    provider
        ``LLMProvider`` for both the re-ranking and the answer call.
    sanitizer
        Optional custom ``Sanitizer`` shared by every stage.
    settings
        Optional ``Settings`` instance.  Defaults to the module singleton.
    """

    __slots__ = ("_provider", "_settings", "_sanitizer", "_fusion", "_reranker", "_assembler")

    def __init__(self, provider: LLMProvider, sanitizer: Sanitizer | None = None, settings: Settings | None = None) -> None:
        self._provider = provider
        self._settings = settings or default_settings
        self._sanitizer = sanitizer or PromptSanitizer(self._settings.MAX_CONTENT_LENGTH)
        self._fusion = RankFusionEngine(k=self._settings.RRF_K)
        self._reranker = RerankEngine(
            provider,
            sanitizer=self._sanitizer,
            timeout_ms=self._settings.RERANK_TIMEOUT_MS,
            gen_config=GenerationConfig(temperature=self._settings.RERANK_TEMPERATURE, max_output_tokens=self._settings.RERANK_MAX_OUTPUT_TOKENS),
        )
        self._assembler = PromptAssembler(max_turns=self._settings.CHAT_HISTORY_MAX_TURNS, sanitizer=self._sanitizer)


    async def prepare(self, query: str, semantic: SearchResults, keyword: SearchResults, history: HistoryInput | None = None) -> PipelineResult:
        """Run every stage up to (not including) the final generation call."""
        cfg = self._settings
        t_start = time.perf_counter()

        fused = self._fusion.fuse(_ranked("semantic", semantic), _ranked("keyword", keyword))
        candidates = [item.as_candidate() for item in fused[: cfg.TOP_N]]
        fusion_ms = (time.perf_counter() - t_start) * 1000

        t_rerank = time.perf_counter()
        reranked = await self._reranker.rerank(query, candidates, cfg.RE_RANK_TOP_N)
        rerank_ms = (time.perf_counter() - t_rerank) * 1000

        t_prompt = time.perf_counter()
        contexts = order_by_rerank(candidates, reranked, cfg.CONTEXT_RESULTS_COUNT)
        prompt = self._assembler.build_prompt(_turns(history), contexts, query)
        prompt_ms = (time.perf_counter() - t_prompt) * 1000

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("Prepared in %.1fms (fusion=%.1f, rerank=%.1f, prompt=%.1f): %d fused → %d candidates → %d contexts", total_ms, fusion_ms, rerank_ms, prompt_ms, len(fused), len(candidates), len(contexts))

        return PipelineResult(
            prompt=prompt,
            fused=tuple(fused),
            reranked=tuple(reranked),
            contexts=tuple(contexts),
            timings_ms={"fusion": fusion_ms, "rerank": rerank_ms, "prompt": prompt_ms, "total": total_ms},
        )


    async def answer(self, query: str, semantic: SearchResults, keyword: SearchResults, history: HistoryInput | None = None) -> str:
        """
        Prepare the prompt and generate the final answer.

        Raises
        ------
        ProviderError
            If the final generation call fails or times out.
        """
        cfg = self._settings
        result = await self.prepare(query, semantic, keyword, history)

        t_llm = time.perf_counter()
        text = await self._provider.generate(
            result.prompt,
            GenerationConfig(temperature=cfg.LLM_TEMPERATURE, max_output_tokens=cfg.MAX_OUTPUT_TOKENS),
            GenerationContext(intent=ANSWER_INTENT, query=self._sanitizer.scrub_query(query)),
            cfg.API_TIMEOUT_MS,
        )
        llm_ms = (time.perf_counter() - t_llm) * 1000
        logger.info("LLM response: %.1fms (%d chars)", llm_ms, len(text))
        return text
