"""
SwitchSage - Prompt Preview Script
===================================
CLI entry point that runs the retrieval core over saved search results:
    1. Load a JSON request file (query, semantic/keyword rows, history).
    2. Select the LLM provider (or run offline).
    3. Run ``RetrievalPipeline.prepare``: fusion, re-rank, prompt assembly.
    4. Print the fused order, the re-ranked items, the prompt and a
       timing breakdown.  ``--answer`` also runs the final generation call.

Request file format::

    {
      "query": "quiet linear for the office?",
      "semantic": [{"id": "sw-1", "name": "Gateron Oil King", ...}, ...],
      "keyword":  [{"id": "sw-7", "name": "Cherry MX Silent Red", ...}, ...],
      "history":  [{"role": "user", "content": "..."}, ...]
    }

Flags:
    --query      Override the query stored in the request file.
    --provider   Use this backend instead of ``settings.LLM_PROVIDER``.
    --offline    Skip every model call; re-ranking uses its fallback.
    --answer     Also generate the final answer (requires a provider).

Usage:
    python -m switchsage.scripts.preview_prompt request.json
    python -m switchsage.scripts.preview_prompt request.json --offline
    python -m switchsage.scripts.preview_prompt request.json --provider claude --answer
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="preview_prompt", description="SwitchSage: run fusion, re-ranking and prompt assembly over saved search results.")
    parser.add_argument("request", type=Path, help="Path to a JSON request file.")
    parser.add_argument("--query", default=None, help="Override the query stored in the request file.")
    parser.add_argument("--provider", choices=("gemini", "claude"), default=None, help="LLM backend (default: settings.LLM_PROVIDER).")
    parser.add_argument("--offline", action="store_true", default=False, help="Skip model calls; re-ranking falls back to fused order.")
    parser.add_argument("--answer", action="store_true", default=False, help="Also run the final generation call.")
    args = parser.parse_args(argv)
    if args.offline and args.answer:
        parser.error("--answer cannot be combined with --offline.")
    return args


def load_request(path: Path) -> dict:
    """Read and minimally validate a request file."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Request file must contain a JSON object.")
    for key in ("semantic", "keyword", "history"):
        value = payload.setdefault(key, [])
        if not isinstance(value, list):
            raise ValueError(f"'{key}' must be a JSON array.")
    return payload


class OfflineProvider:
    """Provider that refuses every call, forcing the re-ranking fallback."""

    name = "offline"

    async def generate(self, prompt, gen_config=None, context=None, timeout_ms=None) -> str:
        from switchsage.src.core.errors import ProviderError

        raise ProviderError("Offline mode: model calls are disabled.", code="NOT_CONFIGURED", is_retryable=False, provider=self.name)


# ── Main Orchestration ─────────────────────────────────────────────────

async def _run(args: argparse.Namespace) -> int:
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from switchsage.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error: check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from switchsage.src.core.errors import SwitchSageError
    from switchsage.src.core.pipeline import RetrievalPipeline
    from switchsage.src.core.providers import ProviderSelector
    from switchsage.src.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Settings loaded in %.1fms", settings_ms)

    # ── 1. Load request file ───────────────────────────────────────────
    try:
        request = load_request(args.request)
    except (OSError, ValueError) as exc:
        logger.error("Cannot read request file %s: %s", args.request, exc)
        return 1

    query = args.query or str(request.get("query") or "")
    if not query.strip():
        logger.error("No query given (use --query or a 'query' field).")
        return 1

    # ── 2. Select provider ─────────────────────────────────────────────
    provider_name = "offline" if args.offline else (args.provider or settings.LLM_PROVIDER)
    _print_header(settings, args.request, provider_name, request)

    try:
        provider = OfflineProvider() if args.offline else ProviderSelector(settings).select(args.provider)
    except SwitchSageError as exc:
        logger.error("Provider selection failed: %s", exc)
        return 1

    # ── 3. Run the pipeline ────────────────────────────────────────────
    pipeline = RetrievalPipeline(provider, settings=settings)
    try:
        result = await pipeline.prepare(query, request["semantic"], request["keyword"], request["history"])
    except SwitchSageError as exc:
        logger.error("Pipeline failed [%s]: %s", exc.code, exc.message)
        return 1

    _print_fused(result.fused)
    _print_reranked(result.reranked)
    _print_prompt(result.prompt)

    # ── 4. Optional final answer ───────────────────────────────────────
    answer_ms = 0.0
    if args.answer:
        t_answer = time.perf_counter()
        try:
            answer = await provider.generate(result.prompt, timeout_ms=settings.API_TIMEOUT_MS)
        except SwitchSageError as exc:
            logger.error("Answer generation failed [%s]: %s", exc.code, exc.message)
            return 1
        answer_ms = (time.perf_counter() - t_answer) * 1000
        _print_section("ANSWER")
        print(answer)

    _print_footer(result.timings_ms, settings_ms, answer_ms, time.perf_counter() - t_start)
    return 0


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    sys.exit(asyncio.run(_run(args)))


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object, path: Path, provider_name: str, request: dict) -> None:
    print()
    print("=" * 60)
    print("  SWITCHSAGE: Retrieval Prompt Preview")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                # type: ignore[attr-defined]
    print(f"  Request file : {path}")
    print(f"  Provider     : {provider_name}")
    print(f"  Semantic rows: {len(request['semantic'])}")
    print(f"  Keyword rows : {len(request['keyword'])}")
    print(f"  History msgs : {len(request['history'])}")
    print(f"  RRF k / top N: {settings.RRF_K} / {settings.TOP_N}")  # type: ignore[attr-defined]
    print(f"  Re-rank top N: {settings.RE_RANK_TOP_N}")      # type: ignore[attr-defined]
    print("=" * 60)
    print()


def _print_section(title: str) -> None:
    print()
    print("-" * 60)
    print(f"  {title}")
    print("-" * 60)


def _print_fused(fused) -> None:
    _print_section(f"FUSED ORDER ({len(fused)})")
    for position, item in enumerate(fused, 1):
        semantic = f"#{item.semantic_rank}" if item.semantic_rank else "-"
        keyword = f"#{item.keyword_rank}" if item.keyword_rank else "-"
        print(f"  {position:>2}. {item.candidate.name:<32} RRF={item.fusion_score:.6f}  semantic={semantic:<4} keyword={keyword}")


def _print_reranked(reranked) -> None:
    _print_section(f"RE-RANKED ({len(reranked)})")
    for position, item in enumerate(reranked, 1):
        print(f"  {position:>2}. {item.item_id:<32} score={item.relevance_score:.2f}  {item.justification}")


def _print_prompt(prompt: str) -> None:
    _print_section(f"PROMPT ({len(prompt)} chars)")
    print(prompt)


def _print_footer(timings_ms: dict[str, float], settings_ms: float, answer_ms: float, elapsed: float) -> None:
    print()
    print("=" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Fusion               : {timings_ms.get('fusion', 0.0):>8.1f}ms")
    print(f"  Re-rank              : {timings_ms.get('rerank', 0.0):>8.1f}ms")
    print(f"  Prompt assembly      : {timings_ms.get('prompt', 0.0):>8.1f}ms")
    print(f"  Answer generation    : {answer_ms:>8.1f}ms")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
