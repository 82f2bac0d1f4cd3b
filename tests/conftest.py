"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from switchsage.src.core.models import Candidate, GenerationConfig, GenerationContext


class FakeProvider:
    """Scripted ``LLMProvider``: replays responses (or raises) in call order."""

    name = "fake"

    def __init__(self, *responses: str | BaseException, delay: float = 0.0) -> None:
        self._responses = list(responses)
        self._delay = delay
        self.calls: list[dict[str, Any]] = []

    async def generate(self, prompt: str, gen_config: GenerationConfig | None = None, context: GenerationContext | None = None, timeout_ms: int | None = None) -> str:
        self.calls.append({"prompt": prompt, "gen_config": gen_config, "context": context, "timeout_ms": timeout_ms})
        if self._delay:
            await asyncio.sleep(self._delay)
        if not self._responses:
            raise AssertionError("FakeProvider ran out of scripted responses.")
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def fake_provider() -> Callable[..., FakeProvider]:
    """Factory for scripted providers.

    Returns:
        ``FakeProvider`` constructor.
    """
    return FakeProvider


@pytest.fixture
def make_candidate() -> Callable[..., Candidate]:
    """Factory for candidates with sensible defaults.

    Returns:
        Callable building a ``Candidate`` from an id and overrides.
    """

    def _make(key: str, **overrides: Any) -> Candidate:
        fields: dict[str, Any] = {"id": key, "name": f"Switch {key.upper()}", "manufacturer": "Gateron", "type": "Linear"}
        fields.update(overrides)
        return Candidate(**fields)

    return _make


@pytest.fixture
def candidates(make_candidate: Callable[..., Candidate]) -> Sequence[Candidate]:
    """Three candidates: with prior similarity, without, and low similarity."""
    return (
        make_candidate("a", similarity=0.9),
        make_candidate("b"),
        make_candidate("c", similarity=0.3),
    )
