"""
SwitchSage - Centralized Configuration
=======================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` and ``ANTHROPIC_API_KEY`` are typed as ``SecretStr``.
  The raw values are never exposed in repr, logs, or tracebacks.
- Keys are optional at load time so the retrieval core can be imported
  (and tested) without credentials.  The selected provider checks for its
  key on first use and raises ``ConfigurationError`` when it is missing.

Provider Selection
------------------
``LLM_PROVIDER`` is the single value that decides which model backend
serves both the re-ranking call and the final generation call.

Timeouts
--------
All timeouts are expressed in milliseconds and applied with
``asyncio.wait_for`` around each external model call.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).

    Attributes
    ----------
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    LLM_PROVIDER : Literal["gemini", "claude"]
        Model backend used for re-ranking and generation.
    GOOGLE_API_KEY : SecretStr | None
        API key for Google AI Studio (Gemini).
    ANTHROPIC_API_KEY : SecretStr | None
        API key for Anthropic (Claude).
    GEMINI_MODEL, CLAUDE_MODEL : str
        Model identifiers passed to the LangChain chat models.
    LLM_TEMPERATURE, MAX_OUTPUT_TOKENS : float, int
        Default generation config for the final answer.
    API_TIMEOUT_MS : int
        Timeout for the final generation call.
    RRF_K : int
        Reciprocal Rank Fusion damping constant.
    TOP_N : int
        Fused candidates kept for re-ranking and prompting.
    RE_RANK_TOP_N : int
        Candidates actually shown to the re-ranking model.
    RERANK_TIMEOUT_MS, RERANK_TEMPERATURE, RERANK_MAX_OUTPUT_TOKENS
        Bounded, low-temperature config for the re-ranking call.
    CHAT_HISTORY_MAX_TURNS : int
        Number of recent Q&A pairs rendered into the prompt.
    CONTEXT_RESULTS_COUNT : int
        Knowledge-base entries rendered into the final prompt.
    MAX_CONTENT_LENGTH : int
        Per-field character cap applied by the sanitizer.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── Provider Selection ─────────────────────────────────────────────
    LLM_PROVIDER: Literal["gemini", "claude"] = "gemini"

    # ── API Keys (checked on first provider use) ───────────────────────
    GOOGLE_API_KEY: SecretStr | None = None
    ANTHROPIC_API_KEY: SecretStr | None = None

    # ── Model Configuration ────────────────────────────────────────────
    GEMINI_MODEL: str = "gemini-2.0-flash"
    CLAUDE_MODEL: str = "claude-3-5-haiku-20241022"
    LLM_TEMPERATURE: float = 0.6
    MAX_OUTPUT_TOKENS: int = 350
    API_TIMEOUT_MS: int = 30_000

    # ── Fusion ─────────────────────────────────────────────────────────
    RRF_K: int = 60
    TOP_N: int = 10

    # ── Re-ranking ─────────────────────────────────────────────────────
    RE_RANK_TOP_N: int = 10
    RERANK_TIMEOUT_MS: int = 15_000
    RERANK_TEMPERATURE: float = 0.1
    RERANK_MAX_OUTPUT_TOKENS: int = 2000

    # ── Prompt Budget ──────────────────────────────────────────────────
    CHAT_HISTORY_MAX_TURNS: int = 3
    CONTEXT_RESULTS_COUNT: int = 5
    MAX_CONTENT_LENGTH: int = 1000

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("RRF_K", "TOP_N", "RE_RANK_TOP_N", "MAX_OUTPUT_TOKENS", "RERANK_MAX_OUTPUT_TOKENS", "MAX_CONTENT_LENGTH")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be ≥ 1, got {v}")
        return v


    @field_validator("API_TIMEOUT_MS", "RERANK_TIMEOUT_MS")
    @classmethod
    def _timeout_range(cls, v: int) -> int:
        if not 100 <= v <= 300_000:
            raise ValueError(f"timeout must be 100–300000 ms, got {v}")
        return v


    @field_validator("CHAT_HISTORY_MAX_TURNS", "CONTEXT_RESULTS_COUNT")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"must be ≥ 0, got {v}")
        return v


    @field_validator("LLM_TEMPERATURE", "RERANK_TEMPERATURE")
    @classmethod
    def _temperature_range(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"temperature must be 0.0–2.0, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from switchsage.config.settings import settings
settings = Settings()
