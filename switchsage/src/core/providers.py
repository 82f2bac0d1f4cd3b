"""
SwitchSage - LLM Providers
===========================
A uniform, timeout-bounded text-generation capability over
interchangeable chat-model backends.

Architecture
------------
``LLMProvider``
    Protocol every backend satisfies::

        await provider.generate(prompt, gen_config, context, timeout_ms) -> str

    Failure (transport error, timeout, empty output) raises
    ``ProviderError``; the caller decides whether to fall back.

``GeminiProvider`` / ``ClaudeProvider``
    Thin adapters over LangChain chat models
    (``ChatGoogleGenerativeAI`` / ``ChatAnthropic``).  One chat model is
    built per distinct generation config and cached, so a low-temperature
    re-ranking call and the default answer call never share state.

``ProviderSelector``
    Chooses a backend from one configuration value
    (``settings.LLM_PROVIDER``), memoizes the instance, and supports
    explicit reconstruction via ``rebuild()``.  Construct it once at
    startup and inject the selected provider; tests inject a fake.

Concurrency
-----------
Providers hold no per-request state.  The chat-model cache is filled
lazily; a racing first use at worst builds a duplicate client, which is
harmless.  Every call is wrapped in ``asyncio.wait_for`` so a slow
backend never stalls the event loop beyond its budget.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from switchsage.config.settings import Settings
from switchsage.config.settings import settings as default_settings
from switchsage.src.core.errors import ConfigurationError, ProviderError
from switchsage.src.core.models import GenerationConfig, GenerationContext
from switchsage.src.utils.logger import get_stage_logger

logger = get_stage_logger(__name__, "provider")

ProviderFactory = Callable[[Settings], "LLMProvider"]

# Backends already announced in this process.
_LOGGED_PROVIDERS: set[str] = set()
_LOG_LOCK = threading.Lock()


# ══════════════════════════════════════════════════════════════════════
#  PROVIDER PROTOCOL
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class LLMProvider(Protocol):
    """Anything that can turn a prompt into text within a time budget."""

    name: str

    async def generate(self, prompt: str, gen_config: GenerationConfig | None = None, context: GenerationContext | None = None, timeout_ms: int | None = None) -> str: ...


def _content_text(response: Any) -> str:
    """Extract plain text from a chat-model response (str or content blocks)."""
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts).strip()
    return str(content or "").strip()


# ══════════════════════════════════════════════════════════════════════
#  LANGCHAIN BACKENDS
# ══════════════════════════════════════════════════════════════════════


class LangChainProvider:
    """
    Shared ``generate`` implementation for LangChain chat-model backends.

    Subclasses implement ``_build_model`` and ``_api_key_name``.

    Parameters
    ----------
    settings
        Optional ``Settings`` instance.  Defaults to the module singleton.
    """

    name = "langchain"
    _api_key_name = ""

    __slots__ = ("_settings", "_models")

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or default_settings
        self._models: dict[GenerationConfig, Any] = {}


    def _api_key(self) -> str:
        secret = getattr(self._settings, self._api_key_name, None)
        if secret is None or not secret.get_secret_value():
            raise ConfigurationError(f"{self._api_key_name} is not configured; {self.name} provider cannot be used.")
        return secret.get_secret_value()


    def _build_model(self, config: GenerationConfig) -> Any:
        raise NotImplementedError


    def _resolve(self, gen_config: GenerationConfig | None) -> GenerationConfig:
        """Fill unset fields from the default answer configuration."""
        gen_config = gen_config or GenerationConfig()
        return GenerationConfig(
            temperature=gen_config.temperature if gen_config.temperature is not None else self._settings.LLM_TEMPERATURE,
            max_output_tokens=gen_config.max_output_tokens or self._settings.MAX_OUTPUT_TOKENS,
        )


    def chat_model(self, gen_config: GenerationConfig | None = None) -> Any:
        """Return (or build) the chat model for a generation config."""
        config = self._resolve(gen_config)
        model = self._models.get(config)
        if model is None:
            model = self._build_model(config)
            self._models[config] = model
            logger.info("%s chat model initialised (temperature=%.1f, max_output_tokens=%d)", self.name, config.temperature, config.max_output_tokens)
        return model


    async def generate(self, prompt: str, gen_config: GenerationConfig | None = None, context: GenerationContext | None = None, timeout_ms: int | None = None) -> str:
        """
        Send a single-shot prompt and return the generated text.

        Raises
        ------
        ConfigurationError
            If the backend's API key is missing.
        ProviderError
            On transport failure, timeout, or an empty response.
        """
        from langchain_core.messages import HumanMessage

        timeout_ms = timeout_ms or self._settings.API_TIMEOUT_MS
        intent = context.intent if context else None

        try:
            model = self.chat_model(gen_config)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("%s client construction failed (intent=%s): %s", self.name, intent, exc)
            raise ProviderError(f"{self.name} client could not be created: {exc}", is_retryable=False, provider=self.name) from exc

        try:
            response = await asyncio.wait_for(model.ainvoke([HumanMessage(content=prompt)]), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %dms (intent=%s).", self.name, timeout_ms, intent)
            raise ProviderError(f"{self.name} call timed out after {timeout_ms}ms", code="TIMEOUT", provider=self.name) from None
        except Exception as exc:
            logger.error("%s generation failed (intent=%s): %s", self.name, intent, exc)
            raise ProviderError(f"{self.name} call failed: {exc}", provider=self.name) from exc

        text = _content_text(response)
        if not text:
            logger.warning("%s returned empty text (intent=%s).", self.name, intent)
            raise ProviderError(f"{self.name} returned an empty response", code="EMPTY_RESPONSE", provider=self.name)
        return text


class GeminiProvider(LangChainProvider):
    """Google Gemini via ``langchain_google_genai``."""

    name = "gemini"
    _api_key_name = "GOOGLE_API_KEY"

    __slots__ = ()

    def _build_model(self, config: GenerationConfig) -> Any:
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(model=self._settings.GEMINI_MODEL, temperature=config.temperature, max_output_tokens=config.max_output_tokens, google_api_key=self._api_key())


class ClaudeProvider(LangChainProvider):
    """Anthropic Claude via ``langchain_anthropic``."""

    name = "claude"
    _api_key_name = "ANTHROPIC_API_KEY"

    __slots__ = ()

    def _build_model(self, config: GenerationConfig) -> Any:
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(model=self._settings.CLAUDE_MODEL, temperature=config.temperature, max_tokens=config.max_output_tokens, api_key=self._api_key())


# ══════════════════════════════════════════════════════════════════════
#  SELECTION
# ══════════════════════════════════════════════════════════════════════

DEFAULT_FACTORIES: dict[str, ProviderFactory] = {
    GeminiProvider.name: GeminiProvider,
    ClaudeProvider.name: ClaudeProvider,
}


def _announce(name: str) -> None:
    """Log the selected backend once per process."""
    with _LOG_LOCK:
        if name in _LOGGED_PROVIDERS:
            return
        _LOGGED_PROVIDERS.add(name)
    logger.info("Using %s as LLM provider.", name)


class ProviderSelector:
    """
    Resolves ``settings.LLM_PROVIDER`` (or an explicit name) to a memoized
    ``LLMProvider``.

    Parameters
    ----------
    settings
        Optional ``Settings`` instance.  Defaults to the module singleton.
    factories
        Optional name → factory mapping.  Defaults to the Gemini and
        Claude backends.
    """

    __slots__ = ("_settings", "_factories", "_instances")

    def __init__(self, settings: Settings | None = None, factories: Mapping[str, ProviderFactory] | None = None) -> None:
        self._settings = settings or default_settings
        self._factories = dict(factories or DEFAULT_FACTORIES)
        self._instances: dict[str, LLMProvider] = {}


    @property
    def available(self) -> tuple[str, ...]:
        return tuple(self._factories)


    def select(self, provider_name: str | None = None) -> LLMProvider:
        """
        Return the provider for *provider_name* (default: ``settings.LLM_PROVIDER``).

        Raises
        ------
        ConfigurationError
            If no backend is registered under that name.
        """
        name = (provider_name or self._settings.LLM_PROVIDER).strip().lower()
        provider = self._instances.get(name)
        if provider is not None:
            return provider

        factory = self._factories.get(name)
        if factory is None:
            raise ConfigurationError(f"Unknown LLM provider '{name}'. Expected one of: {', '.join(self._factories)}")

        provider = factory(self._settings)
        self._instances[name] = provider
        _announce(name)
        return provider


    def rebuild(self, provider_name: str | None = None) -> LLMProvider:
        """Discard the memoized provider and construct a fresh one."""
        name = (provider_name or self._settings.LLM_PROVIDER).strip().lower()
        self._instances.pop(name, None)
        logger.debug("Rebuilding provider '%s'.", name)
        return self.select(name)
