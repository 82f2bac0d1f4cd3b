"""Unit tests for LLM providers and provider selection."""

import asyncio
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from pydantic import SecretStr

from switchsage.config.settings import Settings
from switchsage.src.core import providers
from switchsage.src.core.errors import ConfigurationError, ProviderError
from switchsage.src.core.models import GenerationConfig, GenerationContext
from switchsage.src.core.providers import ClaudeProvider, GeminiProvider, LangChainProvider, LLMProvider, ProviderSelector


class _Reply:
    def __init__(self, content) -> None:
        self.content = content


class _FakeChatModel:
    def __init__(self, config: GenerationConfig, reply=None, error: Exception | None = None, delay: float = 0.0) -> None:
        self.config = config
        self.reply = reply
        self.error = error
        self.delay = delay
        self.messages = None

    async def ainvoke(self, messages):
        self.messages = messages
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return _Reply(self.reply)


class _ScriptedProvider(LangChainProvider):
    name = "scripted"

    def __init__(self, settings: Settings | None = None, **model_kwargs) -> None:
        super().__init__(settings)
        self.model_kwargs = model_kwargs
        self.built = 0

    def _build_model(self, config: GenerationConfig):
        self.built += 1
        return _FakeChatModel(config, **self.model_kwargs)


class TestLangChainProviderGenerate:
    """Tests for the shared generate implementation."""

    @pytest.mark.asyncio
    async def test_returns_stripped_text(self) -> None:
        """Should return the model's text content, stripped."""
        provider = _ScriptedProvider(reply="  Gateron Yellow is a budget linear.  ")

        text = await provider.generate("prompt")

        assert text == "Gateron Yellow is a budget linear."

    @pytest.mark.asyncio
    async def test_sends_single_human_message(self) -> None:
        """Should send the prompt as one human message."""
        provider = _ScriptedProvider(reply="ok")

        await provider.generate("the prompt")

        messages = provider.chat_model().messages
        assert len(messages) == 1
        assert messages[0].content == "the prompt"

    @pytest.mark.asyncio
    async def test_joins_content_blocks(self) -> None:
        """Should join text blocks of a structured response."""
        provider = _ScriptedProvider(reply=[{"type": "text", "text": "Hello "}, {"type": "tool_use", "id": "x"}, "world"])

        assert await provider.generate("prompt") == "Hello world"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_provider_error(self) -> None:
        """Should raise ProviderError(TIMEOUT) when the call exceeds its budget."""
        provider = _ScriptedProvider(reply="late", delay=1.0)

        with pytest.raises(ProviderError) as exc_info:
            await provider.generate("prompt", timeout_ms=10, context=GenerationContext(intent="rerank"))

        assert exc_info.value.code == "TIMEOUT"
        assert exc_info.value.provider == "scripted"

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_provider_error(self) -> None:
        """Should wrap backend exceptions in ProviderError."""
        boom = ConnectionError("connection reset")
        provider = _ScriptedProvider(error=boom)

        with pytest.raises(ProviderError) as exc_info:
            await provider.generate("prompt")

        assert exc_info.value.code == "PROVIDER_ERROR"
        assert exc_info.value.is_retryable is True
        assert exc_info.value.__cause__ is boom

    @pytest.mark.asyncio
    async def test_empty_response(self) -> None:
        """Should raise ProviderError(EMPTY_RESPONSE) for blank output."""
        provider = _ScriptedProvider(reply="   ")

        with pytest.raises(ProviderError) as exc_info:
            await provider.generate("prompt")

        assert exc_info.value.code == "EMPTY_RESPONSE"

    @pytest.mark.asyncio
    async def test_client_construction_error_maps_to_provider_error(self) -> None:
        """Should wrap a failure to build the chat model in ProviderError."""

        class _BrokenProvider(_ScriptedProvider):
            def _build_model(self, config: GenerationConfig):
                raise ValueError("unsupported model name")

        with pytest.raises(ProviderError) as exc_info:
            await _BrokenProvider().generate("prompt")

        assert exc_info.value.code == "PROVIDER_ERROR"
        assert exc_info.value.is_retryable is False
        assert isinstance(exc_info.value.__cause__, ValueError)


class TestLangChainProviderModels:
    """Tests for per-config chat model caching."""

    def test_one_model_per_config(self) -> None:
        """Should build one chat model per distinct generation config."""
        provider = _ScriptedProvider(reply="ok")
        rerank_config = GenerationConfig(temperature=0.1, max_output_tokens=2000)

        first = provider.chat_model(rerank_config)
        second = provider.chat_model(GenerationConfig(temperature=0.1, max_output_tokens=2000))
        default = provider.chat_model()

        assert first is second
        assert default is not first
        assert provider.built == 2

    def test_defaults_from_settings(self) -> None:
        """Should fill unset config fields from the answer defaults."""
        settings = Settings(LLM_TEMPERATURE=0.3, MAX_OUTPUT_TOKENS=123)
        provider = _ScriptedProvider(settings, reply="ok")

        model = provider.chat_model(GenerationConfig(temperature=0.0))

        assert model.config == GenerationConfig(temperature=0.0, max_output_tokens=123)
        assert provider.chat_model().config == GenerationConfig(temperature=0.3, max_output_tokens=123)


class TestConcreteProviders:
    """Tests for the Gemini and Claude adapters."""

    @pytest.mark.parametrize("provider_cls", [GeminiProvider, ClaudeProvider])
    def test_satisfy_protocol(self, provider_cls) -> None:
        """Should implement the LLMProvider protocol."""
        assert isinstance(provider_cls(Settings()), LLMProvider)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider_cls", [GeminiProvider, ClaudeProvider])
    async def test_missing_key_detected_on_first_use(self, provider_cls) -> None:
        """Should construct without a key and fail with NOT_CONFIGURED on use."""
        provider = provider_cls(Settings(GOOGLE_API_KEY=None, ANTHROPIC_API_KEY=None))

        with pytest.raises(ConfigurationError) as exc_info:
            await provider.generate("prompt")

        assert exc_info.value.code == "NOT_CONFIGURED"

    def test_gemini_builds_chat_model(self) -> None:
        """Should configure ChatGoogleGenerativeAI from settings and config."""
        settings = Settings(GOOGLE_API_KEY=SecretStr("test-key"), GEMINI_MODEL="gemini-2.0-flash")

        model = GeminiProvider(settings).chat_model(GenerationConfig(temperature=0.1, max_output_tokens=2000))

        assert type(model).__name__ == "ChatGoogleGenerativeAI"
        assert model.temperature == 0.1
        assert model.max_output_tokens == 2000

    def test_claude_builds_chat_model(self) -> None:
        """Should configure ChatAnthropic from settings and config."""
        settings = Settings(ANTHROPIC_API_KEY=SecretStr("test-key"), CLAUDE_MODEL="claude-3-5-haiku-20241022")

        model = ClaudeProvider(settings).chat_model(GenerationConfig(temperature=0.1, max_output_tokens=2000))

        assert type(model).__name__ == "ChatAnthropic"
        assert model.temperature == 0.1
        assert model.max_tokens == 2000


class TestProviderSelector:
    """Tests for ProviderSelector."""

    @staticmethod
    def _counting_factory(calls: list):
        def _factory(settings: Settings):
            provider = MagicMock(name=f"provider-{len(calls)}")
            calls.append(provider)
            return provider

        return _factory

    def test_select_is_memoized(self) -> None:
        """Should construct a provider once and reuse it."""
        calls: list = []
        selector = ProviderSelector(Settings(), factories={"fake": self._counting_factory(calls)})

        first = selector.select("fake")
        second = selector.select("fake")

        assert first is second
        assert len(calls) == 1

    def test_rebuild_constructs_fresh_instance(self) -> None:
        """Should replace the memoized provider on rebuild."""
        calls: list = []
        selector = ProviderSelector(Settings(), factories={"fake": self._counting_factory(calls)})

        first = selector.select("fake")
        rebuilt = selector.rebuild("fake")

        assert rebuilt is not first
        assert selector.select("fake") is rebuilt
        assert len(calls) == 2

    def test_defaults_to_configured_provider(self) -> None:
        """Should select settings.LLM_PROVIDER when no name is given."""
        selector = ProviderSelector(Settings(LLM_PROVIDER="claude"))

        assert isinstance(selector.select(), ClaudeProvider)
        assert isinstance(selector.select(" Gemini "), GeminiProvider)

    def test_unknown_provider(self) -> None:
        """Should raise ConfigurationError for an unregistered name."""
        selector = ProviderSelector(Settings())

        with pytest.raises(ConfigurationError) as exc_info:
            selector.select("openai")

        assert exc_info.value.code == "NOT_CONFIGURED"
        assert selector.available == ("gemini", "claude")

    def test_backend_logged_once_per_process(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should announce a backend once, however many selectors select it."""
        mock_logger = MagicMock()
        monkeypatch.setattr(providers, "logger", mock_logger)
        name = f"fake-{uuid4().hex}"
        factories = {name: lambda settings: MagicMock()}

        ProviderSelector(Settings(), factories=factories).select(name)
        ProviderSelector(Settings(), factories=factories).select(name)
        ProviderSelector(Settings(), factories=factories).rebuild(name)

        announcements = [call for call in mock_logger.info.call_args_list if "Using %s" in call.args[0]]
        assert len(announcements) == 1
        assert announcements[0].args[1] == name
