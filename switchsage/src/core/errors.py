"""
SwitchSage - Error Taxonomy
============================
Exceptions raised by the retrieval core.

``ValidationError``
    Malformed caller input (e.g. negative ``k`` or ``top_n``).  A caller
    bug, never a runtime condition.
``ConfigurationError``
    Unknown provider name or a missing API key.
``ProviderError``
    Transport failure, timeout, or empty output from a model call.
    Absorbed inside ``RerankEngine``; propagates only from the final
    generation call.

Malformed model JSON is *not* an exception: the parse step returns a
``ParseFailure`` value instead (see ``switchsage.src.core.rerank``).
"""

from __future__ import annotations


class SwitchSageError(Exception):
    """
    Base class for all retrieval-core errors.

    Attributes:
        message: Human-readable error message.
        code: Machine-readable error code.
        is_retryable: Whether repeating the operation could succeed.
    """

    default_code = "SWITCHSAGE_ERROR"

    def __init__(self, message: str, code: str | None = None, is_retryable: bool = False) -> None:
        self.message = message
        self.code = code or self.default_code
        self.is_retryable = is_retryable
        super().__init__(message)


class ValidationError(SwitchSageError):
    """Caller contract violation."""

    default_code = "VALIDATION_ERROR"


class ConfigurationError(SwitchSageError):
    """Provider selection or credentials are misconfigured."""

    default_code = "NOT_CONFIGURED"


class ProviderError(SwitchSageError):
    """A model backend failed to produce text."""

    default_code = "PROVIDER_ERROR"

    def __init__(self, message: str, code: str | None = None, is_retryable: bool = True, provider: str | None = None) -> None:
        super().__init__(message, code=code, is_retryable=is_retryable)
        self.provider = provider
