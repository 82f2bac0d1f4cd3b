"""Unit tests for the logging helpers."""

import logging
from uuid import uuid4

from switchsage.src.utils.logger import StageLogger, default_level, get_logger, get_stage_logger


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(logging.DEBUG)
        self.messages: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.messages.append(record.getMessage())


class TestGetLogger:
    """Tests for get_logger."""

    def test_configures_once(self) -> None:
        """Should attach a single handler and stop propagation."""
        name = f"switchsage.test.{uuid4().hex}"

        first = get_logger(name)
        second = get_logger(name)

        assert first is second
        assert len(first.handlers) == 1
        assert first.propagate is False

    def test_explicit_level(self) -> None:
        """Should honour an explicit level override."""
        logger = get_logger(f"switchsage.test.{uuid4().hex}", level=logging.ERROR)

        assert logger.level == logging.ERROR

    def test_env_levels(self) -> None:
        """Should map dev to DEBUG and prod to WARNING."""
        assert default_level("dev") == logging.DEBUG
        assert default_level("prod") == logging.WARNING


class TestStageLogger:
    """Tests for stage-tagged logging."""

    def test_prefixes_messages(self) -> None:
        """Should prefix every emitted line with the upper-cased stage tag."""
        logger = get_stage_logger(f"switchsage.test.{uuid4().hex}", " rerank ", level=logging.DEBUG)
        handler = _ListHandler()
        logger.logger.addHandler(handler)

        logger.info("%d/%d candidate(s) scored", 3, 5)
        logger.warning("using fallback ranking")

        assert isinstance(logger, StageLogger)
        assert logger.stage == "RERANK"
        assert handler.messages == ["[RERANK] 3/5 candidate(s) scored", "[RERANK] using fallback ranking"]
