"""
SwitchSage - Logging
=====================
Pre-configured logger factory for consistent, readable log output
across all SwitchSage modules.

Logging verbosity is driven by ``settings.ENV``:
  • ``"dev"``  → DEBUG level  (maximum detail)
  • ``"prod"`` → WARNING level (errors & warnings only)

Pipeline stages log through ``get_stage_logger`` so every line carries
its bracketed stage tag (``[FUSION]``, ``[RERANK]``, ``[PROMPT]``,
``[PROVIDER]``, ``[PIPELINE]``) and can be grepped per stage.

Usage:
    from switchsage.src.utils.logger import get_stage_logger
    logger = get_stage_logger(__name__, "fusion")
    logger.info("%d fused results", 12)   # → "[FUSION] 12 fused results"
"""

import logging
import sys

from switchsage.config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}


def default_level(env: str | None = None) -> int:
    """Logging level for an environment mode (``settings.ENV`` when omitted)."""
    return _ENV_LEVEL_MAP.get(env or settings.ENV, logging.INFO)


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Create and return a named logger writing to stdout.

    The handler is attached once per name; later calls return the same
    configured logger.  Records do not propagate to the root logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved_level = level if level is not None else default_level()
    logger.setLevel(resolved_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class StageLogger(logging.LoggerAdapter):
    """Prefixes every message with its pipeline stage tag."""

    def __init__(self, logger: logging.Logger, stage: str) -> None:
        super().__init__(logger, {"stage": stage.strip().upper()})

    @property
    def stage(self) -> str:
        return self.extra["stage"]

    def process(self, msg, kwargs):
        return f"[{self.stage}] {msg}", kwargs


def get_stage_logger(name: str, stage: str, level: int | None = None) -> StageLogger:
    """``get_logger`` wrapped so each line starts with ``[STAGE]``."""
    return StageLogger(get_logger(name, level), stage)
