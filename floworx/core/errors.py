"""
Domain exceptions and logging helpers shared by the services.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional


class FloworxError(Exception):
    """Base class for errors raised by the rules backend."""


class UnknownConfigTypeError(FloworxError, KeyError):
    def __init__(self, config_type: str) -> None:
        super().__init__(config_type)
        self.config_type = config_type

    def __str__(self) -> str:
        return f"Unknown config type: {self.config_type}"


class _ErrorListMixin:
    errors: list[str]

    def _init_errors(self, errors: Iterable[str]) -> None:
        self.errors = list(errors)


class ConfigValidationError(FloworxError, ValueError, _ErrorListMixin):
    """Configuration rejected before any write took place."""

    def __init__(self, config_type: str, errors: Iterable[str]) -> None:
        self._init_errors(errors)
        self.config_type = config_type
        super().__init__(f"Invalid {config_type}: " + "; ".join(self.errors))


class RuleValidationError(FloworxError, ValueError, _ErrorListMixin):
    def __init__(self, errors: Iterable[str]) -> None:
        self._init_errors(errors)
        super().__init__("Invalid rule: " + "; ".join(self.errors))


class RuleNotFoundError(FloworxError, LookupError):
    def __init__(self, rule_id: int) -> None:
        super().__init__(f"Rule not found: {rule_id}")
        self.rule_id = rule_id


def log_exception(logger: logging.Logger, message: str, exc: Optional[BaseException] = None, **context) -> None:
    """Log `message` at ERROR with traceback and optional key=value context."""
    if context:
        details = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        message = f"{message} ({details})"
    if exc is not None:
        logger.error("%s: %s", message, exc, exc_info=exc)
    else:
        logger.exception(message)
