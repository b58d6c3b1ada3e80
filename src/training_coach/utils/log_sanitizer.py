"""Redact OAuth tokens and secrets from log records.

Token endpoints and provider error bodies echo what was sent to them, and
the request engine logs those bodies on failure. The filter rewrites each
record before any handler formats it.

Usage:
    from training_coach.utils.log_sanitizer import install_log_sanitizer

    install_log_sanitizer()
"""

import logging
import re
from typing import Any, List, Tuple


# Form, JSON, dict-repr and KEY=VALUE assignments of these fields
SECRET_FIELDS = ("access_token", "refresh_token", "client_secret", "api_key")

_FIELD_VALUE = r"""(%s["']?\s*[:=]\s*["']?)[^"'&\s,}]+"""


def _build_patterns() -> List[Tuple[re.Pattern, str]]:
    patterns = [
        (re.compile(r"\bsk-(?:proj-)?[A-Za-z0-9_-]{20,}"), "[REDACTED_OPENAI_KEY]"),
        # JWTs before bearer tokens, Google id tokens are JWTs
        (re.compile(r"\beyJ[\w-]+\.eyJ[\w-]+\.[\w-]+"), "[REDACTED_JWT]"),
        (re.compile(r"Bearer\s+[\w\-.~+/]+=*", re.IGNORECASE), "Bearer [REDACTED_TOKEN]"),
    ]
    patterns += [
        (re.compile(_FIELD_VALUE % name, re.IGNORECASE), r"\1[REDACTED]")
        for name in SECRET_FIELDS
    ]
    patterns += [
        # authorization codes on the OAuth callback
        (re.compile(r"""(\bcode["']?\s*[:=]\s*["']?)[\w/.-]{20,}""", re.IGNORECASE), r"\1[REDACTED]"),
        # calendar ids are usually email addresses
        (re.compile(r"\b[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}\b"), "[REDACTED_EMAIL]"),
        # Strava access and refresh tokens are 40 hex chars
        (re.compile(r"\b[a-fA-F0-9]{32,}\b"), "[REDACTED_HEX_TOKEN]"),
    ]
    return patterns


class LogSanitizationFilter(logging.Filter):
    """Logging filter that rewrites secrets in the message and its args."""

    PATTERNS = _build_patterns()

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = self._sanitize(str(record.msg))
        if record.args:
            record.args = self._sanitize_args(record.args)
        return True

    def _sanitize(self, text: str) -> str:
        """
        Apply every redaction pattern to a string.

        Args:
            text: Message or argument text

        Returns:
            Text with secrets replaced by ``[REDACTED...]`` markers
        """
        for pattern, replacement in self.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def _sanitize_args(self, args: Any) -> Any:
        """
        Sanitize log arguments, recursing into tuples, lists and dicts.

        Args:
            args: ``record.args`` or one element of it

        Returns:
            Arguments of the same shape with string values redacted
        """
        if isinstance(args, str):
            return self._sanitize(args)
        if isinstance(args, (tuple, list)):
            return type(args)(self._sanitize_args(arg) for arg in args)
        if isinstance(args, dict):
            return {key: self._sanitize_args(value) for key, value in args.items()}
        # numbers and other objects keep their type unless their text leaks
        text = str(args)
        cleaned = self._sanitize(text)
        return args if cleaned == text else cleaned


def install_log_sanitizer(logger_name: str | None = None) -> None:
    """
    Attach the filter to ``logger_name``, or to the root logger and its handlers.

    Logger filters only see records logged on that logger itself; records
    propagated from ``training_coach.*`` children are caught by the root
    handlers.
    """
    sanitizer = LogSanitizationFilter()
    if logger_name:
        logging.getLogger(logger_name).addFilter(sanitizer)
        return
    root = logging.getLogger()
    root.addFilter(sanitizer)
    for handler in root.handlers:
        handler.addFilter(sanitizer)


def sanitize_string(text: str) -> str:
    """Redact ``text`` outside of logging, e.g. before printing an error body."""
    return LogSanitizationFilter()._sanitize(text)
