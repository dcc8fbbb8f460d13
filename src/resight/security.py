"""Turning unexpected exceptions into text that is safe to speak to the user."""

import re

_PATH_RE = re.compile(r"(?:[A-Za-z]:)?[/\\][^\s'\"]+")
_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]+")
_LINE_RE = re.compile(r"line \d+")
_SECRET_RE = re.compile(r"(?i)(bearer\s+|api[_-]?key[=:\s]+|sk-)[A-Za-z0-9._-]+")


def scrub_error_text(error: BaseException, limit: int = 200) -> str:
    """Exception text with paths, addresses, line numbers and credentials removed."""
    text = str(error) or type(error).__name__
    text = _SECRET_RE.sub(r"\1[redacted]", text)
    text = _PATH_RE.sub("[path]", text)
    text = _ADDRESS_RE.sub("[address]", text)
    text = _LINE_RE.sub("[line]", text)
    return text[:limit]


def sanitize_error_message(error: BaseException) -> str:
    """Create a user-friendly message without exposing internal details.

    Args:
        error: The exception that occurred.

    Returns:
        One plain sentence describing what went wrong.
    """
    error_type = type(error).__name__
    error_str = scrub_error_text(error).lower()

    if "Configuration" in error_type or "ModelConfig" in error_type or "api key" in error_str:
        return "I'm not fully set up yet, so I can't do that. Please check the configuration."
    if "RateLimit" in error_type or "rate limit" in error_str:
        return "I'm getting too many requests right now. Please wait a moment and try again."
    if "Timeout" in error_type or "timed out" in error_str or "timeout" in error_str:
        return "That took too long, so I gave up. Please try again."
    if "Connection" in error_type or "Unavailable" in error_type or "connect" in error_str:
        return "I couldn't reach one of the services I need. Please try again in a moment."
    if "Validation" in error_type or "validation" in error_str:
        return "Something in that request didn't look right. Please try saying it another way."
    if "Permission" in error_type or "permission" in error_str:
        return "I don't have permission to do that."
    return "Something went wrong while I was working on that. Please try again."
