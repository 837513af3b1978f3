"""
CCManager logging utilities.

Provides configurable logging for HTTP traffic, git invocations and session
activity. Ensures API keys and bearer tokens never reach log output.
"""

import logging
import re
from typing import Any

# Create package loggers
_root_logger = logging.getLogger("ccmanager")
_http_logger = logging.getLogger("ccmanager.http")
_git_logger = logging.getLogger("ccmanager.git")

# Patterns for secrets that should be masked
_SENSITIVE_PATTERNS = [
    # Anthropic style API keys
    (re.compile(r"sk-ant-[A-Za-z0-9_\-]{8,}"), "[API_KEY_REDACTED]"),
    # GitHub personal access and app tokens
    (re.compile(r"\b(ghp|gho|ghu|ghs|ghr|github_pat)_[A-Za-z0-9_]{16,}"), "[TOKEN_REDACTED]"),
    # Bearer headers
    (re.compile(r"(Bearer\s+)[A-Za-z0-9_\-\.=]+", re.IGNORECASE), r"\1[REDACTED]"),
    # key/value pairs
    (re.compile(r"(secret|token|password|api_key|x-api-key)['\"]?\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE), r"\1: [REDACTED]"),
]

_SENSITIVE_KEYS = {"authorization", "x-api-key", "token", "api_key", "access_token", "secret", "password"}
# Catches e.g. "refresh_token" and "anthropic-api-key" but not "max_tokens"
_SENSITIVE_SUFFIXES = ("_token", "-token", "_key", "-key", "secret", "password")

# Characters of a token shown on each side when previewing
_TOKEN_PREVIEW_LENGTH = 4


def configure_logging(
    level: int = logging.INFO,
    http_level: int | None = None,
    git_level: int | None = None,
    handler: logging.Handler | None = None,
    format_string: str | None = None,
) -> None:
    """
    Configure CCManager logging.

    Args:
        level: Default log level for all package loggers (default: INFO)
        http_level: Log level for HTTP request/response logging (default: same as level)
        git_level: Log level for git command logging (default: same as level)
        handler: Custom handler to use (default: StreamHandler to stderr)
        format_string: Custom format string (default: includes timestamp, level, logger name)

    Example:
        ```python
        import logging
        from ccmanager.logging import configure_logging

        # Trace every request sent to the assistant and hosting APIs
        configure_logging(level=logging.INFO, http_level=logging.DEBUG)
        ```
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    formatter = logging.Formatter(format_string)

    if handler is None:
        handler = logging.StreamHandler()

    handler.setFormatter(formatter)

    _root_logger.setLevel(level)
    _root_logger.addHandler(handler)

    _http_logger.setLevel(http_level if http_level is not None else level)
    _git_logger.setLevel(git_level if git_level is not None else level)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a CCManager logger.

    Args:
        name: Logger name suffix (e.g., "http", "git"). If None, returns the package logger.
    """
    if name is None:
        return _root_logger
    return logging.getLogger(f"ccmanager.{name}")


def mask_sensitive_data(text: str) -> str:
    """Replace API keys, bearer tokens and similar secrets with placeholders."""
    result = text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def mask_token(token: str) -> str:
    """
    Shorten a credential for safe display.

    Returns:
        Masked token like "sk-a...9xQz", or a placeholder for short values
    """
    if len(token) <= _TOKEN_PREVIEW_LENGTH * 3:
        return "[REDACTED]"

    return f"{token[:_TOKEN_PREVIEW_LENGTH]}...{token[-_TOKEN_PREVIEW_LENGTH:]}"


def safe_log_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """
    Create a copy of a dictionary with sensitive values masked.

    Args:
        data: Dictionary that may contain sensitive values
        sensitive_keys: Keys to mask (default: authorization, x-api-key, token, ...)

    Returns:
        Dictionary with sensitive values replaced with "[REDACTED]"
    """
    if sensitive_keys is None:
        sensitive_keys = _SENSITIVE_KEYS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = key.lower()
        if key_lower in sensitive_keys or key_lower.endswith(_SENSITIVE_SUFFIXES):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = safe_log_dict(value, sensitive_keys)
        elif isinstance(value, list):
            result[key] = [
                safe_log_dict(item, sensitive_keys) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def log_http_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: dict[str, Any] | None = None,
) -> None:
    """Log an HTTP request at DEBUG level with secrets masked."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"{method} {url}"]

    if headers:
        log_parts.append(f"headers={safe_log_dict(headers)}")

    if body:
        log_parts.append(f"body={safe_log_dict(body)}")

    _http_logger.debug(mask_sensitive_data(" | ".join(log_parts)))


def log_http_response(
    status_code: int,
    url: str,
    body: dict[str, Any] | None = None,
    elapsed_ms: float | None = None,
) -> None:
    """Log an HTTP response at DEBUG level with secrets masked."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"Response {status_code} from {url}"]

    if elapsed_ms is not None:
        log_parts.append(f"elapsed={elapsed_ms:.2f}ms")

    if body:
        log_parts.append(f"body={safe_log_dict(body)}")

    _http_logger.debug(mask_sensitive_data(" | ".join(log_parts)))


def log_git_command(
    args: list[str],
    cwd: str | None,
    returncode: int,
) -> None:
    """Log a finished git invocation at DEBUG level."""
    if not _git_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"git {' '.join(args)}", f"exit={returncode}"]
    if cwd:
        log_parts.append(f"cwd={cwd}")

    _git_logger.debug(mask_sensitive_data(" | ".join(log_parts)))


__all__ = [
    "configure_logging",
    "get_logger",
    "mask_sensitive_data",
    "mask_token",
    "safe_log_dict",
    "log_http_request",
    "log_http_response",
    "log_git_command",
]
