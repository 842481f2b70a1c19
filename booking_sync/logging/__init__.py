"""Structured logging configuration using structlog."""

import logging
import re
import sys

import structlog

# Credentials that can leak through request URLs, headers or error bodies:
# bearer headers, Google OAuth access/refresh tokens, Notion integration secrets
_SECRET_PATTERNS = (
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+"), r"\1<REDACTED>"),
    (re.compile(r"ya29\.[A-Za-z0-9._-]+"), "<GOOGLE_TOKEN_REDACTED>"),
    (re.compile(r"1//[A-Za-z0-9._-]{20,}"), "<GOOGLE_REFRESH_TOKEN_REDACTED>"),
    (re.compile(r"(secret_|ntn_)[A-Za-z0-9]{20,}"), "<NOTION_KEY_REDACTED>"),
    (re.compile(r"re_[A-Za-z0-9_]{20,}"), "<RESEND_KEY_REDACTED>"),
)


def redact(value: str) -> str:
    """Mask known credential formats in a string."""
    for pattern, replacement in _SECRET_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


class TokenRedactingFilter(logging.Filter):
    """Filter that redacts sensitive tokens from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact credentials from log message."""
        if record.msg and isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if record.args:
            record.args = tuple(
                redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True


def _redact_tokens(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    """Structlog processor to redact credentials from event dictionaries."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = redact(value)
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    token_filter = TokenRedactingFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, log_level.upper()))
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(token_filter)
    root_logger.addHandler(handler)

    for logger_name in ("httpx", "httpcore", "uvicorn", "uvicorn.access"):
        lib_logger = logging.getLogger(logger_name)
        lib_logger.addFilter(token_filter)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_tokens,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
