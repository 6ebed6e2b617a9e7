"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for auth event and redirect audit logging

Usage:
    from sso_portal.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    log_auth_event(logger, "sign_in", outcome="success", user_id=user.id)
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Number of characters of a user id that may appear in logs
USER_ID_LOG_PREFIX = 8


def generate_correlation_id() -> str:
    """Generate a new correlation ID.

    Returns:
        UUID-based correlation ID string
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured fields.

        Args:
            record: Log record to format

        Returns:
            Formatted log string
        """
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Correlation ID prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def configure_logging(level: int = logging.INFO) -> None:
    """Install the structured formatter on the root handler.

    Safe to call more than once; an existing StructuredFormatter handler is reused.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler.formatter, StructuredFormatter):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def mask_user_id(user_id: str | None) -> str | None:
    """Truncate a user id for log output."""
    if not user_id:
        return None
    return user_id[:USER_ID_LOG_PREFIX] + "..."


def log_auth_event(
    logger: logging.Logger,
    event: str,
    *,
    outcome: str | None = None,
    user_id: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log an authentication event with structured context.

    Never pass tokens, passwords or full redirect URLs in ``extra``.

    Args:
        logger: Logger instance
        event: Event name (e.g., "sign_in", "handoff", "recovery_exchange")
        outcome: Result of the event (success, rejected, failed, skipped)
        user_id: Provider user id; truncated before logging
        error: Error message if the event failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"auth_event": event}

    if outcome:
        context["outcome"] = outcome
    if user_id:
        context["user_id"] = mask_user_id(user_id)
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Auth event: {event}"]
    for key, value in context.items():
        if key != "auth_event":
            msg_parts.append(f"{key}={value}")

    message = " | ".join(msg_parts)

    if error or outcome == "failed":
        logger.error(message, extra=context)
    elif outcome == "rejected":
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_redirect_rejected(
    logger: logging.Logger,
    entry_point: str,
    origin: str | None,
) -> None:
    """Audit-log a redirect candidate that failed the allow-list.

    Only the parsed origin is recorded, never the path or query string.

    Args:
        logger: Logger instance
        entry_point: Where the candidate arrived (login, register, callback, ...)
        origin: Normalized origin of the candidate, or None if it did not parse
    """
    log_auth_event(
        logger,
        "redirect_rejected",
        outcome="rejected",
        entry_point=entry_point,
        origin=origin or "unparseable",
    )
