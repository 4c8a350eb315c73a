"""Logging setup and assessment session event logging."""

import logging
import sys
from typing import Any

from shifa.core.config import settings

# Record attributes copied into structured output when a log call sets them
CONTEXT_FIELDS = ("session_id", "profile", "action")

SESSION_LOGGER_NAME = "shifa.assessment"


class StructuredFormatter(logging.Formatter):
    """key=value formatter for non-dev environments.

    Session context passed through ``extra`` is appended after the message so
    every line about an assessment can be grepped by session id.
    """

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                fields[name] = value

        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return " ".join(f"{key}={value}" for key, value in fields.items())


def setup_logging(level: str | None = None) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Level name; defaults to ``settings.log_level``
    """
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if settings.is_dev:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    else:
        handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


class SessionEventLogger:
    """Records assessment lifecycle events (start, halt, completion, restart).

    Answers themselves are not logged; only transition metadata such as the
    resulting priority and the ruleset version that produced it.
    """

    def __init__(self, name: str = SESSION_LOGGER_NAME) -> None:
        self.logger = get_logger(name)

    def log(
        self,
        action: str,
        session_id: str,
        profile: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        details = " ".join(f"{key}={value}" for key, value in sorted((metadata or {}).items()))
        message = f"session {action}: {details}" if details else f"session {action}"
        self.logger.info(
            message,
            extra={"session_id": session_id, "profile": profile, "action": action},
        )


assessment_logger = SessionEventLogger()
