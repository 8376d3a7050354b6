"""Centralized logging configuration for the delivery pipeline."""

import json
import logging
import os
import threading
from datetime import datetime, timezone

REDACTED = "****"


class JSONFormatter(logging.Formatter):
    """JSON log formatter for log aggregator compatibility.

    Produces one JSON object per line (NDJSON) with fields:
    timestamp, level, logger, message, and optionally exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class SecretRedactionFilter(logging.Filter):
    """Replaces registered secret values in log messages with a placeholder.

    Secrets are registered while a credential scope is active and
    unregistered when it ends. Registration is reference counted so two
    scopes sharing a value do not unmask each other.
    """

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._secrets: dict[str, int] = {}

    def register(self, secret: str) -> None:
        if not secret:
            return
        with self._lock:
            self._secrets[secret] = self._secrets.get(secret, 0) + 1

    def unregister(self, secret: str) -> None:
        with self._lock:
            count = self._secrets.get(secret, 0)
            if count <= 1:
                self._secrets.pop(secret, None)
            else:
                self._secrets[secret] = count - 1

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._secrets)

    def redact(self, text: str) -> str:
        with self._lock:
            # Longest first so a secret containing another is fully masked
            secrets = sorted(self._secrets, key=len, reverse=True)
        for secret in secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.active_count:
            return True
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


# Shared by every handler configure_logging() installs
redactor = SecretRedactionFilter()


def configure_logging(level_override: str | None = None) -> None:
    """Configure logging based on environment variables.

    Args:
        level_override: If set, takes precedence over LOG_LEVEL env var.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
            Defaults to INFO.
        LOG_FORMAT: Output format. "json" for JSON lines,
            anything else for human-readable. Defaults to "text".
    """
    level_name = (level_override or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    log_format = os.getenv("LOG_FORMAT", "text").lower()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(redactor)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )

    root_logger.addHandler(handler)

    # Quiet down noisy third-party libraries
    for name in ("git", "googleapiclient", "google.auth", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
