import logging
import os
from logging.config import dictConfig
from typing import Any, Dict, Optional

from .gateway import mask_credential

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
QUIET_LOGGERS = ("httpx", "httpcore")


class CredentialRedactionFilter(logging.Filter):
    """Replace the raw Nuclia token with its masked form in every record."""

    def __init__(self, secret: Optional[str] = None) -> None:
        super().__init__()
        parts = (secret or "").split()
        self._secret = parts[-1] if parts else ""
        self._masked = mask_credential(self._secret) if self._secret else ""

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secret:
            return True
        message = record.getMessage()
        if self._secret in message:
            record.msg = message.replace(self._secret, self._masked)
            record.args = None
        return True


def _logger_levels(debug_http: bool) -> Dict[str, Dict[str, Any]]:
    http_level = "DEBUG" if debug_http else "WARNING"
    levels: Dict[str, Dict[str, Any]] = {name: {"level": http_level} for name in QUIET_LOGGERS}
    levels["kb_sync.gateway"] = {"level": "DEBUG" if debug_http else "NOTSET"}
    return levels


def configure_logging() -> None:
    """Configure process logging for the sync worker.

    ``KB_SYNC_LOG_LEVEL`` sets the root level. ``KB_SYNC_DEBUG_HTTP=1`` traces
    every outbound request (credential masked); otherwise the per-request
    INFO lines from httpx are suppressed.
    """
    level = os.getenv("KB_SYNC_LOG_LEVEL", "INFO").upper()
    debug_http = os.getenv("KB_SYNC_DEBUG_HTTP", "0") == "1"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact_credentials": {
                    "()": CredentialRedactionFilter,
                    "secret": os.getenv("NUCLIA_API_KEY"),
                },
            },
            "formatters": {
                "default": {
                    "format": os.getenv("KB_SYNC_LOG_FORMAT", DEFAULT_LOG_FORMAT),
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["redact_credentials"],
                },
            },
            "loggers": _logger_levels(debug_http),
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )
