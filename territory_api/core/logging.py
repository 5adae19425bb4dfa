from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union

# Request-scoped values shown on every log line
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(correlation_id)s|%(user_id)s] %(name)s: %(message)s"

# Third-party loggers that are chatty at INFO (one line per SMTP command or WMS call).
QUIET_LOGGERS = ("aiosmtplib", "httpx", "httpcore", "PIL", "multipart")


class LoggingContextFilter(logging.Filter):
    """Copy the request correlation id and signed-in user id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        record.user_id = user_id_var.get() or "anonymous"
        return True


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


# PUBLIC_INTERFACE
def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Install a single stdout handler on the root logger.

    `level` is a logging constant or a name such as "DEBUG"; unknown names
    fall back to INFO. Handlers installed earlier (uvicorn, basicConfig) are
    replaced so each record is written once.
    """
    resolved = _resolve_level(level)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(LoggingContextFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(resolved)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
