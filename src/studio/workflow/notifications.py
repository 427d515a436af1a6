"""User-visible notifications emitted by the workflow engine."""

from __future__ import annotations

from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    """Sink for messages the host surfaces to the operator (toasts, banners)."""

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LogNotifier:
    """Notifier that only writes to the log; used when no UI is attached."""

    def success(self, message: str) -> None:
        logger.info("notification", level="success", message=message)

    def error(self, message: str) -> None:
        logger.error("notification", level="error", message=message)
