"""Operation outcomes reported at every pipeline boundary."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .events import EventBus, StatusChanged, StatusLevel, StatusScope

LOGGER = logging.getLogger(__name__)

__all__ = ["OperationStatus", "StatusReporter"]

_LOG_LEVELS = {
    "idle": logging.DEBUG,
    "running": logging.DEBUG,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(slots=True)
class OperationStatus:
    level: StatusLevel
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.level in ("idle", "running", "success")


class StatusReporter:
    """Logs a status and republishes it as :class:`StatusChanged`."""

    def __init__(self, scope: StatusScope, bus: EventBus | None = None) -> None:
        self._scope = scope
        self._bus = bus

    def report(
        self,
        document_id: str,
        level: StatusLevel,
        message: str = "",
        **details: Any,
    ) -> OperationStatus:
        status = OperationStatus(level=level, message=message, details=dict(details))
        LOGGER.log(_LOG_LEVELS[level], "[%s] %s: %s %s", self._scope, document_id, level, message)
        if self._bus is not None:
            self._bus.publish(
                StatusChanged(
                    scope=self._scope,
                    document_id=document_id,
                    level=level,
                    message=message,
                    details=dict(details),
                )
            )
        return status
