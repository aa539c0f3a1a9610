from __future__ import annotations

import enum
import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class NotificationKind(enum.StrEnum):
    """Logical events raised by request transitions."""

    SUBMITTED_REQUEST = "SubmittedRequest"
    APPROVED_REQUEST = "ApprovedRequest"
    REJECTED_REQUEST = "RejectedRequest"
    CANCELLED_REQUEST = "CancelledRequest"


@runtime_checkable
class NotificationEmitter(Protocol):
    """Interface for the notification boundary (email, push, chat...)."""

    async def emit(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        """Hand an event to the delivery system. Delivery is not awaited."""
        ...


class LoggingNotificationEmitter:
    """Default emitter that records events in the application log."""

    async def emit(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        logger.info("Notification %s: %s", kind, payload)


class InMemoryNotificationEmitter:
    """Emitter that keeps every event, for tests and local development."""

    def __init__(self) -> None:
        self.events: list[tuple[NotificationKind, dict[str, Any]]] = []

    async def emit(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        self.events.append((kind, payload))

    def kinds(self) -> list[NotificationKind]:
        return [kind for kind, _ in self.events]

    def clear(self) -> None:
        self.events.clear()


_emitter: NotificationEmitter = LoggingNotificationEmitter()


def get_notification_emitter() -> NotificationEmitter:
    """FastAPI dependency for the notification emitter."""
    return _emitter


def set_notification_emitter(emitter: NotificationEmitter) -> None:
    """Override the emitter (for testing or production wiring)."""
    global _emitter
    _emitter = emitter
