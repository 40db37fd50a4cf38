from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    success = "success"
    error = "error"
    info = "info"


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    notification_type: NotificationType
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationPort(Protocol):
    def success(self, title: str, message: str = "") -> None: ...

    def error(self, title: str, message: str = "") -> None: ...

    def info(self, title: str, message: str = "") -> None: ...


class LogNotifier:
    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    def success(self, title: str, message: str = "") -> None:
        self.log.info("%s %s", title, message)

    def error(self, title: str, message: str = "") -> None:
        self.log.warning("%s %s", title, message)

    def info(self, title: str, message: str = "") -> None:
        self.log.info("%s %s", title, message)


class InMemoryNotifier:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def _push(self, title: str, message: str, notification_type: NotificationType) -> None:
        self.notifications.append(Notification(title=title, message=message, notification_type=notification_type))

    def success(self, title: str, message: str = "") -> None:
        self._push(title, message, NotificationType.success)

    def error(self, title: str, message: str = "") -> None:
        self._push(title, message, NotificationType.error)

    def info(self, title: str, message: str = "") -> None:
        self._push(title, message, NotificationType.info)

    def of_type(self, notification_type: NotificationType) -> list[Notification]:
        return [item for item in self.notifications if item.notification_type == notification_type]

    def drain(self) -> list[Notification]:
        drained, self.notifications = self.notifications, []
        return drained
