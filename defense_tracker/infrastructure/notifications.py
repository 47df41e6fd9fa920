"""
Notification delivery for progression events.

Delivery is fire-and-forget: a failing notifier is logged and never undoes
or blocks the approval or advancement that triggered it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from .logging import get_logger
from .repositories import NotificationRepo

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class Notification:
    recipient: str
    role: str
    message: str


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class DatabaseNotifier:
    """Stores notifications in the ``notifications`` table inside a SAVEPOINT."""

    def __init__(self, session: Session):
        self.s = session

    def notify(self, notification: Notification) -> None:
        with self.s.begin_nested():
            NotificationRepo(self.s).create(
                recipient=notification.recipient,
                role=notification.role,
                message=notification.message,
            )


class RecordingNotifier:
    """Keeps notifications in memory; used by tests and dry runs."""

    def __init__(self):
        self.sent: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.sent.append(notification)


def dispatch(notifier: Notifier | None, notifications: Iterable[Notification]) -> int:
    """Send each notification, logging failures. Returns how many were delivered."""
    if notifier is None:
        return 0
    delivered = 0
    for notification in notifications:
        try:
            notifier.notify(notification)
            delivered += 1
        except Exception:
            logger.exception(
                "Failed to notify %s (%s); continuing", notification.recipient, notification.role
            )
    return delivered
