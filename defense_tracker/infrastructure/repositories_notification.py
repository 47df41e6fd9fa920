# defense_tracker/infrastructure/repositories_notification.py
from __future__ import annotations

import builtins
from typing import Any

from .logging import log_database_operation as log_op
from .models import ActivityLogORM, NotificationORM
from .repositories_base import BaseRepository as GenericBaseRepository


class NotificationRepo(GenericBaseRepository[NotificationORM]):
    model = NotificationORM

    @log_op("notification.list_for_recipient")
    def list_for_recipient(
        self, recipient: str, unread_only: bool = False
    ) -> builtins.list[NotificationORM]:
        filters = [NotificationORM.recipient == recipient]
        if unread_only:
            filters.append(NotificationORM.read.is_(False))
        return self.list(*filters, order_by=[NotificationORM.created_at.desc(), NotificationORM.id.desc()])

    @log_op("notification.mark_read")
    def mark_read(self, notification_id: int) -> NotificationORM | None:
        notification = self.get(notification_id)
        if notification is None:
            return None
        return self.update(notification, read=True)


class ActivityLogRepo(GenericBaseRepository[ActivityLogORM]):
    model = ActivityLogORM

    @log_op("activity.record")
    def record(
        self,
        action: str,
        entity: str,
        entity_id: int | None = None,
        actor: str | None = None,
        role: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ActivityLogORM:
        return self.create(
            action=action,
            entity=entity,
            entity_id=entity_id,
            actor=actor,
            role=role,
            details=details,
        )

    @log_op("activity.list_for_entity")
    def list_for_entity(self, entity: str, entity_id: int) -> builtins.list[ActivityLogORM]:
        return self.list(
            ActivityLogORM.entity == entity,
            ActivityLogORM.entity_id == entity_id,
            order_by=[ActivityLogORM.timestamp, ActivityLogORM.id],
        )
