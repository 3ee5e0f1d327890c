# SPDX-License-Identifier: Apache-2.0

"""
Notification outbox service.

Workflow services persist the notifications returned by the domain inside
their own unit of work and call ``push`` once that unit has completed.
"""

import logging
from typing import Any, List, Optional

from opentelemetry import trace

from ..domain import notifications as notification_domain
from ..middleware.error_handler import NotFoundError, raise_for_result
from ..models.base import utcnow
from ..models.entities import Notification
from ..models.enums import NotificationCategory
from .hal import serialize
from .mongodb import MongoDBService
from .push import LivePushHub

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "notifications"


class NotificationService:
    """Append-only per-identity notification outbox."""

    def __init__(self, mongo_service: MongoDBService, push_hub: Optional[LivePushHub] = None):
        self.mongo_service = mongo_service
        self.push_hub = push_hub

    def persist(self, notifications: List[Notification], session: Any = None) -> int:
        """Write notifications as part of the caller's unit of work."""
        return self.mongo_service.create_many(
            COLLECTION, [n.to_document() for n in notifications], session=session
        )

    def push(self, notifications: List[Notification]) -> int:
        """Push committed notifications to their recipients' live sessions."""
        if self.push_hub is None:
            return 0

        reached = 0
        for notification in notifications:
            reached += self.push_hub.deliver(notification.recipient_id, {
                "type": "notification",
                "notification": serialize(notification)
            })
        return reached

    def create_notification(
        self,
        recipient_id: str,
        title: str,
        content: str,
        category: NotificationCategory,
        related_entity: Optional[str] = None,
        related_id: Optional[str] = None
    ) -> Notification:
        """Standalone sink: persist one notification and push it."""
        with tracer.start_as_current_span("notifications.create") as span:
            span.set_attributes({
                "notification.recipient_id": recipient_id,
                "notification.category": str(category)
            })

            notification = notification_domain.build_notification(
                recipient_id, title, content, category, related_entity, related_id
            )
            with self.mongo_service.transaction() as session:
                self.persist([notification], session=session)
            self.push([notification])

            logger.info("Notification created", extra={
                "notification_id": notification.id,
                "recipient_id": recipient_id,
                "category": notification.category
            })
            return notification

    def list_notifications(self, recipient_id: str, unread_only: bool = False) -> List[Notification]:
        """Recipient's notifications, newest first."""
        query = {"recipientId": recipient_id}
        if unread_only:
            query["read"] = False

        documents = self.mongo_service.find(
            COLLECTION, query, sort=[("createdAt", -1), ("_id", -1)]
        )
        return [Notification.from_document(doc) for doc in documents]

    def unread_count(self, recipient_id: str) -> int:
        return self.mongo_service.count(COLLECTION, {"recipientId": recipient_id, "read": False})

    def mark_notification_read(self, recipient_id: str, notification_id: str) -> Notification:
        """
        Flip a notification to read; a second call is a no-op.

        Raises:
            NotFoundError: Notification does not exist
            ForbiddenError: Caller is not the recipient
        """
        with tracer.start_as_current_span("notifications.mark_read") as span:
            span.set_attribute("notification.id", notification_id)

            notification = Notification.from_document(
                self.mongo_service.find_by_id(COLLECTION, notification_id)
            )
            if notification is None:
                raise NotFoundError(f"Notification {notification_id} not found")

            result = raise_for_result(
                notification_domain.mark_notification_read(notification, recipient_id)
            )
            if not result.changed:
                return notification

            updated = result.entity
            applied = self.mongo_service.update_one(
                COLLECTION,
                notification_id,
                {"read": True, "readAt": updated.read_at},
                guard={"read": False}
            )
            if not applied:
                # Marked read concurrently; return the stored state
                return Notification.from_document(self.mongo_service.find_by_id(COLLECTION, notification_id))

            span.set_attribute("notification.read", True)
            return updated

    def mark_all_read(self, recipient_id: str) -> int:
        """Mark every unread notification of the recipient as read."""
        return self.mongo_service.update_many(
            COLLECTION,
            {"recipientId": recipient_id, "read": False},
            {"read": True, "readAt": utcnow()}
        )
