# SPDX-License-Identifier: Apache-2.0

"""
Messaging service.

Stores point-to-point messages, pushes them to both participants' live
sessions and tracks delivery status.
"""

import logging
import os
from typing import List, Optional

from opentelemetry import trace

from ..domain import messages as message_domain
from ..domain.messages import ConversationSummary
from ..middleware.error_handler import NotFoundError, raise_for_result
from ..models.base import utcnow
from ..models.entities import Identity, Message
from ..models.enums import MessageStatus
from .hal import serialize
from .identity import IdentityService
from .mongodb import MongoDBService
from .notifications import NotificationService
from .push import LivePushHub

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "messages"


def _notify_on_message_default() -> bool:
    return os.getenv("NOTIFY_ON_MESSAGE", "false").lower() in ("1", "true", "yes")


class MessagingService:
    """Send messages, build conversations and advance delivery status."""

    def __init__(
        self,
        mongo_service: MongoDBService,
        identity_service: IdentityService,
        notification_service: NotificationService,
        push_hub: Optional[LivePushHub] = None,
        notify_on_message: Optional[bool] = None
    ):
        self.mongo_service = mongo_service
        self.identity_service = identity_service
        self.notification_service = notification_service
        self.push_hub = push_hub
        if notify_on_message is None:
            notify_on_message = _notify_on_message_default()
        self.notify_on_message = notify_on_message

    def _load(self, message_id: str) -> Message:
        message = Message.from_document(self.mongo_service.find_by_id(COLLECTION, message_id))
        if message is None:
            raise NotFoundError(f"Message {message_id} not found")
        return message

    def send_message(self, sender: Identity, receiver_id: str, content: Optional[str]) -> Message:
        """
        Persist a message and push it to sender and receiver.

        When a live session of the receiver accepts the push, the message
        is advanced to delivered right away.

        Raises:
            NotFoundError: Receiver does not exist
            ValidationError: Empty or oversized content, or a message to oneself
        """
        with tracer.start_as_current_span("messages.send") as span:
            span.set_attributes({"sender.id": sender.id, "receiver.id": receiver_id})

            receiver = self.identity_service.get_identity(receiver_id)
            result = raise_for_result(message_domain.compose_message(
                sender, receiver, content, notify_receiver=self.notify_on_message
            ))
            message = result.entity

            with self.mongo_service.transaction() as session:
                self.mongo_service.create(COLLECTION, message.to_document(), session=session)
                self.notification_service.persist(result.notifications, session=session)

            self.notification_service.push(result.notifications)

            if self.push_hub is not None:
                event = {"type": "new_message", "message": serialize(message)}
                reached_receiver = self.push_hub.deliver(receiver_id, event)
                self.push_hub.deliver(sender.id, event)

                if reached_receiver:
                    delivered = message.model_copy(deep=True)
                    delivered.mark_delivered()
                    if self.mongo_service.update_one(
                        COLLECTION,
                        message.id,
                        {"status": delivered.status, "deliveredAt": delivered.delivered_at},
                        guard={"status": MessageStatus.SENT.value}
                    ):
                        message = delivered
                        self._push_status(message)

            span.set_attribute("message.id", message.id)
            logger.info("Message sent", extra={
                "message_id": message.id,
                "sender_id": sender.id,
                "receiver_id": receiver_id,
                "status": message.status
            })
            return message

    def get_conversation(self, viewer: Identity, counterpart_id: str) -> List[Message]:
        """Both directions between the viewer and a counterpart, oldest first."""
        self.identity_service.require_identity(counterpart_id)
        documents = self.mongo_service.find(
            COLLECTION,
            {"$or": [
                {"senderId": viewer.id, "receiverId": counterpart_id},
                {"senderId": counterpart_id, "receiverId": viewer.id}
            ]},
            sort=[("createdAt", 1), ("_id", 1)]
        )
        return message_domain.sort_conversation(Message.from_document(doc) for doc in documents)

    def list_user_messages(self, viewer: Identity) -> List[Message]:
        """Every message the viewer sent or received, newest first."""
        documents = self.mongo_service.find(
            COLLECTION,
            {"$or": [{"senderId": viewer.id}, {"receiverId": viewer.id}]},
            sort=[("createdAt", -1), ("_id", -1)]
        )
        return [Message.from_document(doc) for doc in documents]

    def list_conversations(self, viewer: Identity) -> List[ConversationSummary]:
        return message_domain.summarize_conversations(self.list_user_messages(viewer), viewer.id)

    def _advance(self, viewer: Identity, message_id: str, target: MessageStatus) -> Message:
        message = self._load(message_id)
        if target == MessageStatus.READ:
            result = raise_for_result(message_domain.mark_read(message, viewer.id))
        else:
            result = raise_for_result(message_domain.mark_delivered(message, viewer.id))
        if not result.changed:
            return message

        updated = result.entity
        applied = self.mongo_service.update_one(
            COLLECTION,
            message_id,
            {
                "status": updated.status,
                "deliveredAt": updated.delivered_at,
                "readAt": updated.read_at
            },
            guard={"status": message.status}
        )
        if not applied:
            # Status moved on concurrently; it only ever advances
            return self._load(message_id)

        self._push_status(updated)
        return updated

    def mark_delivered(self, viewer: Identity, message_id: str) -> Message:
        """Receiver acknowledges delivery; no-op once delivered or read."""
        with tracer.start_as_current_span("messages.mark_delivered") as span:
            span.set_attribute("message.id", message_id)
            return self._advance(viewer, message_id, MessageStatus.DELIVERED)

    def mark_read(self, viewer: Identity, message_id: str) -> Message:
        """Receiver reads the message; ``read_at`` is set once."""
        with tracer.start_as_current_span("messages.mark_read") as span:
            span.set_attribute("message.id", message_id)
            return self._advance(viewer, message_id, MessageStatus.READ)

    def _push_status(self, message: Message) -> None:
        if self.push_hub is not None:
            self.push_hub.deliver(message.sender_id, {
                "type": "message_status",
                "message": serialize(message)
            })

    def mark_conversation_read(self, viewer: Identity, counterpart_id: str) -> int:
        """Mark every unread message from the counterpart as read."""
        with tracer.start_as_current_span("messages.mark_conversation_read") as span:
            span.set_attributes({"identity.id": viewer.id, "counterpart.id": counterpart_id})

            base = {"senderId": counterpart_id, "receiverId": viewer.id}
            unread_ids = [
                doc["_id"] for doc in self.mongo_service.find(COLLECTION, {
                    **base,
                    "status": {"$in": [MessageStatus.SENT.value, MessageStatus.DELIVERED.value]}
                })
            ]
            if not unread_ids:
                return 0

            now = utcnow()
            scope = {**base, "_id": {"$in": unread_ids}}
            with self.mongo_service.transaction() as session:
                # Messages never acknowledged as delivered get both timestamps
                undelivered = self.mongo_service.update_many(
                    COLLECTION,
                    {**scope, "status": MessageStatus.SENT.value},
                    {"status": MessageStatus.READ.value, "deliveredAt": now, "readAt": now},
                    session=session
                )
                delivered = self.mongo_service.update_many(
                    COLLECTION,
                    {**scope, "status": MessageStatus.DELIVERED.value},
                    {"status": MessageStatus.READ.value, "readAt": now},
                    session=session
                )

            for doc in self.mongo_service.find(
                COLLECTION, {**scope, "status": MessageStatus.READ.value}, sort=[("createdAt", 1), ("_id", 1)]
            ):
                self._push_status(Message.from_document(doc))

            marked = undelivered + delivered
            span.set_attribute("messages.marked", marked)
            logger.info("Conversation marked read", extra={
                "identity_id": viewer.id,
                "counterpart_id": counterpart_id,
                "marked": marked
            })
            return marked
