# SPDX-License-Identifier: Apache-2.0

"""
Messaging domain logic.

Messages are immutable apart from their delivery status, which only moves
forward: sent -> delivered -> read. Conversations are derived from the
message log and never stored.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..models.entities import Identity, Message
from ..models.enums import MessageStatus, NotificationCategory
from .notifications import build_notification
from .results import ErrorKind, WorkflowResult, check


@dataclass
class ConversationSummary:
    """Most recent message and unread badge for one counterpart."""
    counterpart_id: str
    last_message: Message
    unread_count: int
    message_count: int


def compose_message(
    sender: Identity,
    receiver: Optional[Identity],
    content: Optional[str],
    notify_receiver: bool = False
) -> WorkflowResult:
    """
    Build a new message in the ``sent`` state.

    Args:
        sender: Sending identity
        receiver: Receiving identity, None when it does not exist
        content: Message body
        notify_receiver: Also emit a ``message`` notification to the receiver

    Returns:
        WorkflowResult with the new message
    """
    if receiver is None:
        validation = check(["Receiver not found"], ErrorKind.NOT_FOUND)
        return WorkflowResult.rejected(validation, "Message rejected")

    errors = []
    if not content or not content.strip():
        errors.append("content: Message content cannot be empty")
    elif len(content.strip()) > 5000:
        errors.append("content: Message content cannot exceed 5000 characters")
    if sender.id == receiver.id:
        errors.append("receiver_id: Cannot send a message to yourself")

    validation = check(errors, ErrorKind.VALIDATION)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Message rejected")

    message = Message(sender_id=sender.id, receiver_id=receiver.id, content=content)

    notifications = []
    if notify_receiver:
        notifications.append(build_notification(
            recipient_id=receiver.id,
            title="New Message",
            content=f"You have a new message from {sender.display_name}",
            category=NotificationCategory.MESSAGE,
            related_entity="message",
            related_id=message.id
        ))

    return WorkflowResult(success=True, entity=message, notifications=notifications)


def _receiver_transition(message: Message, actor_id: str, target: MessageStatus) -> WorkflowResult:
    if message.receiver_id != actor_id:
        validation = check(["Only the receiver can update message status"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Message status update rejected")

    updated = message.model_copy(deep=True)
    if target == MessageStatus.READ:
        changed = updated.mark_read()
    else:
        changed = updated.mark_delivered()

    if not changed:
        return WorkflowResult(success=True, entity=message, changed=False)
    return WorkflowResult(success=True, entity=updated)


def mark_delivered(message: Message, actor_id: str) -> WorkflowResult:
    """sent -> delivered; a no-op once delivered or read."""
    return _receiver_transition(message, actor_id, MessageStatus.DELIVERED)


def mark_read(message: Message, actor_id: str) -> WorkflowResult:
    """Move to read; ``read_at`` is set only on this transition."""
    return _receiver_transition(message, actor_id, MessageStatus.READ)


def sort_conversation(messages: Iterable[Message]) -> List[Message]:
    """Ascending by creation time, ties broken by id."""
    return sorted(messages, key=lambda m: (m.created_at, m.id))


def summarize_conversations(messages: Iterable[Message], identity_id: str) -> List[ConversationSummary]:
    """
    Group an identity's messages by counterpart.

    Each summary holds the most recent message and the number of unread
    messages received from that counterpart. Most recent conversation first.
    """
    summaries: Dict[str, ConversationSummary] = {}

    for message in sort_conversation(m for m in messages if m.involves(identity_id)):
        counterpart_id = message.counterpart_of(identity_id)
        summary = summaries.get(counterpart_id)
        if summary is None:
            summary = ConversationSummary(counterpart_id, message, 0, 0)
            summaries[counterpart_id] = summary

        summary.last_message = message
        summary.message_count += 1
        if message.receiver_id == identity_id and message.status != MessageStatus.READ:
            summary.unread_count += 1

    return sorted(
        summaries.values(),
        key=lambda s: (s.last_message.created_at, s.last_message.id),
        reverse=True
    )
