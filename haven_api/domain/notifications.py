# SPDX-License-Identifier: Apache-2.0

"""
Notification outbox domain logic.

Notifications are never created directly by users. Workflow functions call
the builders below and return the records alongside the entity they mutated.
"""

from typing import Iterable, List, Optional

from ..models.entities import Notification
from ..models.enums import NotificationCategory
from .results import ErrorKind, WorkflowResult, check


def build_notification(
    recipient_id: str,
    title: str,
    content: str,
    category: NotificationCategory,
    related_entity: Optional[str] = None,
    related_id: Optional[str] = None
) -> Notification:
    """Build a single outbox record."""
    return Notification(
        recipient_id=recipient_id,
        title=title,
        content=content,
        category=category,
        related_entity=related_entity,
        related_id=related_id
    )


def fan_out(
    recipient_ids: Iterable[str],
    title: str,
    content: str,
    category: NotificationCategory,
    related_entity: Optional[str] = None,
    related_id: Optional[str] = None
) -> List[Notification]:
    """Build one notification per recipient, skipping duplicates."""
    seen = set()
    notifications = []
    for recipient_id in recipient_ids:
        if recipient_id in seen:
            continue
        seen.add(recipient_id)
        notifications.append(build_notification(
            recipient_id, title, content, category, related_entity, related_id
        ))
    return notifications


def mark_notification_read(notification: Notification, reader_id: str) -> WorkflowResult:
    """
    Flip a notification to read on behalf of its recipient.

    Args:
        notification: Stored notification
        reader_id: Identity asking to mark it

    Returns:
        WorkflowResult; ``changed`` is False when it was already read
    """
    validation = check(
        [] if notification.recipient_id == reader_id
        else ["Only the recipient can mark a notification as read"],
        ErrorKind.FORBIDDEN
    )
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Cannot mark notification as read")

    updated = notification.model_copy(deep=True)
    changed = updated.mark_read()
    return WorkflowResult(success=True, entity=updated, changed=changed)
