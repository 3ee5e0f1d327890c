# SPDX-License-Identifier: Apache-2.0

"""
Feedback domain logic.

Status moves pending -> in_progress -> resolved, or straight from pending
to resolved. Resolved is terminal.
"""

from typing import Optional

from ..models.base import utcnow
from ..models.entities import Feedback, Identity
from ..models.enums import FeedbackStatus, FeedbackType, NotificationCategory
from .notifications import build_notification
from .results import ErrorKind, ValidationResult, WorkflowResult, check


VALID_TRANSITIONS = {
    FeedbackStatus.PENDING: [FeedbackStatus.IN_PROGRESS, FeedbackStatus.RESOLVED],
    FeedbackStatus.IN_PROGRESS: [FeedbackStatus.RESOLVED],
    FeedbackStatus.RESOLVED: [],
}


def validate_status_transition(current: FeedbackStatus, new: FeedbackStatus) -> ValidationResult:
    """Check a feedback status transition against the allowed moves."""
    allowed = VALID_TRANSITIONS.get(FeedbackStatus(current), [])
    if FeedbackStatus(new) not in allowed:
        return check(
            [f"Invalid status transition from {current} to {new}"],
            ErrorKind.INVALID_STATE
        )
    return check([], ErrorKind.VALIDATION)


def submit_feedback(
    author: Identity,
    type: FeedbackType,
    subject: Optional[str],
    content: Optional[str]
) -> WorkflowResult:
    errors = []
    if not subject or not subject.strip():
        errors.append("subject: Subject is required")
    if not content or not content.strip():
        errors.append("content: Content is required")

    validation = check(errors, ErrorKind.VALIDATION)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Feedback rejected")

    feedback = Feedback(
        author_id=author.id,
        type=type,
        subject=subject.strip(),
        content=content.strip()
    )
    return WorkflowResult(success=True, entity=feedback)


def respond_to_feedback(
    feedback: Feedback,
    admin: Identity,
    status: FeedbackStatus,
    response: Optional[str] = None
) -> WorkflowResult:
    """
    Move feedback forward and notify its author.

    Args:
        feedback: Stored feedback
        admin: Responding administrator
        status: Target status
        response: Optional response text shown to the author

    Returns:
        WorkflowResult with the updated feedback and the author notification
    """
    if not admin.is_administrator():
        validation = check(["Administrator access required"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Feedback response rejected")

    validation = validate_status_transition(feedback.status, status)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Feedback response rejected")

    updated = feedback.model_copy(deep=True)
    updated.responded_by = admin.id
    if response:
        updated.admin_response = response
    if status == FeedbackStatus.RESOLVED:
        updated.resolved_at = utcnow()
    updated.status = status
    updated.update_timestamp()

    label = "resolved" if status == FeedbackStatus.RESOLVED else "being reviewed"
    content = f"Your feedback \"{feedback.subject}\" is {label}."
    if response:
        content = f"{content} Response: {response}"

    notification = build_notification(
        recipient_id=feedback.author_id,
        title="Feedback Update",
        content=content[:2000],
        category=NotificationCategory.SYSTEM,
        related_entity="feedback",
        related_id=feedback.id
    )

    return WorkflowResult(success=True, entity=updated, notifications=[notification])
