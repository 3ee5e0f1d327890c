# SPDX-License-Identifier: Apache-2.0

"""
Profile approval workflow domain logic.

This module contains pure functions for profile submission, review and
re-opening. Status lives on the Identity; profiles only carry the
role-specific data.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from pydantic import ValidationError as PydanticValidationError

from ..models.entities import Identity, Profile, SeekerProfile, HostProfile
from ..models.enums import (
    UserRole, ProfileStatus, ReviewDecision, NotificationCategory
)
from ..models.requests import SeekerProfileRequest, HostProfileRequest
from .notifications import build_notification, fan_out
from .results import ErrorKind, ValidationResult, WorkflowResult, check


def format_pydantic_errors(error: PydanticValidationError) -> List[str]:
    """Flatten pydantic errors into 'field: message' strings."""
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{location}: {item.get('msg')}" if location else item.get("msg"))
    return messages


def parse_profile_payload(
    role: UserRole,
    payload: Dict[str, Any]
) -> Tuple[Optional[Dict[str, Any]], ValidationResult]:
    """
    Validate a profile payload against the variant for the given role.

    Returns:
        Tuple of (normalized field dict or None, ValidationResult)
    """
    request_model = SeekerProfileRequest if role == UserRole.SEEKER else HostProfileRequest
    try:
        parsed = request_model.model_validate(payload or {})
    except PydanticValidationError as e:
        return None, check(format_pydantic_errors(e), ErrorKind.VALIDATION)
    return parsed.model_dump(), check([], ErrorKind.VALIDATION)


def validate_submission(identity: Identity, existing_profile: Optional[Profile]) -> ValidationResult:
    """Check the caller may submit a first profile."""
    if not identity.is_participant():
        return check(["Only seekers and hosts can submit a profile"], ErrorKind.FORBIDDEN)

    if existing_profile is not None:
        return check(["A profile has already been submitted for this identity"],
                     ErrorKind.DUPLICATE_PROFILE)

    return check([], ErrorKind.VALIDATION)


def submit_profile(
    identity: Identity,
    existing_profile: Optional[Profile],
    payload: Dict[str, Any],
    administrator_ids: Sequence[str]
) -> WorkflowResult:
    """
    Create the identity's profile and notify the administrator pool.

    The identity's review status is not touched; it is already pending.

    Args:
        identity: Submitting identity
        existing_profile: Profile already stored for this identity, if any
        payload: Raw profile fields
        administrator_ids: Current administrator pool

    Returns:
        WorkflowResult with the new profile and the administrator notifications
    """
    validation = validate_submission(identity, existing_profile)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Profile submission rejected")

    fields, validation = parse_profile_payload(identity.role, payload)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Invalid profile data")

    model = SeekerProfile if identity.role == UserRole.SEEKER else HostProfile
    profile = model(identity_id=identity.id, **fields)

    label = "Seeker" if identity.role == UserRole.SEEKER else "Host"
    notifications = fan_out(
        administrator_ids,
        title=f"New {label} Profile",
        content=f"New {label.lower()} profile submitted by {identity.display_name}",
        category=NotificationCategory.APPROVAL,
        related_entity="identity",
        related_id=identity.id
    )

    return WorkflowResult(success=True, entity=profile, notifications=notifications)


def update_profile(
    identity: Identity,
    existing_profile: Optional[Profile],
    payload: Dict[str, Any]
) -> WorkflowResult:
    """Replace the owner's profile fields in place. Review status is unchanged."""
    if existing_profile is None:
        validation = check(["No profile has been submitted yet"], ErrorKind.NOT_FOUND)
        return WorkflowResult.rejected(validation, "Profile update rejected")

    if existing_profile.identity_id != identity.id:
        validation = check(["Profiles can only be updated by their owner"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Profile update rejected")

    fields, validation = parse_profile_payload(identity.role, payload)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Invalid profile data")

    updated = type(existing_profile).model_validate({**existing_profile.model_dump(), **fields})
    updated.update_timestamp()
    return WorkflowResult(success=True, entity=updated)


def can_view_profile(viewer: Identity, owner: Identity) -> bool:
    """Owners and administrators always; otherwise approved viewers see approved profiles."""
    if viewer.id == owner.id or viewer.is_administrator():
        return True
    return viewer.is_approved() and owner.is_approved()


def validate_review(
    admin: Identity,
    target: Identity,
    has_profile: bool
) -> ValidationResult:
    """Check an administrator may review the target right now."""
    if not admin.is_administrator():
        return check(["Administrator access required"], ErrorKind.FORBIDDEN)

    if not has_profile:
        return check(["Identity has not submitted a profile"], ErrorKind.INVALID_STATE)

    if not target.can_be_reviewed():
        return check(
            [f"Profile cannot be reviewed (current status: {target.profile_status})"],
            ErrorKind.INVALID_STATE
        )

    return check([], ErrorKind.VALIDATION)


def review_profile(
    admin: Identity,
    target: Identity,
    has_profile: bool,
    decision: ReviewDecision,
    note: Optional[str] = None
) -> WorkflowResult:
    """
    Approve or reject a pending profile.

    Args:
        admin: Reviewing identity
        target: Identity under review
        has_profile: Whether the target has a stored profile
        decision: approve or reject
        note: Optional reviewer note, included in the notification

    Returns:
        WorkflowResult with the updated identity and the target notification
    """
    validation = validate_review(admin, target, has_profile)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Profile review rejected")

    approved = decision == ReviewDecision.APPROVE
    status = ProfileStatus.APPROVED if approved else ProfileStatus.REJECTED

    updated = target.model_copy(deep=True)
    updated.review(admin.id, status, note)

    verb = "approved" if approved else "rejected"
    content = f"Your profile has been {verb} by the admin team."
    if note:
        content = f"{content} Note: {note}"

    notification = build_notification(
        recipient_id=target.id,
        title=f"Profile {verb.title()}",
        content=content,
        category=NotificationCategory.APPROVAL,
        related_entity="identity",
        related_id=target.id
    )

    return WorkflowResult(success=True, entity=updated, notifications=[notification])


def reopen_profile(
    admin: Identity,
    target: Identity,
    note: Optional[str] = None
) -> WorkflowResult:
    """Move an approved or rejected profile back to pending."""
    if not admin.is_administrator():
        validation = check(["Administrator access required"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Profile re-open rejected")

    if target.profile_status == ProfileStatus.PENDING:
        validation = check(["Profile is already pending review"], ErrorKind.INVALID_STATE)
        return WorkflowResult.rejected(validation, "Profile re-open rejected")

    updated = target.model_copy(deep=True)
    updated.reopen(admin.id, note)

    content = "Your profile has been returned to the review queue."
    if note:
        content = f"{content} Note: {note}"

    notification = build_notification(
        recipient_id=target.id,
        title="Profile Under Review",
        content=content,
        category=NotificationCategory.APPROVAL,
        related_entity="identity",
        related_id=target.id
    )
    return WorkflowResult(success=True, entity=updated, notifications=[notification])


def pending_review_queue(
    identities: Sequence[Identity],
    profiles_by_identity: Dict[str, Profile]
) -> List[Tuple[Identity, Profile]]:
    """Pending identities that have submitted a profile, oldest submission first."""
    queue = [
        (identity, profiles_by_identity[identity.id])
        for identity in identities
        if identity.profile_status == ProfileStatus.PENDING and identity.id in profiles_by_identity
    ]
    queue.sort(key=lambda pair: pair[1].created_at)
    return queue
