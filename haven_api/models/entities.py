# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Haven platform.
"""

import re
from datetime import datetime
from typing import List, Literal, Optional, Dict, Any, Union
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from .base import BaseEntity, generate_object_id, utcnow
from .enums import (
    UserRole,
    ProfileStatus,
    ProfileKind,
    AccommodationType,
    StayDuration,
    MessageStatus,
    ContractStatus,
    NotificationCategory,
    FeedbackType,
    FeedbackStatus
)


class Identity(BaseEntity):
    """Platform participant with a role and a profile-review status."""

    id: str = Field(..., min_length=1, description="Authenticated subject identifier")
    email: Optional[str] = Field(None, description="Email address")
    first_name: Optional[str] = Field(None, max_length=100, description="First name")
    last_name: Optional[str] = Field(None, max_length=100, description="Last name")
    profile_image_url: Optional[str] = Field(None, description="Avatar URL")
    role: UserRole = Field(default=UserRole.SEEKER, description="Participant role")
    profile_status: ProfileStatus = Field(default=ProfileStatus.PENDING, description="Review status")
    role_selected_at: Optional[datetime] = Field(None, description="When the role was chosen")
    reviewed_at: Optional[datetime] = Field(None, description="Last review timestamp")
    reviewed_by: Optional[str] = Field(None, description="Administrator who last reviewed")
    review_note: Optional[str] = Field(None, max_length=1000, description="Reviewer note")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate and normalize email."""
        if v is None:
            return v
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, v.lower()):
            raise ValueError('Invalid email format')
        return v.lower()

    @property
    def display_name(self) -> str:
        """Human-readable name for notification text."""
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else "User"

    def is_administrator(self) -> bool:
        return self.role == UserRole.ADMINISTRATOR

    def is_participant(self) -> bool:
        """Seekers and hosts take part in profiles and contracts."""
        return self.role in (UserRole.SEEKER, UserRole.HOST)

    def is_approved(self) -> bool:
        return self.profile_status == ProfileStatus.APPROVED

    def can_be_reviewed(self) -> bool:
        """Only pending profiles are open for review."""
        return self.profile_status == ProfileStatus.PENDING

    def review(self, reviewer_id: str, status: ProfileStatus, note: Optional[str] = None) -> None:
        """Apply an administrator decision."""
        if not self.can_be_reviewed():
            raise ValueError('Profile cannot be reviewed in current state')
        if status == ProfileStatus.PENDING:
            raise ValueError('Review must approve or reject')

        self.reviewed_by = reviewer_id
        self.reviewed_at = utcnow()
        self.review_note = note
        self.profile_status = status
        self.update_timestamp()

    def reopen(self, reviewer_id: str, note: Optional[str] = None) -> None:
        """Return a reviewed profile to the pending queue."""
        if self.profile_status == ProfileStatus.PENDING:
            raise ValueError('Profile is already pending')

        self.reviewed_by = reviewer_id
        self.reviewed_at = utcnow()
        self.review_note = note
        self.profile_status = ProfileStatus.PENDING
        self.update_timestamp()


class ProfileBase(BaseEntity):
    """Fields shared by both profile variants."""

    identity_id: str = Field(..., min_length=1, description="Owning identity")
    phone_number: Optional[str] = Field(None, max_length=40, description="Contact phone")
    additional_info: Optional[str] = Field(None, max_length=2000, description="Free text")


class SeekerProfile(ProfileBase):
    """Housing need submitted by a seeker."""

    kind: Literal["seeker"] = Field(default="seeker", description="Profile variant")
    family_size: int = Field(..., ge=1, le=20, description="Number of people to house")
    estimated_stay: StayDuration = Field(..., description="Expected length of stay")
    medical_needs: Optional[str] = Field(None, max_length=2000, description="Medical needs")
    special_requirements: Optional[str] = Field(None, max_length=2000, description="Special requirements")
    languages: List[str] = Field(default_factory=list, description="Spoken languages")
    country_of_origin: Optional[str] = Field(None, max_length=100, description="Country of origin")
    emergency_contact: Optional[str] = Field(None, max_length=200, description="Emergency contact")


class HostProfile(ProfileBase):
    """Accommodation offered by a host."""

    kind: Literal["host"] = Field(default="host", description="Profile variant")
    accommodation_type: AccommodationType = Field(..., description="Accommodation type")
    max_occupants: int = Field(..., ge=1, le=50, description="Maximum occupants")
    availability_duration: StayDuration = Field(..., description="How long the place is available")
    location: str = Field(..., min_length=1, max_length=200, description="City or area")
    description: Optional[str] = Field(None, max_length=2000, description="Accommodation description")
    house_rules: Optional[str] = Field(None, max_length=2000, description="House rules")
    amenities: List[str] = Field(default_factory=list, description="Amenities")
    address: Optional[str] = Field(None, max_length=500, description="Street address")
    pet_friendly: bool = Field(default=False, description="Pets allowed")
    smoking_allowed: bool = Field(default=False, description="Smoking allowed")
    accessibility_features: Optional[str] = Field(None, max_length=1000, description="Accessibility")
    criminal_record_checked: bool = Field(default=False, description="Record check done")
    background_check_date: Optional[datetime] = Field(None, description="Background check date")

    @field_validator('location')
    @classmethod
    def validate_location(cls, v):
        """Validate location."""
        if not v.strip():
            raise ValueError('Location cannot be empty')
        return v.strip()


Profile = Union[SeekerProfile, HostProfile]

PROFILE_MODELS = {
    ProfileKind.SEEKER.value: SeekerProfile,
    ProfileKind.HOST.value: HostProfile,
}


def profile_from_document(document: Optional[Dict[str, Any]]) -> Optional[Profile]:
    """Build the matching profile variant from a stored document."""
    if document is None:
        return None
    model = PROFILE_MODELS.get(document.get("kind"))
    if model is None:
        raise ValueError(f"Unknown profile kind: {document.get('kind')}")
    return model.from_document(document)


class Message(BaseEntity):
    """Point-to-point message; only the status fields ever change."""

    sender_id: str = Field(..., min_length=1, description="Sender identity")
    receiver_id: str = Field(..., min_length=1, description="Receiver identity")
    content: str = Field(..., min_length=1, max_length=5000, description="Message body")
    status: MessageStatus = Field(default=MessageStatus.SENT, description="Delivery status")
    delivered_at: Optional[datetime] = Field(None, description="Delivery timestamp")
    read_at: Optional[datetime] = Field(None, description="Read timestamp")

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        """Validate message content."""
        if not v.strip():
            raise ValueError('Message content cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_participants(self):
        """A message needs two distinct participants."""
        if self.sender_id == self.receiver_id:
            raise ValueError('Sender and receiver must differ')
        return self

    def involves(self, identity_id: str) -> bool:
        return identity_id in (self.sender_id, self.receiver_id)

    def counterpart_of(self, identity_id: str) -> str:
        return self.receiver_id if self.sender_id == identity_id else self.sender_id

    def mark_delivered(self) -> bool:
        """Advance sent -> delivered. Returns False when already past it."""
        if self.status != MessageStatus.SENT:
            return False
        self.delivered_at = utcnow()
        self.status = MessageStatus.DELIVERED
        return True

    def mark_read(self) -> bool:
        """Advance to read. Returns False when already read."""
        if self.status == MessageStatus.READ:
            return False
        now = utcnow()
        if self.delivered_at is None:
            self.delivered_at = now
        self.read_at = now
        self.status = MessageStatus.READ
        return True


class Contract(BaseEntity):
    """Housing agreement between one seeker and one host."""

    seeker_id: str = Field(..., min_length=1, description="Seeker identity")
    host_id: str = Field(..., min_length=1, description="Host identity")
    proposed_by: str = Field(..., min_length=1, description="Identity that proposed")
    status: ContractStatus = Field(default=ContractStatus.PROPOSED, description="Workflow status")
    terms: str = Field(..., min_length=1, max_length=10000, description="Agreement terms")
    duration: StayDuration = Field(..., description="Agreed duration bucket")
    start_date: datetime = Field(..., description="Start of stay")
    end_date: datetime = Field(..., description="End of stay, derived at proposal time")
    seeker_signed_at: Optional[datetime] = Field(None, description="Seeker signature timestamp")
    host_signed_at: Optional[datetime] = Field(None, description="Host signature timestamp")
    admin_approved_at: Optional[datetime] = Field(None, description="Ratification timestamp")
    admin_approved_by: Optional[str] = Field(None, description="Ratifying administrator")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation timestamp")
    cancelled_by: Optional[str] = Field(None, description="Identity that cancelled")
    cancellation_reason: Optional[str] = Field(None, max_length=1000, description="Why it was cancelled")

    @field_validator('terms')
    @classmethod
    def validate_terms(cls, v):
        """Validate contract terms."""
        if not v.strip():
            raise ValueError('Contract terms cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_status_fields(self):
        """Validate status-dependent fields."""
        if self.seeker_id == self.host_id:
            raise ValueError('Seeker and host must be different identities')

        if self.end_date < self.start_date:
            raise ValueError('end_date cannot precede start_date')

        if self.status == ContractStatus.FULLY_SIGNED and not self.is_fully_signed():
            raise ValueError('fully_signed requires both signatures')

        if self.status == ContractStatus.COMPLETED and not (self.admin_approved_at and self.admin_approved_by):
            raise ValueError('completed requires admin_approved_at and admin_approved_by')

        if self.status == ContractStatus.CANCELLED and not self.cancelled_at:
            raise ValueError('cancelled_at is required when status is cancelled')

        return self

    def party_role(self, identity_id: str) -> Optional[UserRole]:
        """Role under which an identity is named on this contract."""
        if identity_id == self.seeker_id:
            return UserRole.SEEKER
        if identity_id == self.host_id:
            return UserRole.HOST
        return None

    def counterpart_of(self, identity_id: str) -> str:
        return self.host_id if identity_id == self.seeker_id else self.seeker_id

    def signature_of(self, role: UserRole) -> Optional[datetime]:
        return self.seeker_signed_at if role == UserRole.SEEKER else self.host_signed_at

    def is_fully_signed(self) -> bool:
        return self.seeker_signed_at is not None and self.host_signed_at is not None

    def is_terminal(self) -> bool:
        return self.status in (ContractStatus.COMPLETED, ContractStatus.CANCELLED)

    def can_sign(self) -> bool:
        return not self.is_terminal()

    def can_approve(self) -> bool:
        return self.status == ContractStatus.FULLY_SIGNED and self.is_fully_signed()

    def can_cancel(self) -> bool:
        return not self.is_terminal()

    def sign(self, role: UserRole) -> bool:
        """Record a party signature. Returns False when it was already set."""
        if not self.can_sign():
            raise ValueError('Contract cannot be signed in current state')
        if self.signature_of(role) is not None:
            return False

        if role == UserRole.SEEKER:
            self.seeker_signed_at = utcnow()
        elif role == UserRole.HOST:
            self.host_signed_at = utcnow()
        else:
            raise ValueError(f'Role {role} cannot sign contracts')

        if self.is_fully_signed():
            self.status = ContractStatus.FULLY_SIGNED
        elif role == UserRole.SEEKER:
            self.status = ContractStatus.SIGNED_SEEKER
        else:
            self.status = ContractStatus.SIGNED_HOST
        self.update_timestamp()
        return True

    def approve(self, admin_id: str) -> None:
        """Ratify the contract."""
        if not self.can_approve():
            raise ValueError('Contract cannot be approved in current state')

        self.admin_approved_by = admin_id
        self.admin_approved_at = utcnow()
        self.status = ContractStatus.COMPLETED
        self.update_timestamp()

    def cancel(self, actor_id: str, reason: Optional[str] = None) -> None:
        """Cancel the contract before completion."""
        if not self.can_cancel():
            raise ValueError('Contract cannot be cancelled in current state')

        self.cancelled_by = actor_id
        self.cancellation_reason = reason
        self.cancelled_at = utcnow()
        self.status = ContractStatus.CANCELLED
        self.update_timestamp()


class Notification(BaseEntity):
    """Append-only notice addressed to one identity."""

    recipient_id: str = Field(..., min_length=1, description="Recipient identity")
    title: str = Field(..., min_length=1, max_length=200, description="Notification title")
    content: str = Field(..., min_length=1, max_length=2000, description="Notification content")
    category: NotificationCategory = Field(..., description="Notification category")
    read: bool = Field(default=False, description="Whether the recipient has read it")
    read_at: Optional[datetime] = Field(None, description="Read timestamp")
    related_entity: Optional[str] = Field(None, description="Entity type this refers to")
    related_id: Optional[str] = Field(None, description="Entity id this refers to")

    def mark_read(self) -> bool:
        """Flip unread -> read. Returns False when already read."""
        if self.read:
            return False
        self.read_at = utcnow()
        self.read = True
        return True


class Feedback(BaseEntity):
    """Feedback report with an administrator-managed status."""

    author_id: str = Field(..., min_length=1, description="Author identity")
    type: FeedbackType = Field(..., description="Feedback type")
    subject: str = Field(..., min_length=1, max_length=200, description="Subject")
    content: str = Field(..., min_length=1, max_length=5000, description="Body")
    status: FeedbackStatus = Field(default=FeedbackStatus.PENDING, description="Handling status")
    admin_response: Optional[str] = Field(None, max_length=5000, description="Administrator response")
    responded_by: Optional[str] = Field(None, description="Responding administrator")
    resolved_at: Optional[datetime] = Field(None, description="Resolution timestamp")


class AuditLog(BaseModel):
    """Audit log entry for administrator and workflow actions."""

    model_config = ConfigDict(
        use_enum_values=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    timestamp: datetime = Field(default_factory=utcnow, description="Action timestamp")
    actor_id: str = Field(..., description="Identity that performed the action")
    entity: str = Field(..., description="Entity type")
    entity_id: str = Field(..., description="Entity identifier")
    action: str = Field(..., description="Action performed")
    before: Optional[Dict[str, Any]] = Field(None, description="State before action")
    after: Optional[Dict[str, Any]] = Field(None, description="State after action")
    trace_id: Optional[str] = Field(None, description="OpenTelemetry trace ID")

    @field_validator('entity')
    @classmethod
    def validate_entity(cls, v):
        """Validate entity type."""
        valid_entities = ['identity', 'profile', 'contract', 'message', 'notification', 'feedback']
        if v not in valid_entities:
            raise ValueError(f'Invalid entity type: {v}')
        return v

    @field_validator('action')
    @classmethod
    def validate_action(cls, v):
        """Validate action type."""
        valid_actions = [
            'create', 'update', 'approve', 'reject', 'reopen', 'sign',
            'cancel', 'promote', 'respond'
        ]
        if v not in valid_actions:
            raise ValueError(f'Invalid action type: {v}')
        return v


class UserContext(BaseModel):
    """Authenticated request context built from the token and identity lookup."""

    identity_id: str = Field(..., description="Authenticated identity ID")
    role: UserRole = Field(..., description="Identity role")
    profile_status: ProfileStatus = Field(..., description="Identity review status")
    email: Optional[str] = Field(None, description="Identity email")
    token_id: Optional[str] = Field(None, description="JWT identifier (jti)")
    token_expires_at: Optional[int] = Field(None, description="JWT expiry (epoch seconds)")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")

    model_config = ConfigDict(
        use_enum_values=True
    )

    def is_administrator(self) -> bool:
        return self.role == UserRole.ADMINISTRATOR
