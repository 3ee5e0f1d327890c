# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from .base import BaseRequest
from .enums import (
    UserRole,
    ReviewDecision,
    AccommodationType,
    StayDuration,
    FeedbackType,
    FeedbackStatus
)


class SelectRoleRequest(BaseRequest):
    """Request model for choosing a role at onboarding."""

    role: UserRole = Field(..., description="Requested role")


class SeekerProfileRequest(BaseRequest):
    """Request model for submitting or updating a seeker profile."""

    family_size: int = Field(..., ge=1, le=20, description="Number of people to house")
    estimated_stay: StayDuration = Field(..., description="Expected length of stay")
    medical_needs: Optional[str] = Field(None, max_length=2000)
    special_requirements: Optional[str] = Field(None, max_length=2000)
    languages: List[str] = Field(default_factory=list)
    country_of_origin: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=40)
    emergency_contact: Optional[str] = Field(None, max_length=200)
    additional_info: Optional[str] = Field(None, max_length=2000)


class HostProfileRequest(BaseRequest):
    """Request model for submitting or updating a host profile."""

    accommodation_type: AccommodationType = Field(..., description="Accommodation type")
    max_occupants: int = Field(..., ge=1, le=50, description="Maximum occupants")
    availability_duration: StayDuration = Field(..., description="Availability duration")
    location: str = Field(..., min_length=1, max_length=200, description="City or area")
    description: Optional[str] = Field(None, max_length=2000)
    house_rules: Optional[str] = Field(None, max_length=2000)
    amenities: List[str] = Field(default_factory=list)
    address: Optional[str] = Field(None, max_length=500)
    phone_number: Optional[str] = Field(None, max_length=40)
    pet_friendly: bool = False
    smoking_allowed: bool = False
    accessibility_features: Optional[str] = Field(None, max_length=1000)
    criminal_record_checked: bool = False
    background_check_date: Optional[datetime] = None
    additional_info: Optional[str] = Field(None, max_length=2000)


class ReviewProfileRequest(BaseRequest):
    """Request model for an administrator profile decision."""

    decision: ReviewDecision = Field(..., description="approve or reject")
    note: Optional[str] = Field(None, max_length=1000, description="Optional reviewer note")


class ReopenProfileRequest(BaseRequest):
    """Request model for re-opening a reviewed profile."""

    note: Optional[str] = Field(None, max_length=1000, description="Why the profile is re-opened")


class ProposeContractRequest(BaseRequest):
    """Request model for proposing a contract to a counterpart."""

    counterpart_id: str = Field(..., min_length=1, description="The other party's identity ID")
    terms: str = Field(..., min_length=1, max_length=10000, description="Agreement terms")
    duration: StayDuration = Field(..., description="Duration bucket")
    start_date: datetime = Field(..., description="Start of stay")


class CancelContractRequest(BaseRequest):
    """Request model for cancelling a contract."""

    reason: Optional[str] = Field(None, max_length=1000, description="Cancellation reason")


class SendMessageRequest(BaseRequest):
    """Request model for sending a message."""

    receiver_id: str = Field(..., min_length=1, description="Receiver identity ID")
    content: str = Field(..., min_length=1, max_length=5000, description="Message body")


class SubmitFeedbackRequest(BaseRequest):
    """Request model for submitting feedback."""

    type: FeedbackType = Field(..., description="Feedback type")
    subject: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=5000)


class RespondFeedbackRequest(BaseRequest):
    """Request model for an administrator feedback response."""

    status: FeedbackStatus = Field(..., description="New feedback status")
    response: Optional[str] = Field(None, max_length=5000, description="Response text")


class RefreshTokenRequest(BaseRequest):
    """Request model for exchanging a refresh token."""

    refresh_token: str = Field(..., min_length=1, description="Refresh token")


class AuditQuery(BaseRequest):
    """Query parameters for the audit trail."""

    actor_id: Optional[str] = None
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    action: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(100, ge=1, le=500)


class HostSearchQuery(BaseRequest):
    """Optional discovery filters."""

    location: Optional[str] = None
    accommodation_type: Optional[AccommodationType] = None
    min_occupants: Optional[int] = Field(None, ge=1)
    pet_friendly: Optional[bool] = None
    search: Optional[str] = None


class NotificationListQuery(BaseRequest):
    """Query parameters for the notification listing."""

    unread_only: bool = False


class FeedbackListQuery(BaseRequest):
    """Query parameters for the administrator feedback listing."""

    status: Optional[FeedbackStatus] = None


# Path parameter models

class IdentityPath(BaseModel):
    identity_id: str = Field(..., description="Identity ID")


class ContractPath(BaseModel):
    contract_id: str = Field(..., description="Contract ID")


class MessagePath(BaseModel):
    message_id: str = Field(..., description="Message ID")


class CounterpartPath(BaseModel):
    counterpart_id: str = Field(..., description="Counterpart identity ID")


class NotificationPath(BaseModel):
    notification_id: str = Field(..., description="Notification ID")


class FeedbackPath(BaseModel):
    feedback_id: str = Field(..., description="Feedback ID")



class LiveSessionPath(BaseModel):
    session_id: str = Field(..., description="Live session ID")
