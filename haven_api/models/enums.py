# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Haven platform.
"""

from enum import Enum


class UserRole(str, Enum):
    """Participant role, chosen once at onboarding."""
    SEEKER = "seeker"
    HOST = "host"
    ADMINISTRATOR = "administrator"


class ProfileStatus(str, Enum):
    """Profile review status held on the identity."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewDecision(str, Enum):
    """Administrator decision on a pending profile."""
    APPROVE = "approve"
    REJECT = "reject"


class ProfileKind(str, Enum):
    """Profile variant discriminator."""
    SEEKER = "seeker"
    HOST = "host"


class AccommodationType(str, Enum):
    """Kind of accommodation a host offers."""
    APARTMENT = "apartment"
    HOUSE = "house"
    ROOM = "room"
    STUDIO = "studio"


class StayDuration(str, Enum):
    """Duration bucket for stays, availability and contracts."""
    ONE_TO_THREE_MONTHS = "1-3 months"
    THREE_TO_SIX_MONTHS = "3-6 months"
    SIX_TO_TWELVE_MONTHS = "6-12 months"
    TWELVE_PLUS_MONTHS = "12+ months"
    ONE_PLUS_YEARS = "1+ years"
    FLEXIBLE = "flexible"

    @property
    def months(self) -> int:
        """Month offset used to derive a contract end date."""
        return _DURATION_MONTHS[self]


_DURATION_MONTHS = {
    StayDuration.ONE_TO_THREE_MONTHS: 1,
    StayDuration.THREE_TO_SIX_MONTHS: 3,
    StayDuration.SIX_TO_TWELVE_MONTHS: 6,
    StayDuration.TWELVE_PLUS_MONTHS: 12,
    StayDuration.ONE_PLUS_YEARS: 12,
    StayDuration.FLEXIBLE: 6,
}


class MessageStatus(str, Enum):
    """Message delivery lifecycle (monotonic)."""
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


class ContractStatus(str, Enum):
    """Contract workflow status enumeration."""
    PROPOSED = "proposed"
    SIGNED_SEEKER = "signed_seeker"
    SIGNED_HOST = "signed_host"
    FULLY_SIGNED = "fully_signed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NotificationCategory(str, Enum):
    """Outbox notification category."""
    APPROVAL = "approval"
    MESSAGE = "message"
    CONTRACT = "contract"
    SYSTEM = "system"


class FeedbackType(str, Enum):
    """Kind of feedback report."""
    FEEDBACK = "feedback"
    COMPLAINT = "complaint"
    SUGGESTION = "suggestion"


class FeedbackStatus(str, Enum):
    """Administrator-managed feedback status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
