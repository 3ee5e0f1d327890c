# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Haven platform.
"""

# Base models
from .base import BaseEntity, BaseRequest, generate_object_id, utcnow

# Enumerations
from .enums import (
    UserRole,
    ProfileStatus,
    ReviewDecision,
    ProfileKind,
    AccommodationType,
    StayDuration,
    MessageStatus,
    ContractStatus,
    NotificationCategory,
    FeedbackType,
    FeedbackStatus
)

# Core entities
from .entities import (
    Identity,
    SeekerProfile,
    HostProfile,
    Profile,
    profile_from_document,
    Message,
    Contract,
    Notification,
    Feedback,
    AuditLog,
    UserContext
)

__all__ = [
    # Base models
    "BaseEntity",
    "BaseRequest",
    "generate_object_id",
    "utcnow",

    # Enumerations
    "UserRole",
    "ProfileStatus",
    "ReviewDecision",
    "ProfileKind",
    "AccommodationType",
    "StayDuration",
    "MessageStatus",
    "ContractStatus",
    "NotificationCategory",
    "FeedbackType",
    "FeedbackStatus",

    # Core entities
    "Identity",
    "SeekerProfile",
    "HostProfile",
    "Profile",
    "profile_from_document",
    "Message",
    "Contract",
    "Notification",
    "Feedback",
    "AuditLog",
    "UserContext"
]
