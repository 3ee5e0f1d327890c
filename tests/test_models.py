# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for entity and request models.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError

from haven_api.models.base import utcnow
from haven_api.models.entities import (
    AuditLog, Contract, HostProfile, Identity, Message, Notification,
    SeekerProfile, profile_from_document
)
from haven_api.models.enums import (
    ContractStatus, MessageStatus, ProfileStatus, StayDuration, UserRole
)
from haven_api.models.requests import HostProfileRequest, SeekerProfileRequest


class TestIdentity:
    """Test identity model behaviour."""

    def test_defaults(self):
        identity = Identity(id="user-1")

        assert identity.role == UserRole.SEEKER
        assert identity.profile_status == ProfileStatus.PENDING
        assert identity.display_name == "User"

    def test_email_is_normalized(self):
        identity = Identity(id="user-1", email="Ana@Example.ORG")
        assert identity.email == "ana@example.org"

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError):
            Identity(id="user-1", email="not-an-email")

    def test_review_only_from_pending(self):
        identity = Identity(id="user-1")
        identity.review("admin-1", ProfileStatus.APPROVED, "looks good")

        assert identity.profile_status == ProfileStatus.APPROVED
        assert identity.reviewed_by == "admin-1"
        assert identity.review_note == "looks good"

        with pytest.raises(ValueError):
            identity.review("admin-1", ProfileStatus.REJECTED)

    def test_reopen_returns_to_pending(self):
        identity = Identity(id="user-1", profile_status=ProfileStatus.REJECTED)
        identity.reopen("admin-1", "new documents")

        assert identity.profile_status == ProfileStatus.PENDING

    def test_document_roundtrip_uses_camel_case(self):
        identity = Identity(id="user-1", first_name="Ana")
        document = identity.to_document()

        assert document["_id"] == "user-1"
        assert document["firstName"] == "Ana"
        assert document["profileStatus"] == "pending"
        assert Identity.from_document(document) == identity


class TestProfiles:
    """Test seeker and host profile variants."""

    def test_seeker_family_size_bounds(self):
        with pytest.raises(ValidationError):
            SeekerProfile(identity_id="s", family_size=0, estimated_stay="1-3 months")
        with pytest.raises(ValidationError):
            SeekerProfile(identity_id="s", family_size=21, estimated_stay="1-3 months")

    def test_host_requires_known_accommodation_type(self):
        with pytest.raises(ValidationError):
            HostProfile(
                identity_id="h",
                accommodation_type="castle",
                max_occupants=2,
                availability_duration="flexible",
                location="Lyon"
            )

    def test_host_location_is_stripped(self):
        profile = HostProfile(
            identity_id="h",
            accommodation_type="room",
            max_occupants=1,
            availability_duration="flexible",
            location="  Lyon "
        )
        assert profile.location == "Lyon"

    def test_profile_from_document_selects_variant(self):
        seeker = SeekerProfile(identity_id="s", family_size=3, estimated_stay="6-12 months")
        loaded = profile_from_document(seeker.to_document())

        assert isinstance(loaded, SeekerProfile)
        assert loaded.family_size == 3
        assert profile_from_document(None) is None

    def test_request_models_accept_camel_case(self):
        request = SeekerProfileRequest.model_validate({"familySize": 4, "estimatedStay": "flexible"})
        assert request.family_size == 4

        request = HostProfileRequest.model_validate({
            "accommodationType": "house",
            "maxOccupants": 6,
            "availabilityDuration": "12+ months",
            "location": "Porto",
            "petFriendly": True
        })
        assert request.pet_friendly is True


class TestMessage:
    """Test message status transitions."""

    def test_sender_and_receiver_must_differ(self):
        with pytest.raises(ValidationError):
            Message(sender_id="a", receiver_id="a", content="hi")

    def test_blank_content_rejected(self):
        with pytest.raises(ValidationError):
            Message(sender_id="a", receiver_id="b", content="   ")

    def test_read_sets_delivered_timestamp(self):
        message = Message(sender_id="a", receiver_id="b", content="hi")

        assert message.mark_read() is True
        assert message.status == MessageStatus.READ
        assert message.delivered_at is not None
        assert message.read_at is not None
        assert message.mark_read() is False
        assert message.mark_delivered() is False


class TestContract:
    """Test contract state rules."""

    def _contract(self, **fields):
        data = {
            "seeker_id": "seeker-1",
            "host_id": "host-1",
            "proposed_by": "seeker-1",
            "terms": "Two rooms",
            "duration": StayDuration.ONE_TO_THREE_MONTHS,
            "start_date": datetime(2025, 1, 1),
            "end_date": datetime(2025, 2, 1)
        }
        data.update(fields)
        return Contract(**data)

    def test_parties_must_differ(self):
        with pytest.raises(ValidationError):
            self._contract(host_id="seeker-1")

    def test_fully_signed_requires_both_signatures(self):
        with pytest.raises(ValidationError):
            self._contract(status=ContractStatus.FULLY_SIGNED, seeker_signed_at=utcnow())

    def test_signature_sequence(self):
        contract = self._contract()

        assert contract.sign(UserRole.HOST) is True
        assert contract.status == ContractStatus.SIGNED_HOST
        first = contract.host_signed_at

        assert contract.sign(UserRole.HOST) is False
        assert contract.host_signed_at == first

        assert contract.sign(UserRole.SEEKER) is True
        assert contract.status == ContractStatus.FULLY_SIGNED

    def test_cannot_approve_before_fully_signed(self):
        contract = self._contract()
        with pytest.raises(ValueError):
            contract.approve("admin-1")

    def test_terminal_states(self):
        contract = self._contract()
        contract.cancel("host-1", "plans changed")

        assert contract.status == ContractStatus.CANCELLED
        assert contract.is_terminal()
        with pytest.raises(ValueError):
            contract.sign(UserRole.SEEKER)


class TestNotification:
    def test_mark_read_once(self):
        notification = Notification(
            recipient_id="a", title="Hello", content="World", category="system"
        )
        assert notification.mark_read() is True
        assert notification.read_at is not None
        assert notification.mark_read() is False


class TestAuditLog:
    def test_rejects_unknown_action(self):
        with pytest.raises(ValidationError):
            AuditLog(actor_id="a", entity="contract", entity_id="c", action="delete")

    def test_accepts_workflow_action(self):
        entry = AuditLog(actor_id="a", entity="identity", entity_id="b", action="reopen")
        assert entry.action == "reopen"
