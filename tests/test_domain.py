# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the pure workflow domain functions.
"""

from datetime import datetime

import pytest

from haven_api.domain import contracts as contract_domain
from haven_api.domain import discovery as discovery_domain
from haven_api.domain import feedback as feedback_domain
from haven_api.domain import identities as identity_domain
from haven_api.domain import messages as message_domain
from haven_api.domain import notifications as notification_domain
from haven_api.domain import profiles as profile_domain
from haven_api.domain.results import ErrorKind
from haven_api.models.entities import Feedback, HostProfile, Identity, Message
from haven_api.models.enums import (
    ContractStatus, FeedbackStatus, ProfileStatus, ReviewDecision, StayDuration, UserRole
)


def identity(identity_id, role=UserRole.SEEKER, status=ProfileStatus.PENDING):
    return Identity(id=identity_id, role=role, profile_status=status, first_name=identity_id.title())


class TestIdentityRules:
    """Test role selection and promotion."""

    def test_select_host_before_profile(self):
        result = identity_domain.select_role(identity("u"), UserRole.HOST, has_profile=False)

        assert result.success
        assert result.entity.role == UserRole.HOST
        assert result.entity.role_selected_at is not None

    def test_role_fixed_after_profile(self):
        result = identity_domain.select_role(identity("u"), UserRole.HOST, has_profile=True)

        assert not result.success
        assert result.error_kind == ErrorKind.INVALID_STATE

    def test_administrator_role_not_self_assigned(self):
        result = identity_domain.select_role(identity("u"), UserRole.ADMINISTRATOR, has_profile=False)

        assert result.error_kind == ErrorKind.FORBIDDEN

    def test_promotion_requires_administrator(self):
        result = identity_domain.promote_to_administrator(identity("a"), identity("b"))
        assert result.error_kind == ErrorKind.FORBIDDEN

        admin = identity("root", role=UserRole.ADMINISTRATOR)
        result = identity_domain.promote_to_administrator(admin, identity("b"))
        assert result.entity.role == UserRole.ADMINISTRATOR

    def test_onboarded_participant_keeps_role(self):
        admin = identity("root", role=UserRole.ADMINISTRATOR)
        host = identity("h", role=UserRole.HOST, status=ProfileStatus.APPROVED)

        result = identity_domain.promote_to_administrator(admin, host, has_profile=True, open_contracts=1)

        assert result.error_kind == ErrorKind.INVALID_STATE
        assert len(result.validation_errors) == 2


class TestProfileRules:
    """Test profile submission and review."""

    def test_submission_notifies_each_administrator_once(self):
        seeker = identity("seeker")
        result = profile_domain.submit_profile(
            seeker, None, {"familySize": 2, "estimatedStay": "1-3 months"}, ["a1", "a2", "a1"]
        )

        assert result.success
        assert result.entity.identity_id == "seeker"
        assert sorted(n.recipient_id for n in result.notifications) == ["a1", "a2"]
        assert all(n.category == "approval" for n in result.notifications)

    def test_submission_with_wrong_variant_fields_is_invalid(self):
        host = identity("host", role=UserRole.HOST)
        result = profile_domain.submit_profile(host, None, {"familySize": 2}, [])

        assert result.error_kind == ErrorKind.VALIDATION
        assert any(e.startswith("accommodationType") for e in result.validation_errors)

    def test_duplicate_submission(self):
        seeker = identity("seeker")
        first = profile_domain.submit_profile(
            seeker, None, {"familySize": 2, "estimatedStay": "flexible"}, []
        ).entity
        result = profile_domain.submit_profile(
            seeker, first, {"familySize": 3, "estimatedStay": "flexible"}, []
        )

        assert result.error_kind == ErrorKind.DUPLICATE_PROFILE

    def test_administrators_cannot_submit(self):
        admin = identity("root", role=UserRole.ADMINISTRATOR)
        result = profile_domain.submit_profile(admin, None, {}, [])
        assert result.error_kind == ErrorKind.FORBIDDEN

    def test_review_is_single_shot(self):
        admin = identity("root", role=UserRole.ADMINISTRATOR)
        target = identity("seeker")

        result = profile_domain.review_profile(admin, target, True, ReviewDecision.REJECT, "blurry id")
        assert result.entity.profile_status == ProfileStatus.REJECTED
        assert "blurry id" in result.notifications[0].content

        again = profile_domain.review_profile(admin, result.entity, True, ReviewDecision.APPROVE)
        assert again.error_kind == ErrorKind.INVALID_STATE

    def test_review_without_profile(self):
        admin = identity("root", role=UserRole.ADMINISTRATOR)
        result = profile_domain.review_profile(admin, identity("seeker"), False, ReviewDecision.APPROVE)
        assert result.error_kind == ErrorKind.INVALID_STATE

    def test_visibility(self):
        approved_a = identity("a", status=ProfileStatus.APPROVED)
        approved_b = identity("b", role=UserRole.HOST, status=ProfileStatus.APPROVED)
        pending = identity("c")

        assert profile_domain.can_view_profile(approved_a, approved_b)
        assert not profile_domain.can_view_profile(pending, approved_b)
        assert profile_domain.can_view_profile(pending, pending)
        assert profile_domain.can_view_profile(identity("root", role=UserRole.ADMINISTRATOR), pending)


class TestContractRules:
    """Test the contract state machine."""

    def setup_method(self):
        self.seeker = identity("seeker", status=ProfileStatus.APPROVED)
        self.host = identity("host", role=UserRole.HOST, status=ProfileStatus.APPROVED)
        self.admin = identity("root", role=UserRole.ADMINISTRATOR)

    def _propose(self):
        return contract_domain.propose_contract(
            self.host, self.seeker, "Room with a view", StayDuration.ONE_TO_THREE_MONTHS,
            datetime(2025, 1, 31)
        ).entity

    def test_end_date_clamped_to_month_end(self):
        assert contract_domain.derive_end_date(
            datetime(2025, 1, 31), StayDuration.ONE_TO_THREE_MONTHS
        ) == datetime(2025, 2, 28)
        assert contract_domain.derive_end_date(
            datetime(2025, 3, 1), StayDuration.TWELVE_PLUS_MONTHS
        ) == datetime(2026, 3, 1)

    def test_proposer_side_filled_from_role(self):
        contract = self._propose()

        assert contract.host_id == "host"
        assert contract.seeker_id == "seeker"
        assert contract.proposed_by == "host"
        assert contract.status == ContractStatus.PROPOSED

    def test_proposal_requires_approved_opposite_roles(self):
        pending_host = identity("host2", role=UserRole.HOST)
        result = contract_domain.propose_contract(
            self.seeker, pending_host, "terms", StayDuration.FLEXIBLE, datetime(2025, 1, 1)
        )
        assert result.error_kind == ErrorKind.FORBIDDEN

        other_seeker = identity("seeker2", status=ProfileStatus.APPROVED)
        result = contract_domain.propose_contract(
            self.seeker, other_seeker, "terms", StayDuration.FLEXIBLE, datetime(2025, 1, 1)
        )
        assert result.error_kind == ErrorKind.FORBIDDEN

    def test_proposal_requires_terms(self):
        result = contract_domain.propose_contract(
            self.seeker, self.host, "  ", StayDuration.FLEXIBLE, datetime(2025, 1, 1)
        )
        assert result.error_kind == ErrorKind.VALIDATION

    def test_full_lifecycle(self):
        contract = self._propose()

        signed = contract_domain.sign_contract(contract, self.seeker, ["root"])
        assert signed.entity.status == ContractStatus.SIGNED_SEEKER
        assert [n.recipient_id for n in signed.notifications] == ["host"]

        resigned = contract_domain.sign_contract(signed.entity, self.seeker, ["root"])
        assert resigned.changed is False
        assert resigned.entity.seeker_signed_at == signed.entity.seeker_signed_at

        both = contract_domain.sign_contract(signed.entity, self.host, ["root"])
        assert both.entity.status == ContractStatus.FULLY_SIGNED
        assert [n.recipient_id for n in both.notifications] == ["root"]

        approved = contract_domain.approve_contract(both.entity, self.admin)
        assert approved.entity.status == ContractStatus.COMPLETED
        assert sorted(n.recipient_id for n in approved.notifications) == ["host", "seeker"]

        cancelled = contract_domain.cancel_contract(approved.entity, self.seeker)
        assert cancelled.error_kind == ErrorKind.INVALID_STATE

    def test_only_named_party_signs(self):
        contract = self._propose()
        outsider = identity("other", role=UserRole.HOST, status=ProfileStatus.APPROVED)

        result = contract_domain.sign_contract(contract, outsider, [])
        assert result.error_kind == ErrorKind.FORBIDDEN

    def test_approve_needs_fully_signed(self):
        result = contract_domain.approve_contract(self._propose(), self.admin)
        assert result.error_kind == ErrorKind.INVALID_STATE

    def test_administrator_cancel_notifies_both_parties(self):
        result = contract_domain.cancel_contract(self._propose(), self.admin, "duplicate")

        assert result.entity.status == ContractStatus.CANCELLED
        assert result.entity.cancellation_reason == "duplicate"
        assert sorted(n.recipient_id for n in result.notifications) == ["host", "seeker"]


class TestMessageRules:
    """Test message composition and status."""

    def test_compose_to_missing_receiver(self):
        result = message_domain.compose_message(identity("a"), None, "hi")
        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_compose_to_self(self):
        a = identity("a")
        result = message_domain.compose_message(a, a, "hi")
        assert result.error_kind == ErrorKind.VALIDATION

    def test_only_receiver_advances_status(self):
        message = Message(sender_id="a", receiver_id="b", content="hi")

        assert message_domain.mark_read(message, "a").error_kind == ErrorKind.FORBIDDEN
        result = message_domain.mark_delivered(message, "b")
        assert result.entity.status == "delivered"

    def test_conversation_summaries(self):
        messages = [
            Message(sender_id="a", receiver_id="b", content="one",
                    created_at=datetime(2025, 1, 1, 10)),
            Message(sender_id="b", receiver_id="a", content="two",
                    created_at=datetime(2025, 1, 1, 11)),
            Message(sender_id="c", receiver_id="a", content="three",
                    created_at=datetime(2025, 1, 1, 9)),
        ]
        summaries = message_domain.summarize_conversations(messages, "a")

        assert [s.counterpart_id for s in summaries] == ["b", "c"]
        assert summaries[0].last_message.content == "two"
        assert summaries[0].unread_count == 1
        assert summaries[0].message_count == 2


class TestNotificationRules:
    def test_only_recipient_marks_read(self):
        notification = notification_domain.build_notification("a", "T", "C", "system")

        assert notification_domain.mark_notification_read(notification, "b").error_kind == ErrorKind.FORBIDDEN
        result = notification_domain.mark_notification_read(notification, "a")
        assert result.entity.read is True
        assert result.changed is True


class TestDiscoveryRules:
    """Test discovery joins and filters."""

    def _host(self, identity_id, **fields):
        data = {
            "accommodation_type": "apartment",
            "max_occupants": 2,
            "availability_duration": "flexible",
            "location": "Berlin"
        }
        data.update(fields)
        return identity(identity_id, role=UserRole.HOST, status=ProfileStatus.APPROVED), \
            HostProfile(identity_id=identity_id, **data)

    def test_pending_requester_cannot_browse(self):
        assert not discovery_domain.validate_browse(identity("s")).is_valid
        assert discovery_domain.validate_browse(identity("s", status=ProfileStatus.APPROVED)).is_valid

    def test_pending_administrator_cannot_browse(self):
        admin = identity("root", role=UserRole.ADMINISTRATOR)
        assert discovery_domain.validate_browse(admin).error_kind == ErrorKind.FORBIDDEN

    def test_only_approved_hosts_with_profiles(self):
        approved, profile = self._host("h1")
        pending = identity("h2", role=UserRole.HOST)
        without_profile = identity("h3", role=UserRole.HOST, status=ProfileStatus.APPROVED)

        hosts = discovery_domain.approved_hosts(
            [approved, pending, without_profile], {"h1": profile, "h2": profile}
        )
        assert [i.id for i, _ in hosts] == ["h1"]

    @pytest.mark.parametrize("filters,expected", [
        (discovery_domain.HostFilters(location="ber"), ["h1"]),
        (discovery_domain.HostFilters(accommodation_type="house"), ["h2"]),
        (discovery_domain.HostFilters(min_occupants=4), ["h2"]),
        (discovery_domain.HostFilters(pet_friendly=True), ["h2"]),
        (discovery_domain.HostFilters(search_term="garden"), ["h2"]),
    ])
    def test_filters_narrow_results(self, filters, expected):
        h1 = self._host("h1")
        h2 = self._host("h2", accommodation_type="house", max_occupants=5, location="Munich",
                        pet_friendly=True, amenities=["Garden"])

        hosts = discovery_domain.filter_hosts([h1, h2], filters)
        assert [i.id for i, _ in hosts] == expected


class TestFeedbackRules:
    def test_resolved_is_terminal(self):
        admin = identity("root", role=UserRole.ADMINISTRATOR)
        feedback = Feedback(author_id="a", type="complaint", subject="Noise", content="Loud")

        resolved = feedback_domain.respond_to_feedback(feedback, admin, FeedbackStatus.RESOLVED, "Fixed")
        assert resolved.entity.resolved_at is not None
        assert resolved.notifications[0].recipient_id == "a"

        again = feedback_domain.respond_to_feedback(resolved.entity, admin, FeedbackStatus.IN_PROGRESS)
        assert again.error_kind == ErrorKind.INVALID_STATE
