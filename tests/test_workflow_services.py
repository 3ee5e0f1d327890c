# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the workflow services against an in-memory MongoDB.
"""

from datetime import datetime

import pytest

from haven_api.middleware.error_handler import (
    DuplicateProfileError, ForbiddenError, InvalidStateTransitionError,
    NotFoundError, ValidationError
)
from haven_api.models.entities import Message
from haven_api.models.enums import (
    ContractStatus, FeedbackStatus, MessageStatus, ProfileStatus, ReviewDecision,
    StayDuration, UserRole
)
from haven_api.services.audit import AuditFilters


class TestIdentityService:
    """Test identity creation, role selection and promotion."""

    def test_first_sight_creates_pending_seeker(self, identity_service):
        identity = identity_service.ensure_identity("user-1", email="ana@example.org", first_name="Ana")

        assert identity.role == UserRole.SEEKER
        assert identity.profile_status == ProfileStatus.PENDING
        assert identity_service.get_identity("user-1").first_name == "Ana"

    def test_admin_email_creates_administrator(self, identity_service):
        identity = identity_service.ensure_identity("root", email="Root@Haven.test")

        assert identity.role == UserRole.ADMINISTRATOR
        assert identity_service.list_administrator_ids() == ["root"]

    def test_later_sight_refreshes_contact_fields_only(self, identity_service):
        identity_service.ensure_identity("user-1", first_name="Ana")
        identity_service.select_role(identity_service.get_identity("user-1"), UserRole.HOST)

        identity = identity_service.ensure_identity("user-1", first_name="Anna")

        assert identity.first_name == "Anna"
        assert identity.role == UserRole.HOST

    def test_role_locked_after_profile(self, identity_service, approval_service):
        identity = identity_service.ensure_identity("user-1")
        approval_service.submit_profile(identity, {"familySize": 2, "estimatedStay": "flexible"})

        with pytest.raises(InvalidStateTransitionError):
            identity_service.select_role(identity, UserRole.HOST)

    def test_promotion_is_audited(self, identity_service, audit_service, admin, make_identity):
        make_identity("user-2")

        promoted = identity_service.promote_to_administrator(admin, "user-2")

        assert promoted.role == UserRole.ADMINISTRATOR
        assert "user-2" in identity_service.list_administrator_ids()
        entries = audit_service.query_audit_logs(AuditFilters(entity_id="user-2"))
        assert [e.action for e in entries] == ["promote"]

    def test_concurrent_first_sight_returns_stored_identity(self, identity_service, monkeypatch):
        identity_service.ensure_identity("user-1", first_name="Ana")
        stored = identity_service.get_identity
        reads = []

        def stale_read(identity_id):
            reads.append(identity_id)
            # The first read misses the document another request just inserted
            return None if len(reads) == 1 else stored(identity_id)

        monkeypatch.setattr(identity_service, "get_identity", stale_read)
        identity = identity_service.ensure_identity("user-1", first_name="Ana")

        assert identity.id == "user-1"
        assert identity.first_name == "Ana"
        assert identity_service.mongo_service.count("identities", {"_id": "user-1"}) == 1

    def test_onboarded_host_cannot_be_promoted(self, identity_service, contract_service, admin,
                                                approved_seeker, approved_host, start_date):
        contract_service.propose(
            approved_seeker, approved_host.id, "Room for two", StayDuration.ONE_TO_THREE_MONTHS, start_date
        )

        with pytest.raises(InvalidStateTransitionError):
            identity_service.promote_to_administrator(admin, approved_host.id)

        assert identity_service.get_identity(approved_host.id).role == UserRole.HOST
        assert approved_host.id not in identity_service.list_administrator_ids()

    def test_list_administrators(self, identity_service, admin, approved_seeker):
        administrators = identity_service.list_administrators()

        assert [a.id for a in administrators] == [admin.id]


class TestApprovalService:
    """Test profile submission and review."""

    def test_submit_notifies_every_administrator(self, approval_service, notification_service,
                                                 make_identity, admin):
        second_admin = make_identity("admin-2", role=UserRole.ADMINISTRATOR)
        seeker = make_identity("seeker-9")

        profile = approval_service.submit_profile(seeker, {"familySize": 3, "estimatedStay": "3-6 months"})

        assert profile.family_size == 3
        assert notification_service.unread_count(admin.id) == 1
        assert notification_service.unread_count(second_admin.id) == 1

    def test_second_submission_is_duplicate(self, approval_service, make_identity):
        seeker = make_identity("seeker-9")
        approval_service.submit_profile(seeker, {"familySize": 1, "estimatedStay": "flexible"})

        with pytest.raises(DuplicateProfileError):
            approval_service.submit_profile(seeker, {"familySize": 2, "estimatedStay": "flexible"})

    def test_invalid_payload(self, approval_service, make_identity):
        host = make_identity("host-9", role=UserRole.HOST)

        with pytest.raises(ValidationError) as excinfo:
            approval_service.submit_profile(host, {"maxOccupants": 0})
        fields = {e.get("field") for e in excinfo.value.validation_errors}
        assert "maxOccupants" in fields

    def test_update_keeps_review_status(self, approval_service, identity_service, approved_host):
        profile = approval_service.update_profile(
            approved_host,
            {"accommodationType": "house", "maxOccupants": 8,
             "availabilityDuration": "flexible", "location": "Lisbon"}
        )

        assert profile.location == "Lisbon"
        assert identity_service.get_identity(approved_host.id).profile_status == ProfileStatus.APPROVED

    def test_review_approves_once(self, approval_service, notification_service, audit_service,
                                  make_identity, make_profile, admin):
        seeker = make_identity("seeker-9")
        make_profile(seeker)

        updated = approval_service.review_profile(admin, seeker.id, ReviewDecision.APPROVE, "Welcome")

        assert updated.profile_status == ProfileStatus.APPROVED
        assert updated.reviewed_by == admin.id
        assert notification_service.unread_count(seeker.id) == 1
        assert [e.action for e in audit_service.query_audit_logs(AuditFilters(entity_id=seeker.id))] == ["approve"]

        with pytest.raises(InvalidStateTransitionError):
            approval_service.review_profile(admin, seeker.id, ReviewDecision.REJECT)

    def test_review_requires_administrator(self, approval_service, approved_seeker, make_identity, make_profile):
        target = make_identity("host-9", role=UserRole.HOST)
        make_profile(target)

        with pytest.raises(ForbiddenError):
            approval_service.review_profile(approved_seeker, target.id, ReviewDecision.APPROVE)

    def test_reopen_then_review_again(self, approval_service, approved_seeker, admin):
        reopened = approval_service.reopen_profile(admin, approved_seeker.id, "Expired documents")
        assert reopened.profile_status == ProfileStatus.PENDING

        queue = approval_service.list_pending_profiles(admin)
        assert [owner.id for owner, _ in queue] == [approved_seeker.id]

        rejected = approval_service.review_profile(admin, approved_seeker.id, ReviewDecision.REJECT)
        assert rejected.profile_status == ProfileStatus.REJECTED

    def test_pending_queue_skips_identities_without_profile(self, approval_service, make_identity, admin):
        make_identity("seeker-9")
        assert approval_service.list_pending_profiles(admin) == []

    def test_profile_visibility(self, approval_service, approved_seeker, approved_host, make_identity):
        owner, profile = approval_service.get_profile(approved_seeker, approved_host.id)
        assert owner.id == approved_host.id
        assert profile.location == "Berlin"

        pending = make_identity("seeker-9")
        with pytest.raises(ForbiddenError):
            approval_service.get_profile(pending, approved_host.id)
        with pytest.raises(NotFoundError):
            approval_service.get_profile(approved_seeker, "nobody")


class TestContractService:
    """Test the contract workflow end to end."""

    def _propose(self, contract_service, proposer, counterpart, start_date):
        return contract_service.propose(
            proposer, counterpart.id, "Room for two", StayDuration.ONE_TO_THREE_MONTHS, start_date
        )

    def test_full_lifecycle(self, contract_service, notification_service, audit_service,
                            approved_seeker, approved_host, admin, start_date):
        contract = self._propose(contract_service, approved_seeker, approved_host, start_date)
        assert contract.status == ContractStatus.PROPOSED
        assert notification_service.unread_count(approved_host.id) == 1

        contract = contract_service.sign(approved_host, contract.id)
        assert contract.status == ContractStatus.SIGNED_HOST

        contract = contract_service.sign(approved_seeker, contract.id)
        assert contract.status == ContractStatus.FULLY_SIGNED
        assert notification_service.unread_count(admin.id) == 1
        assert [c.id for c in contract_service.list_contracts_awaiting_ratification(admin)] == [contract.id]

        contract = contract_service.approve(admin, contract.id)
        assert contract.status == ContractStatus.COMPLETED
        assert contract.admin_approved_by == admin.id

        actions = [e.action for e in audit_service.query_audit_logs(AuditFilters(entity_id=contract.id))]
        assert sorted(actions) == ["approve", "sign", "sign"]

        with pytest.raises(InvalidStateTransitionError):
            contract_service.cancel(approved_seeker, contract.id)

    def test_resign_keeps_first_timestamp(self, contract_service, approved_seeker, approved_host, start_date):
        contract = self._propose(contract_service, approved_host, approved_seeker, start_date)
        first = contract_service.sign(approved_seeker, contract.id)
        second = contract_service.sign(approved_seeker, contract.id)

        assert second.seeker_signed_at == first.seeker_signed_at
        assert second.status == ContractStatus.SIGNED_SEEKER

    def test_signature_race_ends_fully_signed(self, contract_service, mongo_service,
                                              approved_seeker, approved_host, start_date):
        """The host signs between the seeker's read and write."""
        contract = self._propose(contract_service, approved_seeker, approved_host, start_date)

        original_load = contract_service._load
        calls = {"count": 0}

        def load_then_host_signs(contract_id):
            loaded = original_load(contract_id)
            calls["count"] += 1
            if calls["count"] == 1:
                contract_service.sign(approved_host, contract_id)
            return loaded

        contract_service._load = load_then_host_signs
        try:
            result = contract_service.sign(approved_seeker, contract.id)
        finally:
            contract_service._load = original_load

        stored = contract_service.get_contract(approved_seeker, contract.id)
        assert result.status == ContractStatus.FULLY_SIGNED
        assert stored.status == ContractStatus.FULLY_SIGNED
        assert stored.seeker_signed_at is not None
        assert stored.host_signed_at is not None

    def test_proposal_to_pending_counterpart_forbidden(self, contract_service, approved_seeker,
                                                       make_identity, start_date):
        pending_host = make_identity("host-9", role=UserRole.HOST)

        with pytest.raises(ForbiddenError):
            self._propose(contract_service, approved_seeker, pending_host, start_date)

    def test_visibility_and_listing(self, contract_service, approved_seeker, approved_host,
                                    make_identity, admin, start_date):
        contract = self._propose(contract_service, approved_seeker, approved_host, start_date)
        outsider = make_identity("other", role=UserRole.HOST, status=ProfileStatus.APPROVED)

        with pytest.raises(ForbiddenError):
            contract_service.get_contract(outsider, contract.id)
        assert contract_service.list_contracts(outsider) == []
        assert [c.id for c in contract_service.list_contracts(approved_host)] == [contract.id]
        assert [c.id for c in contract_service.list_contracts(admin)] == [contract.id]

    def test_cancel_notifies_counterpart(self, contract_service, notification_service,
                                         approved_seeker, approved_host, start_date):
        contract = self._propose(contract_service, approved_seeker, approved_host, start_date)

        cancelled = contract_service.cancel(approved_host, contract.id, "No longer available")

        assert cancelled.status == ContractStatus.CANCELLED
        assert cancelled.cancelled_by == approved_host.id
        titles = [n.title for n in notification_service.list_notifications(approved_seeker.id)]
        assert titles == ["Contract Cancelled"]

    def test_approve_before_fully_signed(self, contract_service, approved_seeker, approved_host,
                                         admin, start_date):
        contract = self._propose(contract_service, approved_seeker, approved_host, start_date)

        with pytest.raises(InvalidStateTransitionError):
            contract_service.approve(admin, contract.id)


class TestMessagingService:
    """Test messaging, live push and status transitions."""

    def test_send_pushes_to_both_participants(self, messaging_service, push_hub,
                                              approved_seeker, approved_host):
        seeker_events, host_events = [], []
        push_hub.subscribe(approved_seeker.id, seeker_events.append)
        push_hub.subscribe(approved_host.id, host_events.append)

        message = messaging_service.send_message(approved_seeker, approved_host.id, "Hello!")

        assert [e["type"] for e in host_events] == ["new_message"]
        assert [e["type"] for e in seeker_events] == ["new_message", "message_status"]
        assert seeker_events[1]["message"]["status"] == MessageStatus.DELIVERED.value
        assert host_events[0]["message"]["content"] == "Hello!"
        assert message.status == MessageStatus.DELIVERED

    def test_offline_receiver_stays_sent(self, messaging_service, approved_seeker, approved_host):
        message = messaging_service.send_message(approved_seeker, approved_host.id, "Hello!")
        assert message.status == MessageStatus.SENT

    def test_unknown_receiver(self, messaging_service, approved_seeker):
        with pytest.raises(NotFoundError):
            messaging_service.send_message(approved_seeker, "nobody", "Hello!")

    def test_status_only_moves_forward(self, messaging_service, push_hub, approved_seeker, approved_host):
        sender_events = []
        push_hub.subscribe(approved_seeker.id, sender_events.append)
        message = messaging_service.send_message(approved_seeker, approved_host.id, "Hello!")

        with pytest.raises(ForbiddenError):
            messaging_service.mark_read(approved_seeker, message.id)

        read = messaging_service.mark_read(approved_host, message.id)
        assert read.status == MessageStatus.READ
        assert read.delivered_at is not None

        again = messaging_service.mark_delivered(approved_host, message.id)
        assert again.status == MessageStatus.READ
        assert again.read_at == read.read_at
        assert sender_events[-1]["type"] == "message_status"

    def test_conversation_order_and_read_all(self, messaging_service, approved_seeker, approved_host):
        messaging_service.send_message(approved_seeker, approved_host.id, "one")
        messaging_service.send_message(approved_host, approved_seeker.id, "two")
        messaging_service.send_message(approved_seeker, approved_host.id, "three")

        conversation = messaging_service.get_conversation(approved_host, approved_seeker.id)
        assert [m.content for m in conversation] == ["one", "two", "three"]

        summaries = messaging_service.list_conversations(approved_host)
        assert summaries[0].counterpart_id == approved_seeker.id
        assert summaries[0].unread_count == 2

        assert messaging_service.mark_conversation_read(approved_host, approved_seeker.id) == 2
        assert messaging_service.list_conversations(approved_host)[0].unread_count == 0

    def test_read_all_pushes_status_to_sender(self, messaging_service, push_hub,
                                              approved_seeker, approved_host):
        messaging_service.send_message(approved_seeker, approved_host.id, "one")
        messaging_service.send_message(approved_seeker, approved_host.id, "two")
        sender_events = []
        push_hub.subscribe(approved_seeker.id, sender_events.append)

        assert messaging_service.mark_conversation_read(approved_host, approved_seeker.id) == 2

        assert [e["type"] for e in sender_events] == ["message_status", "message_status"]
        assert sorted(e["message"]["content"] for e in sender_events) == ["one", "two"]
        assert {e["message"]["status"] for e in sender_events} == {MessageStatus.READ.value}
        assert messaging_service.mark_conversation_read(approved_host, approved_seeker.id) == 0
        assert len(sender_events) == 2

    def test_conversation_orders_by_creation_time(self, messaging_service, mongo_service,
                                                  approved_seeker, approved_host):
        later = Message(sender_id=approved_seeker.id, receiver_id=approved_host.id, content="later",
                        created_at=datetime(2025, 3, 1, 10, 0, 5))
        earlier = Message(sender_id=approved_host.id, receiver_id=approved_seeker.id, content="earlier",
                          created_at=datetime(2025, 3, 1, 10, 0, 0))
        # Inserted out of order, as when the second writer's clock runs behind
        mongo_service.create("messages", later.to_document())
        mongo_service.create("messages", earlier.to_document())

        conversation = messaging_service.get_conversation(approved_seeker, approved_host.id)

        assert [m.content for m in conversation] == ["earlier", "later"]

    def test_optional_message_notification(self, mongo_service, identity_service, notification_service,
                                           approved_seeker, approved_host):
        from haven_api.services.messaging import MessagingService

        service = MessagingService(
            mongo_service, identity_service, notification_service, notify_on_message=True
        )
        service.send_message(approved_seeker, approved_host.id, "Hello!")

        notifications = notification_service.list_notifications(approved_host.id)
        assert [n.category for n in notifications] == ["message"]


class TestNotificationService:
    """Test the notification outbox."""

    def test_targeted_push(self, notification_service, push_hub):
        a_events, b_events = [], []
        push_hub.subscribe("a", a_events.append)
        push_hub.subscribe("b", b_events.append)

        notification_service.create_notification("a", "Hi", "Only for a", "system")

        assert len(a_events) == 1
        assert b_events == []

    def test_mark_read_is_idempotent(self, notification_service):
        notification = notification_service.create_notification("a", "Hi", "Text", "system")

        first = notification_service.mark_notification_read("a", notification.id)
        second = notification_service.mark_notification_read("a", notification.id)

        assert first.read is True
        assert second.read_at == first.read_at
        assert notification_service.unread_count("a") == 0

    def test_mark_read_by_other_forbidden(self, notification_service):
        notification = notification_service.create_notification("a", "Hi", "Text", "system")

        with pytest.raises(ForbiddenError):
            notification_service.mark_notification_read("b", notification.id)
        with pytest.raises(NotFoundError):
            notification_service.mark_notification_read("a", "missing")

    def test_listing_newest_first_and_mark_all(self, notification_service):
        notification_service.create_notification("a", "First", "1", "system")
        notification_service.create_notification("a", "Second", "2", "system")

        listed = notification_service.list_notifications("a")
        assert [n.title for n in listed][0] in ("First", "Second")
        assert len(listed) == 2

        assert notification_service.mark_all_read("a") == 2
        assert notification_service.list_notifications("a", unread_only=True) == []


class TestDiscoveryService:
    def test_pending_requester_forbidden(self, discovery_service, make_identity):
        with pytest.raises(ForbiddenError):
            discovery_service.list_available_hosts(make_identity("seeker-9"))

    def test_pending_administrator_forbidden(self, discovery_service, admin):
        with pytest.raises(ForbiddenError):
            discovery_service.list_available_hosts(admin)

    def test_lists_only_approved_counterparts(self, discovery_service, approved_seeker, approved_host,
                                              make_identity, make_profile):
        pending_host = make_identity("host-9", role=UserRole.HOST)
        make_profile(pending_host)

        hosts = discovery_service.list_available_hosts(approved_seeker)
        seekers = discovery_service.list_available_seekers(approved_host)

        assert [i.id for i, _ in hosts] == [approved_host.id]
        assert [i.id for i, _ in seekers] == [approved_seeker.id]


class TestFeedbackService:
    def test_submit_and_respond(self, feedback_service, notification_service, approved_seeker, admin):
        feedback = feedback_service.submit(approved_seeker, "complaint", "Heating", "Broken heater")

        assert [f.id for f in feedback_service.list_own_feedback(approved_seeker)] == [feedback.id]
        with pytest.raises(ForbiddenError):
            feedback_service.list_feedback(approved_seeker)

        updated = feedback_service.respond_to_feedback(admin, feedback.id, FeedbackStatus.IN_PROGRESS, "On it")
        assert updated.status == FeedbackStatus.IN_PROGRESS
        assert updated.admin_response == "On it"
        assert notification_service.unread_count(approved_seeker.id) == 1

        resolved = feedback_service.respond_to_feedback(admin, feedback.id, FeedbackStatus.RESOLVED)
        assert resolved.resolved_at is not None
        with pytest.raises(InvalidStateTransitionError):
            feedback_service.respond_to_feedback(admin, feedback.id, FeedbackStatus.IN_PROGRESS)

        assert [f.id for f in feedback_service.list_feedback(admin, FeedbackStatus.RESOLVED)] == [feedback.id]


class TestStatisticsService:
    def test_counters(self, statistics_service, approved_seeker, approved_host, make_identity,
                      make_profile, admin):
        pending = make_identity("seeker-9")
        make_profile(pending)
        make_identity("seeker-10")

        statistics = statistics_service.get_statistics(admin)

        assert statistics.pending_approvals == 1
        assert statistics.registered_seekers == 3
        assert statistics.verified_hosts == 1
        assert statistics.active_matches == 0

        with pytest.raises(ForbiddenError):
            statistics_service.get_statistics(approved_seeker)
