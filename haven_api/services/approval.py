# SPDX-License-Identifier: Apache-2.0

"""
Profile approval service.

Coordinates profile storage, administrator review and the review
notifications. Review status lives on the identity document; the profile
document holds the seeker or host data.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from opentelemetry import trace

from ..domain import profiles as profile_domain
from ..middleware.error_handler import (
    DuplicateProfileError, ForbiddenError, InvalidStateTransitionError,
    NotFoundError, raise_for_result
)
from ..models.entities import Identity, Profile, profile_from_document
from ..models.enums import ProfileStatus, ReviewDecision
from .audit import AuditService
from .identity import IDENTITIES, IdentityService
from .mongodb import DuplicateDocumentError, MongoDBService
from .notifications import NotificationService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PROFILES = "profiles"


def _review_update(identity: Identity) -> Dict[str, Any]:
    document = identity.to_update_document()
    return {key: document[key] for key in ("profileStatus", "reviewedAt", "reviewedBy", "reviewNote", "updatedAt")}


def _review_snapshot(identity: Identity) -> Dict[str, Any]:
    return {
        "profile_status": identity.profile_status,
        "review_note": identity.review_note
    }


class ApprovalService:
    """Profile submission and administrator review."""

    def __init__(
        self,
        mongo_service: MongoDBService,
        identity_service: IdentityService,
        notification_service: NotificationService,
        audit_service: Optional[AuditService] = None
    ):
        self.mongo_service = mongo_service
        self.identity_service = identity_service
        self.notification_service = notification_service
        self.audit_service = audit_service or identity_service.audit_service

    def find_profile(self, identity_id: str) -> Optional[Profile]:
        return profile_from_document(self.mongo_service.find_one(PROFILES, {"identityId": identity_id}))

    def submit_profile(self, identity: Identity, payload: Dict[str, Any]) -> Profile:
        """
        Store the identity's first profile and notify every administrator.

        Raises:
            ForbiddenError: Caller is not a seeker or host
            DuplicateProfileError: A profile already exists
            ValidationError: Payload does not match the role's profile variant
        """
        with tracer.start_as_current_span("approval.submit_profile") as span:
            span.set_attributes({"identity.id": identity.id, "identity.role": str(identity.role)})

            result = raise_for_result(profile_domain.submit_profile(
                identity,
                self.find_profile(identity.id),
                payload,
                self.identity_service.list_administrator_ids()
            ))
            profile = result.entity

            try:
                with self.mongo_service.transaction() as session:
                    self.mongo_service.create(PROFILES, profile.to_document(), session=session)
                    self.notification_service.persist(result.notifications, session=session)
            except DuplicateDocumentError:
                # Lost a race against a concurrent submission
                raise DuplicateProfileError("A profile has already been submitted for this identity")

            self.notification_service.push(result.notifications)

            logger.info("Profile submitted", extra={
                "identity_id": identity.id,
                "profile_id": profile.id,
                "notified_administrators": len(result.notifications)
            })
            return profile

    def update_profile(self, identity: Identity, payload: Dict[str, Any]) -> Profile:
        """Replace the owner's profile fields without touching review status."""
        with tracer.start_as_current_span("approval.update_profile") as span:
            span.set_attribute("identity.id", identity.id)

            result = raise_for_result(profile_domain.update_profile(
                identity, self.find_profile(identity.id), payload
            ))
            profile = result.entity
            self.mongo_service.update_one(PROFILES, profile.id, profile.to_update_document())

            logger.info("Profile updated", extra={"identity_id": identity.id, "profile_id": profile.id})
            return profile

    def get_own_profile(self, identity: Identity) -> Profile:
        profile = self.find_profile(identity.id)
        if profile is None:
            raise NotFoundError("No profile has been submitted yet")
        return profile

    def get_profile(self, viewer: Identity, identity_id: str) -> Tuple[Identity, Profile]:
        """
        Fetch another identity's profile if the viewer may see it.

        Returns:
            Tuple of (owner identity, profile)
        """
        owner = self.identity_service.require_identity(identity_id)
        if not profile_domain.can_view_profile(viewer, owner):
            raise ForbiddenError("Profile is not visible to this identity")

        profile = self.find_profile(identity_id)
        if profile is None:
            raise NotFoundError(f"Identity {identity_id} has not submitted a profile")
        return owner, profile

    def list_pending_profiles(self, admin: Identity) -> List[Tuple[Identity, Profile]]:
        """Pending identities with a submitted profile, oldest submission first."""
        if not admin.is_administrator():
            raise ForbiddenError("Administrator access required")

        pending = self.identity_service.find_identities(profile_status=ProfileStatus.PENDING.value)
        participants = [identity for identity in pending if identity.is_participant()]
        if not participants:
            return []

        documents = self.mongo_service.find(
            PROFILES, {"identityId": {"$in": [identity.id for identity in participants]}}
        )
        profiles = {doc["identityId"]: profile_from_document(doc) for doc in documents}
        return profile_domain.pending_review_queue(participants, profiles)

    def review_profile(
        self,
        admin: Identity,
        target_id: str,
        decision: ReviewDecision,
        note: Optional[str] = None
    ) -> Identity:
        """
        Approve or reject a pending profile.

        The write is guarded on the stored status still being pending, so two
        administrators deciding at once cannot both succeed.
        """
        with tracer.start_as_current_span("approval.review_profile") as span:
            span.set_attributes({
                "identity.id": target_id,
                "admin.id": admin.id,
                "review.decision": str(decision)
            })

            target = self.identity_service.require_identity(target_id)
            result = raise_for_result(profile_domain.review_profile(
                admin,
                target,
                self.identity_service.has_profile(target_id),
                decision,
                note
            ))
            updated = result.entity

            with self.mongo_service.transaction() as session:
                applied = self.mongo_service.update_one(
                    IDENTITIES,
                    target_id,
                    _review_update(updated),
                    guard={"profileStatus": ProfileStatus.PENDING.value},
                    session=session
                )
                if not applied:
                    raise InvalidStateTransitionError("Profile was reviewed concurrently")

                self.audit_service.log_action(
                    actor_id=admin.id,
                    entity="identity",
                    entity_id=target_id,
                    action="approve" if decision == ReviewDecision.APPROVE else "reject",
                    before=_review_snapshot(target),
                    after=_review_snapshot(updated),
                    session=session
                )
                self.notification_service.persist(result.notifications, session=session)

            self.notification_service.push(result.notifications)

            logger.info("Profile reviewed", extra={
                "identity_id": target_id,
                "admin_id": admin.id,
                "profile_status": updated.profile_status
            })
            return updated

    def reopen_profile(self, admin: Identity, target_id: str, note: Optional[str] = None) -> Identity:
        """Return a reviewed profile to pending; audited."""
        with tracer.start_as_current_span("approval.reopen_profile") as span:
            span.set_attributes({"identity.id": target_id, "admin.id": admin.id})

            target = self.identity_service.require_identity(target_id)
            result = raise_for_result(profile_domain.reopen_profile(admin, target, note))
            updated = result.entity

            with self.mongo_service.transaction() as session:
                applied = self.mongo_service.update_one(
                    IDENTITIES,
                    target_id,
                    _review_update(updated),
                    guard={"profileStatus": target.profile_status},
                    session=session
                )
                if not applied:
                    raise InvalidStateTransitionError("Profile status changed concurrently")

                self.audit_service.log_action(
                    actor_id=admin.id,
                    entity="identity",
                    entity_id=target_id,
                    action="reopen",
                    before=_review_snapshot(target),
                    after=_review_snapshot(updated),
                    session=session
                )
                self.notification_service.persist(result.notifications, session=session)

            self.notification_service.push(result.notifications)

            logger.info("Profile reopened", extra={"identity_id": target_id, "admin_id": admin.id})
            return updated
