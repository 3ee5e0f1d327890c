# SPDX-License-Identifier: Apache-2.0

"""
Identity and role store.

Identities are keyed by the authenticated subject id. Every workflow
operation starts with a lookup here.
"""

import logging
import os
from typing import Iterable, List, Optional

from opentelemetry import trace

from ..domain import identities as identity_domain
from ..middleware.error_handler import NotFoundError, raise_for_result
from ..models.entities import Identity
from ..models.enums import ContractStatus, UserRole
from .audit import AuditService
from .mongodb import DuplicateDocumentError, MongoDBService
from .redis import RedisService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

IDENTITIES = "identities"
PROFILES = "profiles"
CONTRACTS = "contracts"

CONTACT_FIELDS = ("email", "first_name", "last_name", "profile_image_url")


def parse_admin_emails(value: Optional[str]) -> List[str]:
    """Comma separated list, normalized to lower case."""
    if not value:
        return []
    return [email.strip().lower() for email in value.split(",") if email.strip()]


class IdentityService:
    """Identity lookup, onboarding role selection and administrator pool."""

    def __init__(
        self,
        mongo_service: MongoDBService,
        redis_service: Optional[RedisService] = None,
        audit_service: Optional[AuditService] = None,
        admin_emails: Optional[Iterable[str]] = None
    ):
        self.mongo_service = mongo_service
        self.redis_service = redis_service
        self.audit_service = audit_service or AuditService(mongo_service)
        if admin_emails is None:
            admin_emails = parse_admin_emails(os.getenv("ADMIN_EMAILS"))
        self.admin_emails = {email.lower() for email in admin_emails}

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        return Identity.from_document(self.mongo_service.find_by_id(IDENTITIES, identity_id))

    def require_identity(self, identity_id: str) -> Identity:
        """Get an identity or raise NotFoundError."""
        identity = self.get_identity(identity_id)
        if identity is None:
            raise NotFoundError(f"Identity {identity_id} not found")
        return identity

    def find_identities(self, role: Optional[UserRole] = None,
                        profile_status: Optional[str] = None) -> List[Identity]:
        query = {}
        if role is not None:
            query["role"] = UserRole(role).value
        if profile_status is not None:
            query["profileStatus"] = profile_status
        documents = self.mongo_service.find(IDENTITIES, query, sort=[("createdAt", 1)])
        return [Identity.from_document(doc) for doc in documents]

    def has_profile(self, identity_id: str) -> bool:
        return self.mongo_service.count(PROFILES, {"identityId": identity_id}) > 0

    def count_open_contracts(self, identity_id: str) -> int:
        return self.mongo_service.count(CONTRACTS, {
            "$or": [{"seekerId": identity_id}, {"hostId": identity_id}],
            "status": {"$nin": [ContractStatus.COMPLETED.value, ContractStatus.CANCELLED.value]}
        })

    def ensure_identity(
        self,
        subject: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_image_url: Optional[str] = None
    ) -> Identity:
        """
        Create the identity on first sight; later calls refresh contact fields only.

        Subjects whose email is listed in ADMIN_EMAILS are created as
        administrators.
        """
        with tracer.start_as_current_span("identity.ensure") as span:
            span.set_attribute("identity.id", subject)

            existing = self.get_identity(subject)
            contact = {
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
                "profile_image_url": profile_image_url
            }

            if existing is None:
                administrator = bool(email) and email.lower() in self.admin_emails
                identity = identity_domain.new_identity(subject, administrator=administrator, **contact)
                try:
                    self.mongo_service.create(IDENTITIES, identity.to_document())
                except DuplicateDocumentError:
                    # A concurrent first request created it between read and insert
                    logger.info("Identity created concurrently", extra={"identity_id": subject})
                    existing = self.require_identity(subject)
                else:
                    if administrator:
                        self.invalidate_administrators()

                    span.set_attribute("identity.created", True)
                    logger.info("Identity created", extra={
                        "identity_id": subject,
                        "role": identity.role
                    })
                    return identity

            changes = {k: v for k, v in contact.items() if v is not None and getattr(existing, k) != v}
            if not changes:
                return existing

            updated = existing.model_copy(update=changes)
            updated = Identity.model_validate(updated.model_dump())
            updated.update_timestamp()
            self.mongo_service.update_one(IDENTITIES, subject, updated.to_update_document())
            return updated

    def select_role(self, identity: Identity, role: UserRole) -> Identity:
        """Choose seeker or host while no profile has been submitted."""
        with tracer.start_as_current_span("identity.select_role") as span:
            span.set_attributes({"identity.id": identity.id, "identity.role": str(role)})

            result = raise_for_result(
                identity_domain.select_role(identity, role, self.has_profile(identity.id))
            )
            if not result.changed:
                return identity

            updated = result.entity
            self.mongo_service.update_one(
                IDENTITIES,
                identity.id,
                {
                    "role": updated.role,
                    "roleSelectedAt": updated.role_selected_at,
                    "updatedAt": updated.updated_at
                }
            )
            logger.info("Role selected", extra={"identity_id": identity.id, "role": updated.role})
            return updated

    def promote_to_administrator(self, admin: Identity, target_id: str) -> Identity:
        """Grant the administrator role; audited."""
        with tracer.start_as_current_span("identity.promote") as span:
            span.set_attributes({"identity.id": target_id, "admin.id": admin.id})

            target = self.require_identity(target_id)
            result = raise_for_result(identity_domain.promote_to_administrator(
                admin,
                target,
                has_profile=self.has_profile(target_id),
                open_contracts=self.count_open_contracts(target_id)
            ))
            if not result.changed:
                return target

            updated = result.entity
            with self.mongo_service.transaction() as session:
                self.mongo_service.update_one(
                    IDENTITIES,
                    target_id,
                    {"role": updated.role, "updatedAt": updated.updated_at},
                    session=session
                )
                self.audit_service.log_action(
                    actor_id=admin.id,
                    entity="identity",
                    entity_id=target_id,
                    action="promote",
                    before={"role": target.role},
                    after={"role": updated.role},
                    session=session
                )

            self.invalidate_administrators()
            logger.info("Identity promoted to administrator", extra={
                "identity_id": target_id,
                "admin_id": admin.id
            })
            return updated

    def list_administrator_ids(self) -> List[str]:
        """Administrator pool resolved by role, cached in Redis when available."""
        if self.redis_service is not None:
            cached = self.redis_service.get_cached_administrators()
            if cached is not None:
                return cached

        documents = self.mongo_service.find(
            IDENTITIES, {"role": UserRole.ADMINISTRATOR.value}, sort=[("createdAt", 1)]
        )
        administrator_ids = [str(doc["_id"]) for doc in documents]

        if self.redis_service is not None:
            self.redis_service.cache_administrators(administrator_ids)
        return administrator_ids

    def list_administrators(self) -> List[Identity]:
        return self.find_identities(role=UserRole.ADMINISTRATOR)

    def invalidate_administrators(self) -> None:
        if self.redis_service is not None:
            self.redis_service.invalidate_administrators()
