# SPDX-License-Identifier: Apache-2.0

"""
Contract workflow service.

Persists contract transitions with optimistic concurrency: every write is
guarded on the stored state the decision was made against, so concurrent
signatures or approvals cannot overwrite each other.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from ..domain import contracts as contract_domain
from ..middleware.error_handler import (
    ForbiddenError, InvalidStateTransitionError, NotFoundError, raise_for_result
)
from ..models.entities import Contract, Identity
from ..models.enums import ContractStatus, StayDuration, UserRole
from .audit import AuditService
from .identity import IdentityService
from .mongodb import MongoDBService
from .notifications import NotificationService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "contracts"

SIGN_ATTEMPTS = 3

SIGNATURE_FIELDS = {
    UserRole.SEEKER: "seekerSignedAt",
    UserRole.HOST: "hostSignedAt",
}


def _status_snapshot(contract: Contract) -> Dict[str, Any]:
    return {
        "status": contract.status,
        "seeker_signed_at": contract.seeker_signed_at.isoformat() if contract.seeker_signed_at else None,
        "host_signed_at": contract.host_signed_at.isoformat() if contract.host_signed_at else None
    }


class ContractService:
    """Propose, sign, ratify and cancel housing contracts."""

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

    def _load(self, contract_id: str) -> Contract:
        contract = Contract.from_document(self.mongo_service.find_by_id(COLLECTION, contract_id))
        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found")
        return contract

    def get_contract(self, viewer: Identity, contract_id: str) -> Contract:
        """Contract visible to its parties and to administrators."""
        contract = self._load(contract_id)
        if not contract_domain.can_view_contract(contract, viewer):
            raise ForbiddenError("Contract is not visible to this identity")
        return contract

    def list_contracts(self, viewer: Identity) -> List[Contract]:
        """Contracts naming the viewer, newest first. Administrators see all."""
        if viewer.is_administrator():
            query = {}
        else:
            query = {"$or": [{"seekerId": viewer.id}, {"hostId": viewer.id}]}

        documents = self.mongo_service.find(COLLECTION, query, sort=[("createdAt", -1), ("_id", -1)])
        return contract_domain.sort_newest_first([Contract.from_document(doc) for doc in documents])

    def list_contracts_awaiting_ratification(self, admin: Identity) -> List[Contract]:
        if not admin.is_administrator():
            raise ForbiddenError("Administrator access required")
        documents = self.mongo_service.find(
            COLLECTION,
            {"status": ContractStatus.FULLY_SIGNED.value},
            sort=[("updatedAt", 1)]
        )
        return [Contract.from_document(doc) for doc in documents]

    def propose(
        self,
        proposer: Identity,
        counterpart_id: str,
        terms: Optional[str],
        duration: Optional[StayDuration],
        start_date: Optional[datetime]
    ) -> Contract:
        """
        Create a proposed contract and notify the counterpart.

        Raises:
            NotFoundError: Counterpart does not exist
            ForbiddenError: Roles or approval status do not allow a proposal
            ValidationError: Terms, duration or start date missing
        """
        with tracer.start_as_current_span("contracts.propose") as span:
            span.set_attributes({"proposer.id": proposer.id, "counterpart.id": counterpart_id})

            counterpart = self.identity_service.require_identity(counterpart_id)
            result = raise_for_result(contract_domain.propose_contract(
                proposer, counterpart, terms, duration, start_date
            ))
            contract = result.entity

            with self.mongo_service.transaction() as session:
                self.mongo_service.create(COLLECTION, contract.to_document(), session=session)
                self.notification_service.persist(result.notifications, session=session)

            self.notification_service.push(result.notifications)

            span.set_attribute("contract.id", contract.id)
            logger.info("Contract proposed", extra={
                "contract_id": contract.id,
                "seeker_id": contract.seeker_id,
                "host_id": contract.host_id,
                "proposed_by": proposer.id
            })
            return contract

    def sign(self, actor: Identity, contract_id: str) -> Contract:
        """
        Record the actor's signature.

        The write only applies if the actor's signature is still empty and
        the status is unchanged since the read. On a lost race the contract
        is reloaded and the decision re-made, so two parties signing at the
        same moment always end in fully_signed.
        """
        with tracer.start_as_current_span("contracts.sign") as span:
            span.set_attributes({"contract.id": contract_id, "actor.id": actor.id})

            administrator_ids = self.identity_service.list_administrator_ids()

            for attempt in range(SIGN_ATTEMPTS):
                contract = self._load(contract_id)
                result = raise_for_result(
                    contract_domain.sign_contract(contract, actor, administrator_ids)
                )
                if not result.changed:
                    span.set_attribute("contract.already_signed", True)
                    return contract

                updated = result.entity
                signature_field = SIGNATURE_FIELDS[UserRole(actor.role)]

                with self.mongo_service.transaction() as session:
                    applied = self.mongo_service.update_one(
                        COLLECTION,
                        contract_id,
                        {
                            signature_field: updated.signature_of(actor.role),
                            "status": updated.status,
                            "updatedAt": updated.updated_at
                        },
                        guard={signature_field: None, "status": contract.status},
                        session=session
                    )
                    if applied:
                        self.audit_service.log_action(
                            actor_id=actor.id,
                            entity="contract",
                            entity_id=contract_id,
                            action="sign",
                            before=_status_snapshot(contract),
                            after=_status_snapshot(updated),
                            session=session
                        )
                        self.notification_service.persist(result.notifications, session=session)

                if applied:
                    self.notification_service.push(result.notifications)
                    span.set_attribute("contract.status", str(updated.status))
                    logger.info("Contract signed", extra={
                        "contract_id": contract_id,
                        "actor_id": actor.id,
                        "status": updated.status,
                        "attempt": attempt + 1
                    })
                    return updated

                logger.warning("Contract changed during signature, retrying", extra={
                    "contract_id": contract_id,
                    "actor_id": actor.id,
                    "attempt": attempt + 1
                })

            raise InvalidStateTransitionError("Contract was modified concurrently, please retry")

    def approve(self, admin: Identity, contract_id: str) -> Contract:
        """Ratify a fully signed contract; audited."""
        with tracer.start_as_current_span("contracts.approve") as span:
            span.set_attributes({"contract.id": contract_id, "admin.id": admin.id})

            contract = self._load(contract_id)
            result = raise_for_result(contract_domain.approve_contract(contract, admin))
            updated = result.entity

            with self.mongo_service.transaction() as session:
                applied = self.mongo_service.update_one(
                    COLLECTION,
                    contract_id,
                    {
                        "status": updated.status,
                        "adminApprovedAt": updated.admin_approved_at,
                        "adminApprovedBy": updated.admin_approved_by,
                        "updatedAt": updated.updated_at
                    },
                    guard={"status": ContractStatus.FULLY_SIGNED.value},
                    session=session
                )
                if not applied:
                    raise InvalidStateTransitionError("Contract is no longer awaiting approval")

                self.audit_service.log_action(
                    actor_id=admin.id,
                    entity="contract",
                    entity_id=contract_id,
                    action="approve",
                    before=_status_snapshot(contract),
                    after=_status_snapshot(updated),
                    session=session
                )
                self.notification_service.persist(result.notifications, session=session)

            self.notification_service.push(result.notifications)

            logger.info("Contract approved", extra={"contract_id": contract_id, "admin_id": admin.id})
            return updated

    def cancel(self, actor: Identity, contract_id: str, reason: Optional[str] = None) -> Contract:
        """Cancel a contract that is not yet completed; audited."""
        with tracer.start_as_current_span("contracts.cancel") as span:
            span.set_attributes({"contract.id": contract_id, "actor.id": actor.id})

            contract = self._load(contract_id)
            result = raise_for_result(contract_domain.cancel_contract(contract, actor, reason))
            updated = result.entity

            with self.mongo_service.transaction() as session:
                applied = self.mongo_service.update_one(
                    COLLECTION,
                    contract_id,
                    {
                        "status": updated.status,
                        "cancelledAt": updated.cancelled_at,
                        "cancelledBy": updated.cancelled_by,
                        "cancellationReason": updated.cancellation_reason,
                        "updatedAt": updated.updated_at
                    },
                    guard={"status": contract.status},
                    session=session
                )
                if not applied:
                    raise InvalidStateTransitionError("Contract status changed concurrently")

                self.audit_service.log_action(
                    actor_id=actor.id,
                    entity="contract",
                    entity_id=contract_id,
                    action="cancel",
                    before=_status_snapshot(contract),
                    after={**_status_snapshot(updated), "reason": reason},
                    session=session
                )
                self.notification_service.persist(result.notifications, session=session)

            self.notification_service.push(result.notifications)

            logger.info("Contract cancelled", extra={
                "contract_id": contract_id,
                "actor_id": actor.id,
                "by_administrator": actor.is_administrator()
            })
            return updated
