# SPDX-License-Identifier: Apache-2.0

"""
Contract workflow domain logic.

This module contains pure functions for proposing, signing, ratifying and
cancelling housing contracts. The state machine is strictly forward:

    proposed -> signed_seeker | signed_host -> fully_signed -> completed
    any non-terminal state -> cancelled
"""

from datetime import datetime
from typing import List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from ..models.entities import Contract, Identity
from ..models.enums import UserRole, ContractStatus, StayDuration, NotificationCategory
from .notifications import build_notification, fan_out
from .results import ErrorKind, ValidationResult, WorkflowResult, check


def derive_end_date(start_date: datetime, duration: StayDuration) -> datetime:
    """Start date plus the duration's month offset, clamped to the month end."""
    return start_date + relativedelta(months=StayDuration(duration).months)


def validate_proposal(
    proposer: Identity,
    counterpart: Identity,
    terms: Optional[str],
    duration: Optional[StayDuration],
    start_date: Optional[datetime]
) -> ValidationResult:
    """
    Validate a contract proposal.

    Role and approval problems are reported as FORBIDDEN, missing fields as
    VALIDATION.
    """
    if not proposer.is_participant():
        return check(["Only seekers and hosts can propose contracts"], ErrorKind.FORBIDDEN)

    if proposer.id == counterpart.id:
        return check(["Cannot propose a contract to yourself"], ErrorKind.VALIDATION)

    if not counterpart.is_participant() or counterpart.role == proposer.role:
        return check(
            ["Counterpart must hold the opposite participant role"],
            ErrorKind.FORBIDDEN
        )

    if not proposer.is_approved() or not counterpart.is_approved():
        return check(
            ["Both parties must have approved profiles"],
            ErrorKind.FORBIDDEN
        )

    errors = []
    if not terms or not terms.strip():
        errors.append("terms: Contract terms are required")
    if not duration:
        errors.append("duration: Duration is required")
    if start_date is None:
        errors.append("start_date: Start date is required")

    return check(errors, ErrorKind.VALIDATION)


def propose_contract(
    proposer: Identity,
    counterpart: Identity,
    terms: Optional[str],
    duration: Optional[StayDuration],
    start_date: Optional[datetime]
) -> WorkflowResult:
    """
    Create a proposed contract between the proposer and the counterpart.

    The proposer fills its own side of the contract from its role; the end
    date is derived here once and never recomputed.

    Returns:
        WorkflowResult with the new contract and the counterpart notification
    """
    validation = validate_proposal(proposer, counterpart, terms, duration, start_date)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Contract proposal rejected")

    if proposer.role == UserRole.SEEKER:
        seeker_id, host_id = proposer.id, counterpart.id
    else:
        seeker_id, host_id = counterpart.id, proposer.id

    contract = Contract(
        seeker_id=seeker_id,
        host_id=host_id,
        proposed_by=proposer.id,
        terms=terms,
        duration=duration,
        start_date=start_date,
        end_date=derive_end_date(start_date, duration)
    )

    notification = build_notification(
        recipient_id=counterpart.id,
        title="New Contract Proposal",
        content=f"{proposer.display_name} has proposed a housing contract.",
        category=NotificationCategory.CONTRACT,
        related_entity="contract",
        related_id=contract.id
    )

    return WorkflowResult(success=True, entity=contract, notifications=[notification])


def validate_signature(contract: Contract, actor: Identity) -> ValidationResult:
    """The actor must be the party named for its own role on a live contract."""
    if actor.role not in (UserRole.SEEKER, UserRole.HOST):
        return check(["Only seekers and hosts can sign contracts"], ErrorKind.FORBIDDEN)

    if contract.party_role(actor.id) != actor.role:
        return check(["Only the named party can sign for this role"], ErrorKind.FORBIDDEN)

    if not contract.can_sign():
        return check(
            [f"Contract cannot be signed (current status: {contract.status})"],
            ErrorKind.INVALID_STATE
        )

    return check([], ErrorKind.VALIDATION)


def sign_contract(
    contract: Contract,
    actor: Identity,
    administrator_ids: Sequence[str]
) -> WorkflowResult:
    """
    Record the actor's signature.

    Re-signing is a no-op: the first timestamp is kept and ``changed`` is
    False. The second distinct signature moves the contract to
    fully_signed and notifies the administrator pool.
    """
    validation = validate_signature(contract, actor)
    if not validation.is_valid:
        return WorkflowResult.rejected(validation, "Contract signature rejected")

    updated = contract.model_copy(deep=True)
    if not updated.sign(actor.role):
        return WorkflowResult(success=True, entity=contract, changed=False)

    notifications = []
    if updated.status == ContractStatus.FULLY_SIGNED:
        notifications = fan_out(
            administrator_ids,
            title="Contract Ready for Approval",
            content="Both parties have signed a contract that awaits ratification.",
            category=NotificationCategory.CONTRACT,
            related_entity="contract",
            related_id=contract.id
        )
    else:
        notifications = [build_notification(
            recipient_id=contract.counterpart_of(actor.id),
            title="Contract Signed",
            content=f"{actor.display_name} has signed the contract.",
            category=NotificationCategory.CONTRACT,
            related_entity="contract",
            related_id=contract.id
        )]

    return WorkflowResult(success=True, entity=updated, notifications=notifications)


def approve_contract(contract: Contract, admin: Identity) -> WorkflowResult:
    """Ratify a fully signed contract and notify both parties."""
    if not admin.is_administrator():
        validation = check(["Administrator access required"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Contract approval rejected")

    if not contract.can_approve():
        validation = check(
            ["Contract must be signed by both parties before approval "
             f"(current status: {contract.status})"],
            ErrorKind.INVALID_STATE
        )
        return WorkflowResult.rejected(validation, "Contract approval rejected")

    updated = contract.model_copy(deep=True)
    updated.approve(admin.id)

    notifications = fan_out(
        [contract.seeker_id, contract.host_id],
        title="Contract Approved",
        content="Your housing contract has been approved by the admin team.",
        category=NotificationCategory.CONTRACT,
        related_entity="contract",
        related_id=contract.id
    )

    return WorkflowResult(success=True, entity=updated, notifications=notifications)


def cancel_contract(
    contract: Contract,
    actor: Identity,
    reason: Optional[str] = None
) -> WorkflowResult:
    """
    Cancel a contract that is not yet completed.

    Either party or an administrator may cancel. The other party is notified,
    or both when an administrator cancels.
    """
    is_party = contract.party_role(actor.id) is not None
    if not is_party and not actor.is_administrator():
        validation = check(["Only contract parties or administrators can cancel"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Contract cancellation rejected")

    if not contract.can_cancel():
        validation = check(
            [f"Contract cannot be cancelled (current status: {contract.status})"],
            ErrorKind.INVALID_STATE
        )
        return WorkflowResult.rejected(validation, "Contract cancellation rejected")

    updated = contract.model_copy(deep=True)
    updated.cancel(actor.id, reason)

    if is_party:
        recipients = [contract.counterpart_of(actor.id)]
    else:
        recipients = [contract.seeker_id, contract.host_id]

    content = "A housing contract has been cancelled."
    if reason:
        content = f"{content} Reason: {reason}"

    notifications = fan_out(
        recipients,
        title="Contract Cancelled",
        content=content,
        category=NotificationCategory.CONTRACT,
        related_entity="contract",
        related_id=contract.id
    )

    return WorkflowResult(success=True, entity=updated, notifications=notifications)


def can_view_contract(contract: Contract, viewer: Identity) -> bool:
    return viewer.is_administrator() or contract.party_role(viewer.id) is not None


def sort_newest_first(contracts: List[Contract]) -> List[Contract]:
    return sorted(contracts, key=lambda c: (c.created_at, c.id), reverse=True)
