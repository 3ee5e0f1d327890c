# SPDX-License-Identifier: Apache-2.0

"""
Identity and role rules.
"""

from typing import Optional

from ..models.base import utcnow
from ..models.entities import Identity
from ..models.enums import UserRole
from .results import ErrorKind, WorkflowResult, check


def new_identity(
    subject: str,
    email: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    profile_image_url: Optional[str] = None,
    administrator: bool = False
) -> Identity:
    """Create the identity record for a first-time subject."""
    return Identity(
        id=subject,
        email=email,
        first_name=first_name,
        last_name=last_name,
        profile_image_url=profile_image_url,
        role=UserRole.ADMINISTRATOR if administrator else UserRole.SEEKER
    )


def select_role(identity: Identity, role: UserRole, has_profile: bool) -> WorkflowResult:
    """
    Choose seeker or host at onboarding.

    The role is fixed once a profile has been submitted, and the
    administrator role is never self-assigned.
    """
    if role == UserRole.ADMINISTRATOR:
        validation = check(["The administrator role cannot be self-assigned"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Role selection rejected")

    if identity.is_administrator():
        validation = check(["Administrators cannot change their role"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Role selection rejected")

    if has_profile:
        validation = check(
            ["Role cannot change after a profile has been submitted"],
            ErrorKind.INVALID_STATE
        )
        return WorkflowResult.rejected(validation, "Role selection rejected")

    if identity.role == role and identity.role_selected_at is not None:
        return WorkflowResult(success=True, entity=identity, changed=False)

    updated = identity.model_copy(deep=True)
    updated.role = role
    updated.role_selected_at = utcnow()
    updated.update_timestamp()
    return WorkflowResult(success=True, entity=updated)


def promote_to_administrator(
    admin: Identity,
    target: Identity,
    has_profile: bool = False,
    open_contracts: int = 0
) -> WorkflowResult:
    """
    Grant the administrator role; only administrators may do this.

    Participants who already onboarded keep their role: a submitted profile
    or a contract still in progress blocks promotion.
    """
    if not admin.is_administrator():
        validation = check(["Administrator access required"], ErrorKind.FORBIDDEN)
        return WorkflowResult.rejected(validation, "Promotion rejected")

    if target.is_administrator():
        return WorkflowResult(success=True, entity=target, changed=False)

    errors = []
    if has_profile:
        errors.append("Identity has already submitted a profile")
    if open_contracts:
        errors.append(f"Identity is party to {open_contracts} contract(s) in progress")
    if errors:
        return WorkflowResult.rejected(check(errors, ErrorKind.INVALID_STATE), "Promotion rejected")

    updated = target.model_copy(deep=True)
    updated.role = UserRole.ADMINISTRATOR
    updated.update_timestamp()
    return WorkflowResult(success=True, entity=updated)
