# SPDX-License-Identifier: Apache-2.0

"""
Discovery view domain logic.

The discovery view exposes approved counterpart profiles to approved
identities. Filters only ever narrow the approved result set.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.entities import Identity, HostProfile, SeekerProfile
from ..models.enums import AccommodationType, UserRole
from .results import ErrorKind, ValidationResult, check


@dataclass
class HostFilters:
    """Optional filters for the host listing."""
    location: Optional[str] = None
    accommodation_type: Optional[AccommodationType] = None
    min_occupants: Optional[int] = None
    pet_friendly: Optional[bool] = None
    search_term: Optional[str] = None


def validate_browse(requester: Identity) -> ValidationResult:
    """Only approved identities may browse counterparts."""
    if requester.is_approved():
        return check([], ErrorKind.VALIDATION)
    return check(
        [f"Profile must be approved to browse (current status: {requester.profile_status})"],
        ErrorKind.FORBIDDEN
    )


def join_approved(
    identities: Sequence[Identity],
    profiles_by_identity: Dict[str, object],
    role: UserRole
) -> List[Tuple[Identity, object]]:
    """Approved identities of the role that have a profile, paired with it."""
    pairs = []
    for identity in identities:
        if identity.role != role or not identity.is_approved():
            continue
        profile = profiles_by_identity.get(identity.id)
        if profile is None:
            continue
        pairs.append((identity, profile))
    return pairs


def _matches_search(identity: Identity, profile: HostProfile, term: str) -> bool:
    haystack = [
        identity.first_name, identity.last_name, profile.location,
        profile.description, profile.house_rules
    ] + list(profile.amenities)
    return any(term in value.lower() for value in haystack if value)


def filter_hosts(
    hosts: List[Tuple[Identity, HostProfile]],
    filters: Optional[HostFilters]
) -> List[Tuple[Identity, HostProfile]]:
    """
    Filter approved hosts by criteria.

    Args:
        hosts: Approved (identity, host profile) pairs
        filters: Filter criteria, None for no filtering

    Returns:
        Filtered list of pairs
    """
    if filters is None:
        return hosts

    filtered = hosts

    # Filter by location substring
    if filters.location:
        location = filters.location.lower()
        filtered = [(i, p) for i, p in filtered if location in p.location.lower()]

    # Filter by accommodation type
    if filters.accommodation_type:
        filtered = [(i, p) for i, p in filtered if p.accommodation_type == filters.accommodation_type]

    # Filter by capacity
    if filters.min_occupants is not None:
        filtered = [(i, p) for i, p in filtered if p.max_occupants >= filters.min_occupants]

    if filters.pet_friendly is not None:
        filtered = [(i, p) for i, p in filtered if p.pet_friendly == filters.pet_friendly]

    # Free text over names, location, description and amenities
    if filters.search_term:
        term = filters.search_term.lower()
        filtered = [(i, p) for i, p in filtered if _matches_search(i, p, term)]

    return filtered


def approved_hosts(
    identities: Sequence[Identity],
    profiles_by_identity: Dict[str, HostProfile],
    filters: Optional[HostFilters] = None
) -> List[Tuple[Identity, HostProfile]]:
    hosts = [
        (identity, profile)
        for identity, profile in join_approved(identities, profiles_by_identity, UserRole.HOST)
        if isinstance(profile, HostProfile)
    ]
    return filter_hosts(hosts, filters)


def approved_seekers(
    identities: Sequence[Identity],
    profiles_by_identity: Dict[str, SeekerProfile]
) -> List[Tuple[Identity, SeekerProfile]]:
    return [
        (identity, profile)
        for identity, profile in join_approved(identities, profiles_by_identity, UserRole.SEEKER)
        if isinstance(profile, SeekerProfile)
    ]
