# SPDX-License-Identifier: Apache-2.0

"""
Discovery service: approved counterpart listings.
"""

import logging
from typing import Dict, List, Optional, Tuple

from opentelemetry import trace

from ..domain import discovery as discovery_domain
from ..domain.discovery import HostFilters
from ..domain.results import WorkflowResult
from ..middleware.error_handler import raise_for_result
from ..models.entities import HostProfile, Identity, Profile, SeekerProfile, profile_from_document
from ..models.enums import ProfileStatus, UserRole
from .identity import IdentityService
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PROFILES = "profiles"


class DiscoveryService:
    """Lists approved hosts for seekers and approved seekers for hosts."""

    def __init__(self, mongo_service: MongoDBService, identity_service: IdentityService):
        self.mongo_service = mongo_service
        self.identity_service = identity_service

    def _check_access(self, requester: Identity) -> None:
        validation = discovery_domain.validate_browse(requester)
        if not validation.is_valid:
            raise_for_result(WorkflowResult.rejected(validation, "Browsing not allowed"))

    def _approved_with_profiles(self, role: UserRole) -> Tuple[List[Identity], Dict[str, Profile]]:
        identities = self.identity_service.find_identities(
            role=role, profile_status=ProfileStatus.APPROVED.value
        )
        if not identities:
            return [], {}

        documents = self.mongo_service.find(
            PROFILES, {"identityId": {"$in": [identity.id for identity in identities]}}
        )
        profiles = {doc["identityId"]: profile_from_document(doc) for doc in documents}
        return identities, profiles

    def list_available_hosts(
        self,
        requester: Identity,
        filters: Optional[HostFilters] = None
    ) -> List[Tuple[Identity, HostProfile]]:
        """Approved hosts with a profile, narrowed by the optional filters."""
        with tracer.start_as_current_span("discovery.hosts") as span:
            self._check_access(requester)

            identities, profiles = self._approved_with_profiles(UserRole.HOST)
            hosts = discovery_domain.approved_hosts(identities, profiles, filters)

            span.set_attribute("discovery.results", len(hosts))
            logger.debug("Hosts listed", extra={"requester_id": requester.id, "results": len(hosts)})
            return hosts

    def list_available_seekers(self, requester: Identity) -> List[Tuple[Identity, SeekerProfile]]:
        """Approved seekers with a profile."""
        with tracer.start_as_current_span("discovery.seekers") as span:
            self._check_access(requester)

            identities, profiles = self._approved_with_profiles(UserRole.SEEKER)
            seekers = discovery_domain.approved_seekers(identities, profiles)

            span.set_attribute("discovery.results", len(seekers))
            return seekers
