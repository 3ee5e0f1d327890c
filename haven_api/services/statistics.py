# SPDX-License-Identifier: Apache-2.0

"""
Administrator dashboard counters.
"""

import logging

from opentelemetry import trace

from ..middleware.error_handler import ForbiddenError
from ..models.entities import Identity
from ..models.enums import ContractStatus, ProfileStatus, UserRole
from ..models.responses import StatisticsResponse
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class StatisticsService:
    """Aggregate counts over identities, profiles and contracts."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service

    def _pending_approvals(self) -> int:
        pending_ids = [
            doc["_id"] for doc in self.mongo_service.find(
                "identities",
                {
                    "profileStatus": ProfileStatus.PENDING.value,
                    "role": {"$in": [UserRole.SEEKER.value, UserRole.HOST.value]}
                }
            )
        ]
        if not pending_ids:
            return 0
        return self.mongo_service.count("profiles", {"identityId": {"$in": pending_ids}})

    def get_statistics(self, admin: Identity) -> StatisticsResponse:
        if not admin.is_administrator():
            raise ForbiddenError("Administrator access required")

        with tracer.start_as_current_span("statistics.get") as span:
            statistics = StatisticsResponse(
                pending_approvals=self._pending_approvals(),
                active_matches=self.mongo_service.count(
                    "contracts", {"status": ContractStatus.COMPLETED.value}
                ),
                registered_seekers=self.mongo_service.count(
                    "identities", {"role": UserRole.SEEKER.value}
                ),
                verified_hosts=self.mongo_service.count(
                    "identities",
                    {"role": UserRole.HOST.value, "profileStatus": ProfileStatus.APPROVED.value}
                ),
                contracts_awaiting_ratification=self.mongo_service.count(
                    "contracts", {"status": ContractStatus.FULLY_SIGNED.value}
                )
            )
            span.set_attribute("statistics.pending_approvals", statistics.pending_approvals)
            return statistics
