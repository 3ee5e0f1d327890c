# SPDX-License-Identifier: Apache-2.0

"""
Feedback service.
"""

import logging
from typing import List, Optional

from opentelemetry import trace

from ..domain import feedback as feedback_domain
from ..middleware.error_handler import (
    ForbiddenError, InvalidStateTransitionError, NotFoundError, raise_for_result
)
from ..models.entities import Feedback, Identity
from ..models.enums import FeedbackStatus, FeedbackType
from .audit import AuditService
from .mongodb import MongoDBService
from .notifications import NotificationService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "feedback"


class FeedbackService:
    """Feedback submission by any identity and handling by administrators."""

    def __init__(
        self,
        mongo_service: MongoDBService,
        notification_service: NotificationService,
        audit_service: Optional[AuditService] = None
    ):
        self.mongo_service = mongo_service
        self.notification_service = notification_service
        self.audit_service = audit_service or AuditService(mongo_service)

    def submit(
        self,
        author: Identity,
        type: FeedbackType,
        subject: Optional[str],
        content: Optional[str]
    ) -> Feedback:
        with tracer.start_as_current_span("feedback.submit") as span:
            span.set_attributes({"author.id": author.id, "feedback.type": str(type)})

            feedback = raise_for_result(
                feedback_domain.submit_feedback(author, type, subject, content)
            ).entity
            self.mongo_service.create(COLLECTION, feedback.to_document())

            logger.info("Feedback submitted", extra={
                "feedback_id": feedback.id,
                "author_id": author.id,
                "feedback_type": feedback.type
            })
            return feedback

    def list_feedback(self, admin: Identity, status: Optional[FeedbackStatus] = None) -> List[Feedback]:
        """All feedback for administrators, newest first."""
        if not admin.is_administrator():
            raise ForbiddenError("Administrator access required")

        query = {}
        if status is not None:
            query["status"] = FeedbackStatus(status).value
        documents = self.mongo_service.find(COLLECTION, query, sort=[("createdAt", -1), ("_id", -1)])
        return [Feedback.from_document(doc) for doc in documents]

    def list_own_feedback(self, author: Identity) -> List[Feedback]:
        documents = self.mongo_service.find(
            COLLECTION, {"authorId": author.id}, sort=[("createdAt", -1), ("_id", -1)]
        )
        return [Feedback.from_document(doc) for doc in documents]

    def respond_to_feedback(
        self,
        admin: Identity,
        feedback_id: str,
        status: FeedbackStatus,
        response: Optional[str] = None
    ) -> Feedback:
        """Advance the feedback status, record the response and notify the author."""
        with tracer.start_as_current_span("feedback.respond") as span:
            span.set_attributes({"feedback.id": feedback_id, "admin.id": admin.id})

            feedback = Feedback.from_document(self.mongo_service.find_by_id(COLLECTION, feedback_id))
            if feedback is None:
                raise NotFoundError(f"Feedback {feedback_id} not found")

            result = raise_for_result(
                feedback_domain.respond_to_feedback(feedback, admin, status, response)
            )
            updated = result.entity

            with self.mongo_service.transaction() as session:
                applied = self.mongo_service.update_one(
                    COLLECTION,
                    feedback_id,
                    updated.to_update_document(),
                    guard={"status": feedback.status},
                    session=session
                )
                if not applied:
                    raise InvalidStateTransitionError("Feedback status changed concurrently")

                self.audit_service.log_action(
                    actor_id=admin.id,
                    entity="feedback",
                    entity_id=feedback_id,
                    action="respond",
                    before={"status": feedback.status},
                    after={"status": updated.status, "admin_response": updated.admin_response},
                    session=session
                )
                self.notification_service.persist(result.notifications, session=session)

            self.notification_service.push(result.notifications)

            logger.info("Feedback updated", extra={
                "feedback_id": feedback_id,
                "admin_id": admin.id,
                "status": updated.status
            })
            return updated
