# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit service for administrator and workflow action logging with OpenTelemetry correlation.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any
from opentelemetry import trace

from .mongodb import MongoDBService
from ..models.entities import AuditLog

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AuditFilters:
    """Filters for audit log queries."""

    def __init__(
        self,
        actor_id: Optional[str] = None,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ):
        self.actor_id = actor_id
        self.entity = entity
        self.entity_id = entity_id
        self.action = action
        self.start_date = start_date
        self.end_date = end_date

    def to_mongo_query(self) -> Dict[str, Any]:
        """Convert filters to MongoDB query."""
        query = {}

        if self.actor_id:
            query["actorId"] = self.actor_id

        if self.entity:
            query["entity"] = self.entity

        if self.entity_id:
            query["entityId"] = self.entity_id

        if self.action:
            query["action"] = self.action

        # Date range filter
        if self.start_date or self.end_date:
            date_filter = {}
            if self.start_date:
                date_filter["$gte"] = self.start_date
            if self.end_date:
                date_filter["$lte"] = self.end_date
            query["timestamp"] = date_filter

        return query


class AuditService:
    """Service for audit logging with MongoDB persistence."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = "audit_logs"
        logger.info("Audit service initialized")

    def log_action(
        self,
        actor_id: str,
        entity: str,
        entity_id: str,
        action: str,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        session: Any = None
    ) -> str:
        """
        Log an audit trail entry with trace correlation and structured logging.

        Args:
            actor_id: Identity performing the action
            entity: Type of entity being acted upon
            entity_id: ID of the specific entity
            action: Action being performed
            before: State before the action (optional)
            after: State after the action (optional)
            session: Transaction session of the surrounding unit of work

        Returns:
            str: ID of the created audit log entry
        """
        with tracer.start_as_current_span("audit.log_action") as span:
            span_context = span.get_span_context()
            trace_id = format(span_context.trace_id, "032x") if span_context.is_valid else None

            entry = AuditLog(
                actor_id=actor_id,
                entity=entity,
                entity_id=entity_id,
                action=action,
                before=before,
                after=after,
                trace_id=trace_id
            )

            span.set_attributes({
                "audit.entity": entity,
                "audit.action": action,
                "audit.actor_id": actor_id,
                "audit.entity_id": entity_id
            })

            document = {
                "_id": entry.id,
                "timestamp": entry.timestamp,
                "actorId": entry.actor_id,
                "entity": entry.entity,
                "entityId": entry.entity_id,
                "action": entry.action,
                "before": entry.before,
                "after": entry.after,
                "traceId": entry.trace_id
            }

            try:
                audit_id = self.mongo_service.create(self.collection_name, document, session=session)
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to create audit trail entry",
                    extra={
                        "entity": entity,
                        "entity_id": entity_id,
                        "action": action,
                        "actor_id": actor_id,
                        "error": str(e)
                    },
                    exc_info=True
                )
                raise

            changes_count = 0
            if before and after:
                changes_count = len(self._calculate_changes(before, after))

            logger.info(
                "Audit trail entry created",
                extra={
                    "audit_id": audit_id,
                    "entity": entity,
                    "entity_id": entity_id,
                    "action": action,
                    "actor_id": actor_id,
                    "trace_id": trace_id,
                    "changes_count": changes_count,
                    "audit_category": "business_action"
                }
            )

            return audit_id

    def query_audit_logs(self, filters: AuditFilters, limit: int = 100) -> List[AuditLog]:
        """Newest-first audit entries matching the filters."""
        with tracer.start_as_current_span("audit.query_audit_logs") as span:
            query = filters.to_mongo_query()
            span.set_attribute("audit.filter_count", len(query))

            documents = self.mongo_service.find(
                self.collection_name,
                query,
                sort=[("timestamp", -1)],
                limit=limit
            )

            return [
                AuditLog(
                    id=str(doc["_id"]),
                    timestamp=doc["timestamp"],
                    actor_id=doc["actorId"],
                    entity=doc["entity"],
                    entity_id=doc["entityId"],
                    action=doc["action"],
                    before=doc.get("before"),
                    after=doc.get("after"),
                    trace_id=doc.get("traceId")
                )
                for doc in documents
            ]

    def _calculate_changes(self, before: Dict[str, Any], after: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Calculate field-level changes for detailed audit trail.

        Args:
            before: State before the change
            after: State after the change

        Returns:
            List[Dict]: List of field changes
        """
        changes = []

        all_keys = set(before.keys()) | set(after.keys())

        for key in all_keys:
            # Skip timestamp and internal fields
            if key in ["updatedAt", "_id", "id"]:
                continue

            old_value = before.get(key)
            new_value = after.get(key)

            if old_value != new_value:
                changes.append({
                    "field": key,
                    "old_value": old_value,
                    "new_value": new_value
                })

        return changes
