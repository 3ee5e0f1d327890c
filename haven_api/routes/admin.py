# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Administrator endpoints: profile review, promotion, ratification queue,
feedback handling, statistics and the audit trail.

Administrator checks happen in the services so that every entry point
enforces them.
"""

import logging

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace

from ..middleware.auth import require_jwt
from ..middleware.error_handler import ForbiddenError
from ..models.requests import (
    AuditQuery, FeedbackListQuery, FeedbackPath, IdentityPath,
    ReopenProfileRequest, RespondFeedbackRequest, ReviewProfileRequest
)
from ..services.audit import AuditFilters
from ..utils.request import current_identity, to_naive_utc

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

admin_tag = Tag(name="Administration", description="Administrator workflows")
admin_bp = APIBlueprint(
    'admin',
    __name__,
    url_prefix='/api/admin',
    abp_tags=[admin_tag]
)


@admin_bp.get('/profiles/pending')
@require_jwt
def list_pending_profiles():
    """Pending profiles awaiting review, oldest submission first."""
    admin = current_identity()
    pairs = current_app.approval_service.list_pending_profiles(admin)
    return jsonify(current_app.hal_formatter.format_profile_collection(
        pairs, admin, "/api/admin/profiles/pending"
    ))


@admin_bp.post('/profiles/<identity_id>/review')
@require_jwt
def review_profile(path: IdentityPath, body: ReviewProfileRequest):
    """Approve or reject a pending profile."""
    admin = current_identity()
    with tracer.start_as_current_span(
        "admin.review_profile",
        attributes={"identity.id": path.identity_id, "review.decision": body.decision}
    ):
        updated = current_app.approval_service.review_profile(
            admin, path.identity_id, body.decision, body.note
        )
        return jsonify(current_app.hal_formatter.format_identity(updated, admin))


@admin_bp.post('/profiles/<identity_id>/reopen')
@require_jwt
def reopen_profile(path: IdentityPath, body: ReopenProfileRequest):
    """Return an approved or rejected profile to the review queue."""
    admin = current_identity()
    updated = current_app.approval_service.reopen_profile(admin, path.identity_id, body.note)
    return jsonify(current_app.hal_formatter.format_identity(updated, admin))


@admin_bp.post('/identities/<identity_id>/promote')
@require_jwt
def promote_identity(path: IdentityPath):
    admin = current_identity()
    updated = current_app.identity_service.promote_to_administrator(admin, path.identity_id)
    return jsonify(current_app.hal_formatter.format_identity(updated, admin))


@admin_bp.get('/contracts/awaiting-ratification')
@require_jwt
def list_contracts_awaiting_ratification():
    admin = current_identity()
    contracts = current_app.contract_service.list_contracts_awaiting_ratification(admin)
    return jsonify(current_app.hal_formatter.format_contract_collection(
        contracts, admin, "/api/admin/contracts/awaiting-ratification"
    ))


@admin_bp.get('/feedback')
@require_jwt
def list_feedback(query: FeedbackListQuery):
    admin = current_identity()
    items = current_app.feedback_service.list_feedback(admin, query.status)
    return jsonify(current_app.hal_formatter.format_feedback_collection(
        items, admin, "/api/admin/feedback"
    ))


@admin_bp.post('/feedback/<feedback_id>/respond')
@require_jwt
def respond_to_feedback(path: FeedbackPath, body: RespondFeedbackRequest):
    admin = current_identity()
    feedback = current_app.feedback_service.respond_to_feedback(
        admin, path.feedback_id, body.status, body.response
    )
    return jsonify(current_app.hal_formatter.format_feedback(feedback, admin))


@admin_bp.get('/statistics')
@require_jwt
def get_statistics():
    """Dashboard counters."""
    admin = current_identity()
    statistics = current_app.statistics_service.get_statistics(admin)
    return jsonify(statistics.model_dump())


@admin_bp.get('/audit')
@require_jwt
def query_audit_logs(query: AuditQuery):
    """Newest-first audit trail entries."""
    admin = current_identity()
    if not admin.is_administrator():
        raise ForbiddenError("Administrator access required")

    filters = AuditFilters(
        actor_id=query.actor_id,
        entity=query.entity,
        entity_id=query.entity_id,
        action=query.action,
        start_date=to_naive_utc(query.start_date),
        end_date=to_naive_utc(query.end_date)
    )
    entries = current_app.audit_service.query_audit_logs(filters, limit=query.limit)
    items = [entry.model_dump(mode="json") for entry in entries]
    return jsonify(current_app.hal_formatter.builder.build_collection_response(items, "/api/admin/audit"))
