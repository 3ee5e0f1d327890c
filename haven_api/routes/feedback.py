# SPDX-License-Identifier: Apache-2.0

"""
Feedback endpoints for any authenticated identity.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag

from ..middleware.auth import require_jwt
from ..models.requests import SubmitFeedbackRequest
from ..utils.request import current_identity

feedback_tag = Tag(name="Feedback", description="Feedback, complaints and suggestions")
feedback_bp = APIBlueprint(
    'feedback',
    __name__,
    url_prefix='/api/feedback',
    abp_tags=[feedback_tag]
)


@feedback_bp.post('')
@require_jwt
def submit_feedback(body: SubmitFeedbackRequest):
    author = current_identity()
    feedback = current_app.feedback_service.submit(author, body.type, body.subject, body.content)
    return jsonify(current_app.hal_formatter.format_feedback(feedback, author)), 201


@feedback_bp.get('')
@require_jwt
def list_own_feedback():
    author = current_identity()
    items = current_app.feedback_service.list_own_feedback(author)
    return jsonify(current_app.hal_formatter.format_feedback_collection(
        items, author, "/api/feedback"
    ))
