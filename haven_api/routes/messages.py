# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Messaging endpoints.
"""

import logging

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace

from ..middleware.auth import require_jwt
from ..models.requests import CounterpartPath, MessagePath, SendMessageRequest
from ..services.hal import serialize
from ..utils.request import current_identity

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

messages_tag = Tag(name="Messages", description="Point-to-point messaging")
messages_bp = APIBlueprint(
    'messages',
    __name__,
    url_prefix='/api/messages',
    abp_tags=[messages_tag]
)


@messages_bp.post('')
@require_jwt
def send_message(body: SendMessageRequest):
    """Send a message and push it to both participants."""
    sender = current_identity()
    message = current_app.messaging_service.send_message(sender, body.receiver_id, body.content)
    return jsonify(current_app.hal_formatter.format_message(message, sender)), 201


@messages_bp.get('')
@require_jwt
def list_messages():
    """Every message the caller sent or received, newest first."""
    viewer = current_identity()
    messages = current_app.messaging_service.list_user_messages(viewer)
    return jsonify(current_app.hal_formatter.format_message_collection(
        messages, viewer, "/api/messages"
    ))


@messages_bp.get('/conversations')
@require_jwt
def list_conversations():
    viewer = current_identity()
    summaries = current_app.messaging_service.list_conversations(viewer)
    items = [
        {
            "counterpartId": summary.counterpart_id,
            "lastMessage": serialize(summary.last_message),
            "unreadCount": summary.unread_count,
            "messageCount": summary.message_count,
            "_links": {
                "conversation": {
                    "href": current_app.hal_formatter.builder.link_builder.build_link(
                        f"/api/messages/conversations/{summary.counterpart_id}"
                    ).href
                }
            }
        }
        for summary in summaries
    ]
    return jsonify(current_app.hal_formatter.builder.build_collection_response(
        items, "/api/messages/conversations"
    ))


@messages_bp.get('/conversations/<counterpart_id>')
@require_jwt
def get_conversation(path: CounterpartPath):
    """Full conversation with a counterpart, oldest first."""
    viewer = current_identity()
    messages = current_app.messaging_service.get_conversation(viewer, path.counterpart_id)
    return jsonify(current_app.hal_formatter.format_message_collection(
        messages, viewer, f"/api/messages/conversations/{path.counterpart_id}"
    ))


@messages_bp.post('/conversations/<counterpart_id>/read')
@require_jwt
def mark_conversation_read(path: CounterpartPath):
    viewer = current_identity()
    marked = current_app.messaging_service.mark_conversation_read(viewer, path.counterpart_id)
    return jsonify({"marked": marked})


@messages_bp.post('/<message_id>/delivered')
@require_jwt
def mark_delivered(path: MessagePath):
    viewer = current_identity()
    message = current_app.messaging_service.mark_delivered(viewer, path.message_id)
    return jsonify(current_app.hal_formatter.format_message(message, viewer))


@messages_bp.post('/<message_id>/read')
@require_jwt
def mark_read(path: MessagePath):
    viewer = current_identity()
    message = current_app.messaging_service.mark_read(viewer, path.message_id)
    return jsonify(current_app.hal_formatter.format_message(message, viewer))
