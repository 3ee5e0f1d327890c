# SPDX-License-Identifier: Apache-2.0

"""
Notification outbox endpoints.

This module implements listing, unread count and read acknowledgement of the
caller's notifications.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag

from ..middleware.auth import require_jwt
from ..models.requests import NotificationListQuery, NotificationPath
from ..models.responses import UnreadCountResponse
from ..utils.request import current_identity

notifications_tag = Tag(name="Notifications", description="Per-identity notification outbox")
notifications_bp = APIBlueprint(
    'notifications',
    __name__,
    url_prefix='/api/notifications',
    abp_tags=[notifications_tag]
)


@notifications_bp.get('')
@require_jwt
def list_notifications(query: NotificationListQuery):
    """Caller's notifications, newest first."""
    recipient = current_identity()
    service = current_app.notification_service
    notifications = service.list_notifications(recipient.id, unread_only=query.unread_only)
    return jsonify(current_app.hal_formatter.format_notification_collection(
        notifications, service.unread_count(recipient.id)
    ))


@notifications_bp.get('/unread-count')
@require_jwt
def unread_count():
    recipient = current_identity()
    response = UnreadCountResponse(unread=current_app.notification_service.unread_count(recipient.id))
    return jsonify(response.model_dump())


@notifications_bp.post('/<notification_id>/read')
@require_jwt
def mark_read(path: NotificationPath):
    recipient = current_identity()
    notification = current_app.notification_service.mark_notification_read(
        recipient.id, path.notification_id
    )
    return jsonify(current_app.hal_formatter.format_notification(notification))


@notifications_bp.post('/read-all')
@require_jwt
def mark_all_read():
    recipient = current_identity()
    marked = current_app.notification_service.mark_all_read(recipient.id)
    return jsonify({"marked": marked})
