# SPDX-License-Identifier: Apache-2.0

"""
Live event stream.

Server-sent events carrying the caller's pushes, plus the inbound channel a
connected client uses for ``join_room``.
"""

import json
import os
import queue

from flask import Response, current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag

from ..middleware.auth import require_jwt
from ..middleware.error_handler import ForbiddenError
from ..models.requests import LiveSessionPath
from ..utils.request import current_identity, get_json_body

live_tag = Tag(name="Live", description="Per-identity live event stream")
live_bp = APIBlueprint(
    'live',
    __name__,
    url_prefix='/api/live',
    abp_tags=[live_tag]
)


def _keepalive_seconds() -> float:
    return float(os.getenv("LIVE_KEEPALIVE_SECONDS", "15"))


def _frame(event) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


@live_bp.get('/stream')
@require_jwt
def stream():
    """
    Subscribe the caller and stream its events until the client disconnects.

    The first frame is ``ready`` and carries the session id used for
    inbound client messages.
    """
    hub = current_app.push_hub
    identity_id = current_identity().id
    keepalive = _keepalive_seconds()

    events = queue.Queue()
    session_id = hub.subscribe(identity_id, events.put)

    def generate():
        try:
            yield _frame({"type": "ready", "sessionId": session_id, "identityId": identity_id})
            while True:
                try:
                    event = events.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield _frame(event)
        finally:
            hub.unsubscribe(session_id)

    response = Response(generate(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response


@live_bp.post('/sessions/<session_id>/messages')
@require_jwt
def client_message(path: LiveSessionPath):
    """Inbound client message for one of the caller's live sessions."""
    identity = current_identity()
    hub = current_app.push_hub
    if hub.session_identity(path.session_id) != identity.id:
        raise ForbiddenError("Live session does not belong to the caller")

    reply = hub.handle_client_message(path.session_id, get_json_body())
    if reply is None:
        return jsonify({"handled": False})
    return jsonify({"handled": True, "reply": reply})
