# SPDX-License-Identifier: Apache-2.0

"""
Live-push hub.

Keeps a per-identity registry of connected sessions and routes events only
to the sessions of the identities they concern. Transport (websocket,
server-sent events, ...) is supplied by the caller as a ``send`` callable.
"""

import json
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from opentelemetry import trace

from .amqp import AMQPService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EventSender = Callable[[Dict[str, Any]], None]


@dataclass
class PushSession:
    session_id: str
    identity_id: str
    send: EventSender


class LivePushHub:
    """Per-identity subscription registry with optional AMQP relay."""

    def __init__(self, relay: Optional[AMQPService] = None):
        self._lock = threading.RLock()
        self._sessions: Dict[str, PushSession] = {}
        self._by_identity: Dict[str, List[str]] = {}
        self.relay = relay

    def subscribe(self, identity_id: str, send: EventSender) -> str:
        """Register a session for an identity and return its id."""
        session_id = str(uuid.uuid4())
        with self._lock:
            self._sessions[session_id] = PushSession(session_id, identity_id, send)
            self._by_identity.setdefault(identity_id, []).append(session_id)

        logger.info("Live session subscribed", extra={
            "identity_id": identity_id,
            "session_id": session_id
        })
        return session_id

    def unsubscribe(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            remaining = [s for s in self._by_identity.get(session.identity_id, []) if s != session_id]
            if remaining:
                self._by_identity[session.identity_id] = remaining
            else:
                self._by_identity.pop(session.identity_id, None)

        logger.info("Live session unsubscribed", extra={
            "identity_id": session.identity_id,
            "session_id": session_id
        })
        return True

    def session_identity(self, session_id: str) -> Optional[str]:
        """Identity that owns a session, or None when it is not connected."""
        with self._lock:
            session = self._sessions.get(session_id)
        return session.identity_id if session is not None else None

    def session_count(self, identity_id: Optional[str] = None) -> int:
        with self._lock:
            if identity_id is None:
                return len(self._sessions)
            return len(self._by_identity.get(identity_id, []))

    def _send(self, sessions: List[PushSession], event: Dict[str, Any]) -> int:
        """Send to each session; a session whose sender raises is dropped."""
        reached = 0
        for session in sessions:
            try:
                session.send(event)
                reached += 1
            except Exception as e:
                logger.warning("Dropping live session after send failure", extra={
                    "identity_id": session.identity_id,
                    "session_id": session.session_id,
                    "error": str(e)
                })
                self.unsubscribe(session.session_id)
        return reached

    def deliver(self, recipient_id: str, event: Dict[str, Any]) -> int:
        """
        Send an event to every session of one identity.

        Returns:
            Number of local sessions that accepted the event
        """
        with self._lock:
            sessions = [self._sessions[s] for s in self._by_identity.get(recipient_id, [])]

        reached = self._send(sessions, event)

        if self.relay is not None:
            self.relay.publish_event(recipient_id, event)

        return reached

    def publish(self, recipient_ids: Iterable[str], event: Dict[str, Any]) -> int:
        """
        Send an event to the sessions of the named identities only.

        Returns:
            Total number of sessions reached
        """
        with tracer.start_as_current_span("push.publish") as span:
            recipients = list(dict.fromkeys(recipient_ids))
            reached = sum(self.deliver(recipient_id, event) for recipient_id in recipients)

            span.set_attributes({
                "push.event_type": str(event.get("type")),
                "push.recipients": len(recipients),
                "push.sessions_reached": reached
            })
            logger.debug("Live event published", extra={
                "event_type": event.get("type"),
                "recipients": len(recipients),
                "sessions_reached": reached
            })
            return reached

    def broadcast(self, event: Dict[str, Any]) -> int:
        """Send a system-wide event to every connected session."""
        with self._lock:
            sessions = list(self._sessions.values())
        return self._send(sessions, event)

    def handle_client_message(self, session_id: str, raw: Union[str, bytes, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Dispatch an inbound client message by ``type``.

        Only ``join_room`` is understood; it is acknowledged with
        ``joined_room`` on the same session.

        Returns:
            The reply sent, or None when the message was ignored
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            logger.warning("Client message for unknown session", extra={"session_id": session_id})
            return None

        if isinstance(raw, (str, bytes)):
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring malformed client message", extra={"session_id": session_id})
                return None
        else:
            data = raw

        if not isinstance(data, dict):
            return None

        if data.get("type") != "join_room":
            logger.debug("Ignoring client message", extra={
                "session_id": session_id,
                "message_type": data.get("type")
            })
            return None

        reply = {"type": "joined_room", "room": data.get("room"), "identityId": session.identity_id}
        self._send([session], reply)
        return reply
