# SPDX-License-Identifier: Apache-2.0

"""
AMQP service for relaying live-push events.

Every event published by the in-process push hub is also published to a
topic exchange with routing key ``identity.<recipient_id>`` so other API
processes (or a websocket gateway) can deliver it to their own sessions.
Connections are opened per operation and always closed.
"""

import json
import logging
import os
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Any, Optional, Generator
from urllib.parse import urlparse

import pika
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from opentelemetry.propagate import inject


logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_EXCHANGE = "haven.live"


@dataclass
class AMQPConfig:
    """AMQP configuration settings."""
    url: str
    exchange: str = DEFAULT_EXCHANGE
    connection_timeout: int = 30
    heartbeat: int = 600
    blocked_connection_timeout: int = 300
    retry_delay: float = 0.2
    max_retries: int = 1


@dataclass
class PublishResult:
    """Result of message publishing operation."""
    success: bool
    correlation_id: str
    exchange: str
    routing_key: str
    error: Optional[str] = None
    retry_count: int = 0


class AMQPConnectionError(Exception):
    """Raised when AMQP connection fails."""
    pass


class AMQPSerializationError(Exception):
    """Raised when an event cannot be serialized."""
    pass


class AMQPService:
    """
    AMQP relay for live-push events.

    This service provides:
    - Per-operation connections with guaranteed cleanup
    - Topic exchange declaration
    - Event publishing with retry and trace-context propagation
    """

    def __init__(self, config: AMQPConfig):
        self.config = config
        self._connection_params = self._parse_connection_url(config.url)
        self._exchange_declared = False

    def _parse_connection_url(self, url: str) -> pika.ConnectionParameters:
        """Parse AMQP URL and create connection parameters."""
        parsed = urlparse(url)

        return pika.ConnectionParameters(
            host=parsed.hostname or 'localhost',
            port=parsed.port or 5672,
            virtual_host=parsed.path.lstrip('/') or '/',
            credentials=pika.PlainCredentials(
                username=parsed.username or 'guest',
                password=parsed.password or 'guest'
            ),
            connection_attempts=self.config.max_retries,
            retry_delay=self.config.retry_delay,
            socket_timeout=self.config.connection_timeout,
            heartbeat=self.config.heartbeat,
            blocked_connection_timeout=self.config.blocked_connection_timeout
        )

    @contextmanager
    def _get_connection(self) -> Generator[Any, None, None]:
        """
        Context manager for AMQP connections with automatic cleanup.

        A fresh connection is created for each operation.
        """
        connection = None
        channel = None

        try:
            with tracer.start_as_current_span("amqp.connection.create") as span:
                connection = pika.BlockingConnection(self._connection_params)
                channel = connection.channel()

                span.set_attributes({
                    "amqp.host": self._connection_params.host,
                    "amqp.port": self._connection_params.port,
                    "amqp.virtual_host": self._connection_params.virtual_host
                })

            yield channel

        except pika.exceptions.AMQPConnectionError as e:
            logger.error(
                "AMQP connection failed",
                extra={
                    "extra_fields": {
                        "error": str(e),
                        "host": self._connection_params.host,
                        "port": self._connection_params.port
                    }
                }
            )
            raise AMQPConnectionError(f"Failed to connect to AMQP broker: {e}")

        finally:
            if channel is not None and not channel.is_closed:
                try:
                    channel.close()
                except Exception as e:
                    logger.warning(f"Error closing AMQP channel: {e}")

            if connection is not None and not connection.is_closed:
                try:
                    connection.close()
                except Exception as e:
                    logger.warning(f"Error closing AMQP connection: {e}")

    def _declare_exchange(self, channel) -> None:
        channel.exchange_declare(
            exchange=self.config.exchange,
            exchange_type='topic',
            durable=True,
            auto_delete=False
        )
        self._exchange_declared = True

    @staticmethod
    def routing_key_for(recipient_id: str) -> str:
        return f"identity.{recipient_id}"

    def publish_event(self, recipient_id: str, event: Dict[str, Any]) -> PublishResult:
        """
        Relay one live-push event addressed to one identity.

        Args:
            recipient_id: Identity whose sessions should receive the event
            event: Event body (``type`` plus payload)

        Returns:
            PublishResult: Result of the publishing operation
        """
        correlation_id = str(uuid.uuid4())
        routing_key = self.routing_key_for(recipient_id)

        with tracer.start_as_current_span("amqp.publish.event") as span:
            span.set_attributes({
                "event.type": str(event.get("type")),
                "amqp.exchange": self.config.exchange,
                "amqp.routing_key": routing_key,
                "amqp.correlation_id": correlation_id
            })

            trace_context: Dict[str, str] = {}
            inject(trace_context)

            message = {
                "recipient_id": recipient_id,
                "correlation_id": correlation_id,
                "timestamp": time.time(),
                "event": event,
                "trace_context": trace_context
            }

            result = self._publish_with_retry(routing_key, message, correlation_id)
            if not result.success:
                span.set_status(Status(StatusCode.ERROR, result.error or "publish failed"))
            return result

    def _publish_with_retry(
        self,
        routing_key: str,
        message: Dict[str, Any],
        correlation_id: str
    ) -> PublishResult:
        """Publish message with exponential backoff retry logic."""
        exchange = self.config.exchange

        try:
            serialized_message = self._serialize_message(message)
        except AMQPSerializationError as e:
            return PublishResult(
                success=False,
                correlation_id=correlation_id,
                exchange=exchange,
                routing_key=routing_key,
                error=str(e)
            )

        last_error = None

        for attempt in range(self.config.max_retries + 1):
            try:
                with self._get_connection() as channel:
                    if not self._exchange_declared:
                        self._declare_exchange(channel)

                    properties = pika.BasicProperties(
                        correlation_id=correlation_id,
                        timestamp=int(time.time()),
                        delivery_mode=1,  # Transient: live events are not replayed
                        content_type='application/json',
                        headers=message.get('trace_context', {})
                    )

                    channel.basic_publish(
                        exchange=exchange,
                        routing_key=routing_key,
                        body=serialized_message,
                        properties=properties
                    )

                    logger.debug(
                        "Live event relayed",
                        extra={
                            "extra_fields": {
                                "exchange": exchange,
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "attempt": attempt + 1
                            }
                        }
                    )

                    return PublishResult(
                        success=True,
                        correlation_id=correlation_id,
                        exchange=exchange,
                        routing_key=routing_key,
                        retry_count=attempt
                    )

            except Exception as e:
                last_error = e

                if attempt < self.config.max_retries:
                    delay = self.config.retry_delay * (2 ** attempt)

                    logger.warning(
                        "Event publish failed, retrying",
                        extra={
                            "extra_fields": {
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "attempt": attempt + 1,
                                "retry_delay": delay,
                                "error": str(e)
                            }
                        }
                    )

                    time.sleep(delay)
                else:
                    logger.error(
                        "Event publish failed after all retries",
                        extra={
                            "extra_fields": {
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "total_attempts": attempt + 1,
                                "error": str(e)
                            }
                        }
                    )

        return PublishResult(
            success=False,
            correlation_id=correlation_id,
            exchange=exchange,
            routing_key=routing_key,
            error=str(last_error),
            retry_count=self.config.max_retries
        )

    def _serialize_message(self, message: Dict[str, Any]) -> str:
        """Serialize message to JSON with datetime handling."""
        def json_serializer(obj):
            if hasattr(obj, 'isoformat'):
                return obj.isoformat()
            return str(obj)

        try:
            return json.dumps(message, default=json_serializer, ensure_ascii=False, separators=(',', ':'))
        except (TypeError, ValueError) as e:
            logger.error(f"Message serialization failed: {e}")
            raise AMQPSerializationError(f"Failed to serialize message: {e}")

    def health_check(self) -> Dict[str, Any]:
        """Attempt a connection and passive exchange check."""
        try:
            with self._get_connection() as channel:
                self._declare_exchange(channel)
            return {"status": "healthy", "exchange": self.config.exchange}
        except Exception as e:
            logger.warning(
                "AMQP health check failed",
                extra={
                    "extra_fields": {
                        "error": str(e),
                        "host": self._connection_params.host
                    }
                }
            )
            return {"status": "unhealthy", "error": str(e)}


def create_amqp_service(amqp_url: Optional[str] = None) -> Optional[AMQPService]:
    """
    Create the AMQP relay from configuration.

    Returns:
        Configured AMQPService, or None when no AMQP URL is configured
    """
    amqp_url = amqp_url or os.getenv('AMQP_URL')
    if not amqp_url:
        logger.info("No AMQP_URL configured, live events stay in-process")
        return None

    config = AMQPConfig(
        url=amqp_url,
        exchange=os.getenv('AMQP_EXCHANGE', DEFAULT_EXCHANGE),
        connection_timeout=int(os.getenv('AMQP_CONNECTION_TIMEOUT', '30')),
        heartbeat=int(os.getenv('AMQP_HEARTBEAT', '600')),
        blocked_connection_timeout=int(os.getenv('AMQP_BLOCKED_TIMEOUT', '300')),
        retry_delay=float(os.getenv('AMQP_RETRY_DELAY', '0.2')),
        max_retries=int(os.getenv('AMQP_MAX_RETRIES', '1'))
    )

    return AMQPService(config)
