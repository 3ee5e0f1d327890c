# SPDX-License-Identifier: Apache-2.0

"""
Health Check Service

Reports the status of MongoDB, Redis and the AMQP relay together with
process and host metrics.
"""

import os
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import psutil
from opentelemetry import trace

from .. import __version__
from .amqp import AMQPService
from .mongodb import MongoDBService
from .push import LivePushHub
from .redis import RedisService

tracer = trace.get_tracer(__name__)


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


class HealthCheckService:
    """Service for dependency health and system metrics."""

    def __init__(
        self,
        mongodb_service: MongoDBService,
        redis_service: Optional[RedisService] = None,
        amqp_service: Optional[AMQPService] = None,
        push_hub: Optional[LivePushHub] = None
    ):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.amqp_service = amqp_service
        self.push_hub = push_hub

    def get_comprehensive_health(self) -> Dict[str, Any]:
        """Status of every dependency plus system metrics."""
        with tracer.start_as_current_span("health.comprehensive_check") as span:
            start_time = time.time()

            mongodb_health = self._check_mongodb_health()
            redis_health = self._check_redis_health()
            amqp_health = self._check_amqp_health()

            # Only MongoDB is required; Redis and AMQP are optional
            overall_status = self._determine_overall_status(
                mongodb_health["status"],
                [redis_health["status"], amqp_health["status"]]
            )

            response_time_ms = round((time.time() - start_time) * 1000, 2)

            health_data = {
                "status": overall_status,
                "service": "haven-api",
                "version": __version__,
                "environment": os.getenv('ENVIRONMENT', 'development'),
                "timestamp": _timestamp(),
                "response_time_ms": response_time_ms,
                "dependencies": {
                    "mongodb": mongodb_health,
                    "redis": redis_health,
                    "amqp": amqp_health
                },
                "live_sessions": self.push_hub.session_count() if self.push_hub else 0,
                "system_metrics": self._get_system_metrics()
            }

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.mongodb_status": mongodb_health["status"],
                "health.redis_status": redis_health["status"],
                "health.amqp_status": amqp_health["status"]
            })

            return health_data

    def _check_mongodb_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.mongodb_check") as span:
            start_time = time.time()
            health = self.mongodb_service.health_check()
            health["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
            health["last_check"] = _timestamp()
            span.set_attribute("mongodb.status", health["status"])
            return health

    def _check_redis_health(self) -> Dict[str, Any]:
        if self.redis_service is None:
            return {"status": "not_configured"}

        with tracer.start_as_current_span("health.redis_check") as span:
            health = self.redis_service.health_check()
            health["last_check"] = _timestamp()
            span.set_attribute("redis.status", health["status"])
            return health

    def _check_amqp_health(self) -> Dict[str, Any]:
        if self.amqp_service is None:
            return {"status": "not_configured"}

        with tracer.start_as_current_span("health.amqp_check") as span:
            start_time = time.time()
            health = self.amqp_service.health_check()
            health["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
            health["last_check"] = _timestamp()
            span.set_attribute("amqp.status", health["status"])
            return health

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic system performance metrics."""
        try:
            process = psutil.Process()
            memory = psutil.virtual_memory()

            return {
                "cpu_percent": psutil.cpu_percent(interval=None),
                "memory": {
                    "used_mb": round(memory.used / 1024 / 1024, 2),
                    "total_mb": round(memory.total / 1024 / 1024, 2),
                    "percent": memory.percent
                },
                "process": {
                    "rss_mb": round(process.memory_info().rss / 1024 / 1024, 2),
                    "threads": process.num_threads()
                },
                "load_average": list(os.getloadavg()) if hasattr(os, 'getloadavg') else None
            }
        except psutil.Error as e:
            return {
                "error": f"Failed to collect system metrics: {str(e)}"
            }

    @staticmethod
    def _determine_overall_status(required: str, optional: List[str]) -> str:
        if required != "healthy":
            return "unhealthy"
        if any(status not in ("healthy", "not_configured") for status in optional):
            return "degraded"
        return "healthy"
