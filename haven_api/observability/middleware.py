"""
Request instrumentation for the Haven API.

Every request runs inside the Flask OpenTelemetry span; this module tags that
span with the acting identity, logs one structured line per request and
echoes the trace id back to the caller as ``X-Trace-Id``.
"""

import time
import logging
from flask import Flask, Response, g, request
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)

# Polled by load balancers; logged at DEBUG to keep request logs readable
QUIET_PATHS = frozenset({"/api/healthz"})


def _current_trace_id():
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")


def _identity_id():
    user_context = g.get('user_context')
    return user_context.identity_id if user_context is not None else None


def add_observability_middleware(app: Flask):
    """Instrument the app and register request timing hooks."""

    FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def start_request_timer():
        g.request_started = time.perf_counter()
        g.trace_id = _current_trace_id()

    @app.after_request
    def record_request(response: Response):
        elapsed_ms = round((time.perf_counter() - g.get('request_started', time.perf_counter())) * 1000, 2)
        identity_id = _identity_id()

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("http.duration_ms", elapsed_ms)
            if identity_id:
                span.set_attribute("identity.id", identity_id)

        level = logging.DEBUG if request.path in QUIET_PATHS else logging.INFO
        logger.log(level, "%s %s -> %s", request.method, request.path, response.status_code, extra={
            "extra_fields": {
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "identity_id": identity_id,
                "trace_id": g.get('trace_id')
            }
        })

        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id
        return response
