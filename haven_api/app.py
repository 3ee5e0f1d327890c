"""
Haven API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support, wires the
services and middleware, and registers the route blueprints of the housing
marketplace.
"""

import os
from typing import Any, Dict, Optional

from flask import jsonify
from flask_openapi3 import Info, OpenAPI, Tag

from . import __version__
from .middleware.auth import AuthMiddleware
from .middleware.error_handler import (
    ErrorHandlerMiddleware, make_validation_error_response, register_custom_error_handlers
)
from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .services.amqp import create_amqp_service
from .services.approval import ApprovalService
from .services.audit import AuditService
from .services.auth import AuthService
from .services.contracts import ContractService
from .services.discovery import DiscoveryService
from .services.feedback import FeedbackService
from .services.hal import create_hal_formatter
from .services.health import HealthCheckService
from .services.identity import IdentityService, parse_admin_emails
from .services.messaging import MessagingService
from .services.mongodb import MongoDBService
from .services.notifications import NotificationService
from .services.push import LivePushHub
from .services.redis import RedisService
from .services.statistics import StatisticsService


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ('1', 'true', 'yes')


def load_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Environment configuration, optionally overridden (tests pass a dict)."""
    config = {
        'ENVIRONMENT': os.getenv('ENVIRONMENT', 'development'),
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000'),
        'MONGODB_URI': os.getenv('MONGODB_URI', 'mongodb://localhost:27017/haven_dev'),
        'MONGODB_DATABASE': os.getenv('MONGODB_DATABASE', 'haven_dev'),
        'MONGODB_TRANSACTIONS': os.getenv('MONGODB_TRANSACTIONS', 'false'),
        'REDIS_URL': os.getenv('REDIS_URL', ''),
        'REDIS_TOKEN': os.getenv('REDIS_TOKEN', ''),
        'AMQP_URL': os.getenv('AMQP_URL', ''),
        'JWT_PRIVATE_KEY': os.getenv('JWT_PRIVATE_KEY', ''),
        'JWT_PUBLIC_KEY': os.getenv('JWT_PUBLIC_KEY', ''),
        'ADMIN_EMAILS': os.getenv('ADMIN_EMAILS', ''),
        'NOTIFY_ON_MESSAGE': os.getenv('NOTIFY_ON_MESSAGE', 'false'),
        'OTEL_ENABLED': os.getenv('OTEL_ENABLED', 'true'),
        'DOCS_ENABLED': os.getenv('DOCS_ENABLED', 'true'),
        'TESTING': False
    }
    if overrides:
        config.update(overrides)

    for key in ('MONGODB_TRANSACTIONS', 'NOTIFY_ON_MESSAGE', 'OTEL_ENABLED', 'DOCS_ENABLED', 'TESTING'):
        config[key] = _flag(config[key])
    config['DEBUG'] = config['ENVIRONMENT'] == 'development'
    return config


def create_app(config_overrides: Optional[Dict[str, Any]] = None,
               services: Optional[Dict[str, Any]] = None) -> OpenAPI:
    """
    Build the application.

    Args:
        config_overrides: Values replacing the environment configuration
        services: Pre-built services (``mongodb_service``, ``redis_service``,
            ``amqp_service``, ``auth_service``, ``push_hub``) used instead of
            the ones built from configuration

    Returns:
        Configured Flask application
    """
    config = load_config(config_overrides)
    services = services or {}

    if not config['TESTING']:
        setup_observability(config['ENVIRONMENT'], config['OTEL_ENABLED'])

    info = Info(
        title="Haven API",
        version=__version__,
        description="Housing marketplace connecting displaced persons with volunteer hosts"
    )
    tags = [
        Tag(name="Health", description="System health and status")
    ]

    app = OpenAPI(
        __name__,
        info=info,
        doc_ui=config['DOCS_ENABLED'],
        validation_error_status=400,
        validation_error_callback=make_validation_error_response
    )
    app.config.update(config)

    add_observability_middleware(app)

    # Persistence and infrastructure
    mongodb_service = services.get('mongodb_service') or MongoDBService(
        config['MONGODB_URI'],
        config['MONGODB_DATABASE'],
        transactions_enabled=config['MONGODB_TRANSACTIONS']
    )
    if 'redis_service' in services:
        redis_service = services['redis_service']
    elif config['REDIS_URL']:
        redis_service = RedisService(config['REDIS_URL'], config['REDIS_TOKEN'])
    else:
        redis_service = None
    if 'amqp_service' in services:
        amqp_service = services['amqp_service']
    else:
        amqp_service = create_amqp_service(config['AMQP_URL'] or None)

    auth_service = services.get('auth_service') or AuthService(
        config['JWT_PRIVATE_KEY'] or None,
        config['JWT_PUBLIC_KEY'] or None
    )
    push_hub = services.get('push_hub') or LivePushHub(relay=amqp_service)

    # Workflow services
    audit_service = AuditService(mongodb_service)
    identity_service = IdentityService(
        mongodb_service,
        redis_service,
        audit_service,
        admin_emails=parse_admin_emails(config['ADMIN_EMAILS'])
    )
    notification_service = NotificationService(mongodb_service, push_hub)
    approval_service = ApprovalService(
        mongodb_service, identity_service, notification_service, audit_service
    )
    contract_service = ContractService(
        mongodb_service, identity_service, notification_service, audit_service
    )
    messaging_service = MessagingService(
        mongodb_service,
        identity_service,
        notification_service,
        push_hub,
        notify_on_message=config['NOTIFY_ON_MESSAGE']
    )
    discovery_service = DiscoveryService(mongodb_service, identity_service)
    feedback_service = FeedbackService(mongodb_service, notification_service, audit_service)
    statistics_service = StatisticsService(mongodb_service)
    health_service = HealthCheckService(mongodb_service, redis_service, amqp_service, push_hub)

    # Middleware
    hal_formatter = create_hal_formatter(config['BASE_URL'])
    auth_middleware = AuthMiddleware(auth_service, identity_service, redis_service)
    ErrorHandlerMiddleware(app, hal_formatter)
    register_custom_error_handlers(app, hal_formatter)

    # Make services available to routes
    app.mongodb_service = mongodb_service
    app.redis_service = redis_service
    app.amqp_service = amqp_service
    app.auth_service = auth_service
    app.push_hub = push_hub
    app.audit_service = audit_service
    app.identity_service = identity_service
    app.notification_service = notification_service
    app.approval_service = approval_service
    app.contract_service = contract_service
    app.messaging_service = messaging_service
    app.discovery_service = discovery_service
    app.feedback_service = feedback_service
    app.statistics_service = statistics_service
    app.health_service = health_service
    app.hal_formatter = hal_formatter
    app.auth_middleware = auth_middleware

    from .routes.admin import admin_bp
    from .routes.auth import auth_bp
    from .routes.contracts import contracts_bp
    from .routes.discovery import discovery_bp
    from .routes.feedback import feedback_bp
    from .routes.live import live_bp
    from .routes.messages import messages_bp
    from .routes.notifications import notifications_bp
    from .routes.profiles import profiles_bp

    app.register_api(auth_bp)
    app.register_api(profiles_bp)
    app.register_api(admin_bp)
    app.register_api(discovery_bp)
    app.register_api(messages_bp)
    app.register_api(contracts_bp)
    app.register_api(notifications_bp)
    app.register_api(feedback_bp)
    app.register_api(live_bp)

    @app.get('/api/healthz', tags=tags)
    def health_check():
        """Dependency health with process metrics."""
        health_data = health_service.get_comprehensive_health()
        status_code = 503 if health_data["status"] == "unhealthy" else 200
        health_data["_links"] = {
            "self": hal_formatter.builder.link_builder.build_self_link("/api/healthz").model_dump(exclude_none=True)
        }
        return jsonify(health_data), status_code

    return app


if __name__ == '__main__':
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['DEBUG']
    )
