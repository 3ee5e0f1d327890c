# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

Services run against an in-memory mongomock client; transactions are
disabled so each unit of work is applied sequentially.
"""

import os
from datetime import datetime

import mongomock
import pytest

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'
os.environ.pop('REDIS_URL', None)
os.environ.pop('AMQP_URL', None)
os.environ.pop('ADMIN_EMAILS', None)

from haven_api.app import create_app
from haven_api.models.entities import HostProfile, Identity, SeekerProfile
from haven_api.models.enums import ProfileStatus, UserRole
from haven_api.services.approval import ApprovalService
from haven_api.services.audit import AuditService
from haven_api.services.auth import AuthService
from haven_api.services.contracts import ContractService
from haven_api.services.discovery import DiscoveryService
from haven_api.services.feedback import FeedbackService
from haven_api.services.identity import IdentityService
from haven_api.services.messaging import MessagingService
from haven_api.services.mongodb import MongoDBService
from haven_api.services.notifications import NotificationService
from haven_api.services.push import LivePushHub
from haven_api.services.redis import RedisService
from haven_api.services.statistics import StatisticsService

ADMIN_EMAIL = "root@haven.test"


@pytest.fixture
def mongo_service():
    """MongoDB service backed by mongomock, with the production indexes."""
    service = MongoDBService(
        "mongodb://localhost:27017/haven_test",
        "haven_test",
        client=mongomock.MongoClient(),
        transactions_enabled=False
    )
    service.create_indexes()
    return service


@pytest.fixture
def push_hub():
    return LivePushHub()


@pytest.fixture
def audit_service(mongo_service):
    return AuditService(mongo_service)


@pytest.fixture
def identity_service(mongo_service, audit_service):
    return IdentityService(mongo_service, None, audit_service, admin_emails=[ADMIN_EMAIL])


@pytest.fixture
def notification_service(mongo_service, push_hub):
    return NotificationService(mongo_service, push_hub)


@pytest.fixture
def approval_service(mongo_service, identity_service, notification_service, audit_service):
    return ApprovalService(mongo_service, identity_service, notification_service, audit_service)


@pytest.fixture
def contract_service(mongo_service, identity_service, notification_service, audit_service):
    return ContractService(mongo_service, identity_service, notification_service, audit_service)


@pytest.fixture
def messaging_service(mongo_service, identity_service, notification_service, push_hub):
    return MessagingService(
        mongo_service, identity_service, notification_service, push_hub, notify_on_message=False
    )


@pytest.fixture
def discovery_service(mongo_service, identity_service):
    return DiscoveryService(mongo_service, identity_service)


@pytest.fixture
def feedback_service(mongo_service, notification_service, audit_service):
    return FeedbackService(mongo_service, notification_service, audit_service)


@pytest.fixture
def statistics_service(mongo_service):
    return StatisticsService(mongo_service)


@pytest.fixture
def make_identity(mongo_service):
    """Insert an identity document directly and return the entity."""
    def _make_identity(identity_id, role=UserRole.SEEKER, status=ProfileStatus.PENDING,
                       first_name=None, email=None):
        identity = Identity(
            id=identity_id,
            role=role,
            profile_status=status,
            first_name=first_name or identity_id.title(),
            email=email
        )
        mongo_service.create("identities", identity.to_document())
        return identity
    return _make_identity


@pytest.fixture
def make_profile(mongo_service):
    """Insert a seeker or host profile document for an identity."""
    def _make_profile(identity, **fields):
        if identity.role == UserRole.HOST:
            data = {
                "accommodation_type": "apartment",
                "max_occupants": 3,
                "availability_duration": "3-6 months",
                "location": "Berlin"
            }
            data.update(fields)
            profile = HostProfile(identity_id=identity.id, **data)
        else:
            data = {"family_size": 2, "estimated_stay": "1-3 months"}
            data.update(fields)
            profile = SeekerProfile(identity_id=identity.id, **data)
        mongo_service.create("profiles", profile.to_document())
        return profile
    return _make_profile


@pytest.fixture
def admin(make_identity):
    return make_identity("admin-1", role=UserRole.ADMINISTRATOR, status=ProfileStatus.PENDING)


@pytest.fixture
def approved_seeker(make_identity, make_profile):
    seeker = make_identity("seeker-1", role=UserRole.SEEKER, status=ProfileStatus.APPROVED)
    make_profile(seeker)
    return seeker


@pytest.fixture
def approved_host(make_identity, make_profile):
    host = make_identity("host-1", role=UserRole.HOST, status=ProfileStatus.APPROVED)
    make_profile(host)
    return host


@pytest.fixture
def start_date():
    return datetime(2025, 1, 31, 12, 0, 0)


@pytest.fixture(scope="session")
def auth_service():
    """One RSA key pair for the whole run."""
    return AuthService()


class InMemoryUpstash:
    """Dictionary-backed stand-in for the Upstash client; TTLs are not enforced."""

    def __init__(self):
        self.values = {}

    def setex(self, key, seconds, value):
        self.values[key] = value
        return "OK"

    def get(self, key):
        return self.values.get(key)

    def exists(self, *keys):
        return sum(1 for key in keys if key in self.values)

    def delete(self, *keys):
        return sum(1 for key in keys if self.values.pop(key, None) is not None)

    def ping(self):
        return "PONG"


def build_test_app(mongo_service, push_hub, auth_service, redis_service=None):
    return create_app(
        {
            'TESTING': True,
            'ENVIRONMENT': 'test',
            'BASE_URL': 'http://localhost',
            'ADMIN_EMAILS': ADMIN_EMAIL,
            'OTEL_ENABLED': False,
            'DOCS_ENABLED': False
        },
        services={
            'mongodb_service': mongo_service,
            'redis_service': redis_service,
            'amqp_service': None,
            'auth_service': auth_service,
            'push_hub': push_hub
        }
    )


@pytest.fixture
def app(mongo_service, push_hub, auth_service):
    return build_test_app(mongo_service, push_hub, auth_service)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def redis_client(mongo_service, push_hub, auth_service):
    """Test client for an app whose token blocklist lives in an in-memory Redis."""
    redis_service = RedisService("https://redis.test", "token", client=InMemoryUpstash())
    return build_test_app(mongo_service, push_hub, auth_service, redis_service).test_client()


@pytest.fixture
def auth_headers(auth_service):
    """Bearer headers for a subject, with optional profile claims."""
    def _auth_headers(subject, **claims):
        tokens = auth_service.generate_tokens(subject, claims)
        return {"Authorization": f"Bearer {tokens['access_token']}"}
    return _auth_headers
