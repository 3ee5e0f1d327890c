# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and identity resolution.

This module provides the Flask decorator that validates bearer tokens,
checks the revocation blocklist and resolves the acting Identity from the
token subject.
"""

from functools import wraps
from flask import current_app, request, g
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
from pydantic import ValidationError as PydanticValidationError
import logging

from ..models.entities import Identity, UserContext
from ..services.auth import AuthService, TokenValidationError
from ..services.identity import IdentityService
from ..services.redis import RedisService
from .error_handler import AuthenticationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking and identity
    lookup for protected endpoints.
    """

    def __init__(
        self,
        auth_service: AuthService,
        identity_service: IdentityService,
        redis_service: Optional[RedisService] = None
    ):
        self.auth_service = auth_service
        self.identity_service = identity_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """Bearer token from the Authorization header, if any."""
        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return None
        token = auth_header[7:].strip()
        return token or None

    def is_token_blocked(self, token: str) -> bool:
        if self.redis_service is None:
            return False
        token_id = self.auth_service.extract_token_id(token)
        return self.redis_service.is_token_blocked(token_id)

    def get_request_info(self) -> Dict[str, Any]:
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', '')
        }

    def resolve_identity(self, token_payload: Dict[str, Any]) -> Identity:
        """Create or refresh the identity named by the token subject."""
        try:
            return self.identity_service.ensure_identity(
                token_payload["sub"],
                email=token_payload.get("email"),
                first_name=token_payload.get("first_name"),
                last_name=token_payload.get("last_name"),
                profile_image_url=token_payload.get("profile_image_url")
            )
        except PydanticValidationError as e:
            fields = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
            logger.warning("Authentication failed: invalid profile claims", extra={
                "identity_id": token_payload.get("sub"),
                "fields": fields
            })
            raise AuthenticationException("Token carries invalid profile claims")

    def build_user_context(
        self,
        identity: Identity,
        token_payload: Dict[str, Any],
        request_info: Dict[str, Any]
    ) -> UserContext:
        return UserContext(
            identity_id=identity.id,
            role=identity.role,
            profile_status=identity.profile_status,
            email=identity.email,
            token_id=token_payload.get("jti"),
            token_expires_at=token_payload.get("exp"),
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent")
        )

    def authenticate(self) -> Identity:
        """
        Authenticate the current request.

        Sets ``g.current_identity`` and ``g.user_context``.

        Raises:
            AuthenticationException: Missing, revoked or invalid token
        """
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            token = self.extract_token_from_request()
            if not token:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token")
                raise AuthenticationException("Missing authorization token")

            try:
                if self.is_token_blocked(token):
                    span.set_attribute("auth.result", "token_blocked")
                    logger.warning("Authentication failed: token is blocked")
                    raise AuthenticationException("Token has been revoked")

                token_payload = self.auth_service.validate_token(token, "access")
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning("Authentication failed", extra={"error": str(e)})
                raise AuthenticationException(str(e))

            identity = self.resolve_identity(token_payload)
            user_context = self.build_user_context(identity, token_payload, self.get_request_info())

            g.current_identity = identity
            g.user_context = user_context

            span.set_attributes({
                "auth.result": "success",
                "identity.id": identity.id,
                "identity.role": str(identity.role)
            })
            logger.debug(
                "Authentication successful",
                extra={
                    "identity_id": identity.id,
                    "role": identity.role,
                    "ip_address": user_context.ip_address
                }
            )
            return identity


def require_auth(auth_middleware: AuthMiddleware) -> Callable:
    """
    Decorator to require JWT authentication for Flask routes.

    The wrapped view reads the acting identity from ``g.current_identity``.
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            auth_middleware.authenticate()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_jwt(f: Callable) -> Callable:
    """Require authentication using the application's configured AuthMiddleware."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        return require_auth(current_app.auth_middleware)(f)(*args, **kwargs)
    return decorated_function
