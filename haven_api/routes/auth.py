# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Authentication endpoints: current identity, role selection, token refresh
and logout.
"""

import logging
import time

from flask import current_app, g, jsonify, request
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace

from ..middleware.auth import require_jwt
from ..middleware.error_handler import AuthenticationException
from ..models.requests import RefreshTokenRequest, SelectRoleRequest
from ..models.responses import AuthTokenResponse
from ..services.auth import TokenValidationError
from ..utils.request import current_identity

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

auth_tag = Tag(name="Authentication", description="Identity and token management")
auth_bp = APIBlueprint(
    'auth',
    __name__,
    url_prefix='/api/auth',
    abp_tags=[auth_tag]
)


@auth_bp.get('/me')
@require_jwt
def get_me():
    """Current identity with its role and review status."""
    identity = current_identity()
    return jsonify(current_app.hal_formatter.format_identity(identity, identity))


@auth_bp.post('/role')
@require_jwt
def select_role(body: SelectRoleRequest):
    """
    Choose seeker or host at onboarding.

    Allowed only until a profile has been submitted.
    """
    identity = current_identity()
    with tracer.start_as_current_span(
        "auth.select_role",
        attributes={"identity.id": identity.id, "identity.role": body.role}
    ):
        updated = current_app.identity_service.select_role(identity, body.role)
        return jsonify(current_app.hal_formatter.format_identity(updated, updated))


@auth_bp.post('/refresh')
def refresh_token(body: RefreshTokenRequest):
    """Exchange a refresh token for a new access token."""
    with tracer.start_as_current_span("auth.refresh", attributes={"operation": "refresh"}):
        redis_service = current_app.redis_service
        try:
            if redis_service is not None and redis_service.is_token_blocked(
                current_app.auth_service.extract_token_id(body.refresh_token)
            ):
                raise TokenValidationError("Refresh token has been revoked")
            tokens = current_app.auth_service.refresh_access_token(body.refresh_token)
        except TokenValidationError as e:
            logger.warning("Token refresh failed", extra={
                "error": str(e),
                "ip_address": request.remote_addr
            })
            raise AuthenticationException(str(e))

        response = AuthTokenResponse(
            access_token=tokens["access_token"],
            token_type=tokens["token_type"],
            expires_in=tokens["expires_in"]
        )
        return jsonify(response.model_dump())


def _refresh_token_payload(refresh_token: str, identity_id: str) -> dict:
    try:
        payload = current_app.auth_service.validate_token(refresh_token, "refresh")
    except TokenValidationError as e:
        raise AuthenticationException(str(e))
    if payload["sub"] != identity_id:
        raise AuthenticationException("Refresh token was issued to another identity")
    return payload


@auth_bp.post('/logout')
@require_jwt
def logout():
    """
    Revoke the current access token until it would have expired.

    An optional ``refreshToken`` in the body is revoked as well, so it can
    no longer mint access tokens.
    """
    user_context = g.user_context
    data = request.get_json(silent=True)
    refresh = data.get("refreshToken") if isinstance(data, dict) else None

    with tracer.start_as_current_span("auth.logout", attributes={"identity.id": user_context.identity_id}):
        refresh_payload = _refresh_token_payload(refresh, user_context.identity_id) if refresh else None

        revoked = False
        refresh_revoked = False
        redis_service = current_app.redis_service
        if redis_service is not None:
            now = time.time()
            if user_context.token_id:
                revoked = redis_service.block_token(
                    user_context.token_id, int((user_context.token_expires_at or now) - now)
                )
            if refresh_payload is not None:
                refresh_revoked = redis_service.block_token(
                    refresh_payload["jti"], int(refresh_payload["exp"] - now)
                )

        logger.info("Identity logged out", extra={
            "identity_id": user_context.identity_id,
            "token_revoked": revoked,
            "refresh_token_revoked": refresh_revoked
        })
        result = {"loggedOut": True, "tokenRevoked": revoked}
        if refresh_payload is not None:
            result["refreshTokenRevoked"] = refresh_revoked
        return jsonify(result)
