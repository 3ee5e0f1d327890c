# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Profile registry endpoints.

Profile bodies are validated against the seeker or host variant selected by
the caller's role, so they are parsed from the raw JSON body.
"""

import logging

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace

from ..middleware.auth import require_jwt
from ..models.requests import IdentityPath
from ..utils.request import current_identity, get_json_body

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

profiles_tag = Tag(name="Profiles", description="Seeker and host profiles")
profiles_bp = APIBlueprint(
    'profiles',
    __name__,
    url_prefix='/api/profiles',
    abp_tags=[profiles_tag]
)


@profiles_bp.post('')
@require_jwt
def submit_profile():
    """Submit the caller's profile for administrator review."""
    identity = current_identity()
    profile = current_app.approval_service.submit_profile(identity, get_json_body())
    return jsonify(current_app.hal_formatter.format_profile(identity, profile, identity)), 201


@profiles_bp.get('/me')
@require_jwt
def get_own_profile():
    identity = current_identity()
    profile = current_app.approval_service.get_own_profile(identity)
    return jsonify(current_app.hal_formatter.format_profile(identity, profile, identity))


@profiles_bp.put('/me')
@require_jwt
def update_own_profile():
    """Replace the caller's profile fields. Review status is unchanged."""
    identity = current_identity()
    profile = current_app.approval_service.update_profile(identity, get_json_body())
    return jsonify(current_app.hal_formatter.format_profile(identity, profile, identity))


@profiles_bp.get('/<identity_id>')
@require_jwt
def get_profile(path: IdentityPath):
    viewer = current_identity()
    owner, profile = current_app.approval_service.get_profile(viewer, path.identity_id)
    return jsonify(current_app.hal_formatter.format_profile(owner, profile, viewer))
