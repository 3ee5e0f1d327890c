# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Discovery endpoints: approved hosts and approved seekers.
"""

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag

from ..domain.discovery import HostFilters
from ..middleware.auth import require_jwt
from ..models.requests import HostSearchQuery
from ..utils.request import current_identity

discovery_tag = Tag(name="Discovery", description="Approved counterpart listings")
discovery_bp = APIBlueprint(
    'discovery',
    __name__,
    url_prefix='/api/discovery',
    abp_tags=[discovery_tag]
)


@discovery_bp.get('/hosts')
@require_jwt
def list_hosts(query: HostSearchQuery):
    """Approved hosts, optionally narrowed by location, type, capacity or free text."""
    requester = current_identity()
    filters = HostFilters(
        location=query.location,
        accommodation_type=query.accommodation_type,
        min_occupants=query.min_occupants,
        pet_friendly=query.pet_friendly,
        search_term=query.search
    )
    hosts = current_app.discovery_service.list_available_hosts(requester, filters)
    return jsonify(current_app.hal_formatter.format_profile_collection(
        hosts, requester, "/api/discovery/hosts"
    ))


@discovery_bp.get('/seekers')
@require_jwt
def list_seekers():
    requester = current_identity()
    seekers = current_app.discovery_service.list_available_seekers(requester)
    return jsonify(current_app.hal_formatter.format_profile_collection(
        seekers, requester, "/api/discovery/seekers"
    ))
