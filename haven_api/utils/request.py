# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting and processing request data.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import g, request

from ..middleware.error_handler import AuthenticationException, ValidationError
from ..models.entities import Identity


def get_json_body() -> Dict[str, Any]:
    """
    JSON object body of the current request.

    Raises:
        ValidationError: Body is missing, malformed or not an object
    """
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Missing or malformed JSON request body")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def current_identity() -> Identity:
    """Identity resolved by the auth middleware for this request."""
    identity = g.get('current_identity')
    if identity is None:
        raise AuthenticationException("Authentication required")
    return identity


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a client supplied timestamp to naive UTC at millisecond precision."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)
