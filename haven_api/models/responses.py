# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.
"""

from typing import Optional
from pydantic import BaseModel, Field


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class StatisticsResponse(BaseModel):
    """Administrator dashboard counters."""

    pending_approvals: int = Field(..., description="Pending profiles awaiting review")
    active_matches: int = Field(..., description="Completed contracts")
    registered_seekers: int = Field(..., description="Identities with the seeker role")
    verified_hosts: int = Field(..., description="Approved hosts")
    contracts_awaiting_ratification: int = Field(..., description="Fully signed contracts")


class UnreadCountResponse(BaseModel):
    """Unread notification badge."""

    unread: int = Field(..., description="Unread notification count")


class AuthTokenResponse(BaseModel):
    """Authentication token response."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., description="Access token expiration in seconds")
