# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the Haven platform.

This package contains pure business logic functions with no side effects.
Workflow functions take loaded entities, validate them and return a
WorkflowResult; persistence and live push happen in the services.
"""
