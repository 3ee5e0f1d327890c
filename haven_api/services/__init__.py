# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Persistence, integrations and workflow orchestration.
"""

from .mongodb import MongoDBService, DuplicateDocumentError
from .amqp import AMQPService, AMQPConfig, PublishResult, create_amqp_service
from .push import LivePushHub, PushSession

__all__ = [
    "MongoDBService",
    "DuplicateDocumentError",
    "AMQPService",
    "AMQPConfig",
    "PublishResult",
    "create_amqp_service",
    "LivePushHub",
    "PushSession"
]
