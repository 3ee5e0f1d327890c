#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create the MongoDB indexes used by the marketplace workflows and report
what each collection ends up with.

Usage::

    python -m haven_api.scripts.create_indexes [--uri URI] [--database NAME]
"""

import argparse
import logging
import sys

from ..services.mongodb import MongoDBService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "identities", "profiles", "messages", "contracts",
    "notifications", "feedback", "audit_logs"
)


def report_indexes(mongodb_service: MongoDBService) -> None:
    for name in COLLECTIONS:
        indexes = sorted(mongodb_service.get_collection(name).index_information())
        logger.info(f"{name}: {', '.join(indexes)}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create Haven MongoDB indexes")
    parser.add_argument("--uri", help="MongoDB URI (defaults to MONGODB_URI)")
    parser.add_argument("--database", help="Database name (defaults to MONGODB_DATABASE)")
    args = parser.parse_args(argv)

    mongodb_service = MongoDBService(args.uri, args.database)
    try:
        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error(f"Database {health['database']} unreachable: {health.get('error')}")
            return 1

        mongodb_service.create_indexes()
        report_indexes(mongodb_service)
        return 0
    except Exception as e:
        logger.error(f"Index creation failed: {e}")
        return 1
    finally:
        mongodb_service.close_connection()


if __name__ == "__main__":
    sys.exit(main())
