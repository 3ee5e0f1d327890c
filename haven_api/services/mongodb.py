# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with guarded updates, transactions and connection pooling.
"""

import os
import logging
from contextlib import contextmanager
from typing import List, Dict, Optional, Any, Iterator, Sequence, Tuple
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)

logger = logging.getLogger(__name__)


class DuplicateDocumentError(ValueError):
    """Raised when an insert collides with a unique index."""


class MongoDBService:
    """MongoDB service with generic CRUD, guarded updates and connection pooling."""

    def __init__(
        self,
        connection_string: str = None,
        database_name: str = None,
        client: Any = None,
        transactions_enabled: bool = None
    ):
        """Initialize MongoDB service with connection pooling.

        ``client`` lets callers hand in an already built client (tests use
        mongomock).
        """
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/haven_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'haven_dev')
        self._client: Optional[MongoClient] = client
        self._database: Optional[Database] = None

        if transactions_enabled is None:
            transactions_enabled = os.getenv('MONGODB_TRANSACTIONS', 'false').lower() == 'true'
        self.transactions_enabled = transactions_enabled

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            # Ping the database
            result = self.client.admin.command('ping')

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'database': self.database_name,
                'transactions': self.transactions_enabled,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    @staticmethod
    def _session_kwargs(session: Optional[ClientSession]) -> Dict[str, Any]:
        return {"session": session} if session is not None else {}

    # Units of work

    @contextmanager
    def transaction(self) -> Iterator[Optional[ClientSession]]:
        """
        Run a block of writes as one unit.

        Yields a session bound to a MongoDB transaction when transactions are
        enabled (replica set required), otherwise None and the writes are
        applied sequentially.
        """
        if not self.transactions_enabled:
            yield None
            return

        with self.client.start_session() as session:
            with session.start_transaction():
                yield session

    # CRUD Operations

    def create(self, collection: str, document: Dict, session: Optional[ClientSession] = None) -> str:
        """Insert a document that already carries its ``_id``."""
        try:
            collection_obj = self.get_collection(collection)
            result = collection_obj.insert_one(document, **self._session_kwargs(session))

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key error in {collection}: {e}")
            raise DuplicateDocumentError(f"Document with this identifier already exists in {collection}")
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def create_many(self, collection: str, documents: List[Dict],
                    session: Optional[ClientSession] = None) -> int:
        """Insert several documents; an empty list is a no-op."""
        if not documents:
            return 0
        try:
            collection_obj = self.get_collection(collection)
            result = collection_obj.insert_many(documents, **self._session_kwargs(session))
            logger.info(f"Created {len(result.inserted_ids)} documents in {collection}")
            return len(result.inserted_ids)
        except Exception as e:
            logger.error(f"Failed to create documents in {collection}: {e}")
            raise

    def find_one(self, collection: str, filters: Dict,
                 session: Optional[ClientSession] = None) -> Optional[Dict]:
        """Find a single document."""
        try:
            collection_obj = self.get_collection(collection)
            return collection_obj.find_one(filters, **self._session_kwargs(session))
        except Exception as e:
            logger.error(f"Failed to find document in {collection}: {e}")
            raise

    def find_by_id(self, collection: str, doc_id: str,
                   session: Optional[ClientSession] = None) -> Optional[Dict]:
        """Find a single document by ``_id``."""
        document = self.find_one(collection, {"_id": doc_id}, session=session)
        if document is None:
            logger.debug(f"Document {doc_id} not found in {collection}")
        return document

    def find(self, collection: str, filters: Dict = None,
             sort: Sequence[Tuple[str, int]] = None, limit: int = 0,
             session: Optional[ClientSession] = None) -> List[Dict]:
        """Find documents with optional sorting and limit."""
        try:
            collection_obj = self.get_collection(collection)
            cursor = collection_obj.find(filters or {}, **self._session_kwargs(session))
            if sort:
                cursor = cursor.sort(list(sort))
            if limit:
                cursor = cursor.limit(limit)

            documents = list(cursor)
            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def update_one(self, collection: str, doc_id: str, updates: Dict,
                   guard: Dict = None, session: Optional[ClientSession] = None) -> bool:
        """
        Set fields on one document.

        Args:
            collection: Collection name
            doc_id: Document ``_id``
            updates: Fields to ``$set``
            guard: Extra filter that must still match (e.g. ``{"hostSignedAt": None}``)
            session: Optional transaction session

        Returns:
            True when a document matched the id and the guard
        """
        try:
            query = {"_id": doc_id}
            if guard:
                query.update(guard)

            collection_obj = self.get_collection(collection)
            result = collection_obj.update_one(query, {"$set": updates}, **self._session_kwargs(session))

            if result.matched_count > 0:
                logger.info(f"Updated document {doc_id} in {collection}")
                return True
            else:
                logger.warning(f"No document updated for {doc_id} in {collection}", extra={
                    'guard': list(guard.keys()) if guard else []
                })
                return False

        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def update_many(self, collection: str, filters: Dict, updates: Dict,
                    session: Optional[ClientSession] = None) -> int:
        """Set fields on every matching document; returns the modified count."""
        try:
            collection_obj = self.get_collection(collection)
            result = collection_obj.update_many(filters, {"$set": updates}, **self._session_kwargs(session))
            logger.info(f"Updated {result.modified_count} documents in {collection}")
            return result.modified_count
        except Exception as e:
            logger.error(f"Failed to update documents in {collection}: {e}")
            raise

    def count(self, collection: str, filters: Dict = None,
              session: Optional[ClientSession] = None) -> int:
        """Count documents with optional filters."""
        try:
            collection_obj = self.get_collection(collection)

            count = collection_obj.count_documents(filters or {}, **self._session_kwargs(session))
            logger.debug(f"Counted {count} documents in {collection}")
            return count

        except Exception as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    # Index Management

    def create_indexes(self) -> None:
        """Create performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            # Identities indexes
            identities = self.get_collection("identities")
            identities.create_index([("role", ASCENDING), ("profileStatus", ASCENDING)])
            identities.create_index("email")

            # Profiles indexes
            profiles = self.get_collection("profiles")
            profiles.create_index("identityId", unique=True)
            profiles.create_index([("kind", ASCENDING), ("location", ASCENDING)])

            # Messages indexes
            messages = self.get_collection("messages")
            messages.create_index([("senderId", ASCENDING), ("receiverId", ASCENDING), ("createdAt", ASCENDING)])
            messages.create_index([("receiverId", ASCENDING), ("status", ASCENDING)])

            # Contracts indexes
            contracts = self.get_collection("contracts")
            contracts.create_index([("seekerId", ASCENDING), ("createdAt", DESCENDING)])
            contracts.create_index([("hostId", ASCENDING), ("createdAt", DESCENDING)])
            contracts.create_index("status")

            # Notifications indexes
            notifications = self.get_collection("notifications")
            notifications.create_index([("recipientId", ASCENDING), ("read", ASCENDING), ("createdAt", DESCENDING)])

            # Feedback indexes
            feedback = self.get_collection("feedback")
            feedback.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            feedback.create_index("authorId")

            # Audit logs indexes
            audit_logs = self.get_collection("audit_logs")
            audit_logs.create_index([("entity", ASCENDING), ("entityId", ASCENDING), ("timestamp", DESCENDING)])
            audit_logs.create_index([("actorId", ASCENDING), ("timestamp", DESCENDING)])
            audit_logs.create_index("traceId")

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise
