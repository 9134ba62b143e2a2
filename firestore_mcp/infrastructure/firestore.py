"""
Firestore client wrapper with credential loading and error translation.
"""
import os
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.cloud.firestore import Client as FirestoreClient
from google.cloud.firestore import DocumentReference, DocumentSnapshot, Query
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2 import service_account

from ..config import Settings, get_settings
from ..models.requests import WriteOperation
from ..utils.constants import MAX_BATCH_OPERATIONS
from ..utils.exceptions import (
    AppException,
    ConfigurationError,
    ConflictError,
    DatabaseError,
    MissingIndexError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = structlog.get_logger()

_INDEX_URL_PATTERN = re.compile(r"https?://\S+")


def translate_error(
    error: Exception,
    action: str,
    collection: Optional[str] = None,
    document_id: Optional[str] = None
) -> AppException:
    """Map a client or API error onto the application error taxonomy."""
    if isinstance(error, AppException):
        return error

    if isinstance(error, gcp_exceptions.NotFound):
        return NotFoundError(collection=collection, document_id=document_id)

    if isinstance(error, (gcp_exceptions.AlreadyExists, gcp_exceptions.Conflict)):
        return ConflictError(
            message=f"Failed to {action}: document already exists",
            details=[str(error)]
        )

    if isinstance(error, gcp_exceptions.PermissionDenied):
        return PermissionDeniedError(
            message=f"Failed to {action}: permission denied",
            details=[str(error)]
        )

    if isinstance(error, gcp_exceptions.FailedPrecondition) and "index" in str(error).lower():
        match = _INDEX_URL_PATTERN.search(str(error))
        return MissingIndexError(
            message=f"Failed to {action}: the query requires a composite index",
            index_url=match.group(0) if match else None
        )

    if isinstance(error, (ValueError, TypeError)):
        return ValidationError(
            message=f"Failed to {action}: {error}",
            details=[str(error)]
        )

    return DatabaseError(
        message=f"Failed to {action}",
        details=[str(error)]
    )


class FirestoreService:
    """
    Firestore service with connection management.

    Every method returns native client objects (snapshots, references) and
    raises ``AppException`` subclasses on failure.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[FirestoreClient] = None):
        """Initialize with configuration; the client is created on first use."""
        self._client = client
        self._settings = settings or get_settings()

    @property
    def client(self) -> FirestoreClient:
        """Get or create Firestore client."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> FirestoreClient:
        """Create and configure Firestore client."""
        settings = self._settings
        try:
            if settings.use_firestore_emulator:
                os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
                client = firestore.Client(
                    project=settings.firestore_project_id or "emulator-project",
                    database=settings.firestore_database
                )
                logger.info(
                    "Connected to Firestore emulator",
                    host=settings.firestore_emulator_host,
                    project=client.project
                )
                return client

            if not settings.service_account_key_path:
                raise ConfigurationError(
                    message="SERVICE_ACCOUNT_KEY_PATH is not set",
                    details=["Point SERVICE_ACCOUNT_KEY_PATH at a service account JSON key file"]
                )

            credentials = service_account.Credentials.from_service_account_file(
                settings.service_account_key_path
            )
            client = firestore.Client(
                project=settings.firestore_project_id or credentials.project_id,
                credentials=credentials,
                database=settings.firestore_database
            )
            logger.info("Connected to Firestore", project=client.project)
            return client

        except ConfigurationError:
            raise
        except (OSError, ValueError, auth_exceptions.GoogleAuthError) as e:
            logger.error("Failed to create Firestore client", error=str(e))
            raise ConfigurationError(
                message="Failed to load Firestore credentials",
                details=[str(e)]
            )

    def document(self, path: str) -> DocumentReference:
        """Get a reference to the document at ``path``."""
        return self.client.document(path)

    def _doc_ref(self, collection: str, document_id: str) -> DocumentReference:
        return self.client.collection(collection).document(document_id)

    async def get_document(self, collection: str, document_id: str) -> DocumentSnapshot:
        """Get a document snapshot by ID."""
        try:
            doc = self._doc_ref(collection, document_id).get()
            if not doc.exists:
                raise NotFoundError(collection=collection, document_id=document_id)
            return doc
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(
                "Failed to get document",
                collection=collection,
                document_id=document_id,
                error=str(e)
            )
            raise translate_error(e, "get document", collection, document_id) from e

    async def create_document(
        self,
        collection: str,
        data: Dict[str, Any],
        document_id: Optional[str] = None
    ) -> DocumentReference:
        """Create a document; a generated ID is used when none is given."""
        try:
            if document_id:
                doc_ref = self._doc_ref(collection, document_id)
                doc_ref.create(data)
            else:
                _, doc_ref = self.client.collection(collection).add(data)

            logger.info(
                "Document created",
                collection=collection,
                document_id=doc_ref.id
            )
            return doc_ref

        except gcp_exceptions.AlreadyExists as e:
            raise ConflictError(
                message=f"Document '{collection}/{document_id}' already exists",
                details=[str(e)]
            ) from e
        except Exception as e:
            logger.error(
                "Failed to create document",
                collection=collection,
                document_id=document_id,
                error=str(e)
            )
            raise translate_error(e, "create document", collection, document_id) from e

    async def set_document(
        self,
        collection: str,
        document_id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> None:
        """Write a document, replacing it unless ``merge`` is set."""
        try:
            self._doc_ref(collection, document_id).set(data, merge=merge)
            logger.info(
                "Document set",
                collection=collection,
                document_id=document_id,
                merge=merge
            )
        except Exception as e:
            logger.error(
                "Failed to set document",
                collection=collection,
                document_id=document_id,
                error=str(e)
            )
            raise translate_error(e, "set document", collection, document_id) from e

    async def update_document(
        self,
        collection: str,
        document_id: str,
        data: Dict[str, Any]
    ) -> None:
        """Update fields of an existing document."""
        try:
            self._doc_ref(collection, document_id).update(data)
            logger.info(
                "Document updated",
                collection=collection,
                document_id=document_id
            )
        except Exception as e:
            logger.error(
                "Failed to update document",
                collection=collection,
                document_id=document_id,
                error=str(e)
            )
            raise translate_error(e, "update document", collection, document_id) from e

    async def delete_document(self, collection: str, document_id: str) -> None:
        """Delete a document."""
        try:
            doc_ref = self._doc_ref(collection, document_id)

            # Check if document exists
            if not doc_ref.get().exists:
                raise NotFoundError(collection=collection, document_id=document_id)

            doc_ref.delete()

            logger.info(
                "Document deleted",
                collection=collection,
                document_id=document_id
            )

        except NotFoundError:
            raise
        except Exception as e:
            logger.error(
                "Failed to delete document",
                collection=collection,
                document_id=document_id,
                error=str(e)
            )
            raise translate_error(e, "delete document", collection, document_id) from e

    async def query_documents(
        self,
        collection: str,
        where_clauses: Optional[Sequence[Tuple[str, str, Any]]] = None,
        order_by: Optional[Sequence[Tuple[str, str]]] = None,
        limit: Optional[int] = None,
        select: Optional[List[str]] = None,
        collection_group: bool = False
    ) -> List[DocumentSnapshot]:
        """Query a collection (or collection group) with filters and ordering."""
        try:
            if collection_group:
                query = self.client.collection_group(collection)
            else:
                query = self.client.collection(collection)

            for field, operator, value in where_clauses or []:
                query = query.where(filter=FieldFilter(field, operator, value))

            for field, direction in order_by or []:
                query = query.order_by(
                    field,
                    direction=Query.DESCENDING if direction == "desc" else Query.ASCENDING
                )

            if select:
                query = query.select(select)
            if limit:
                query = query.limit(limit)

            results = list(query.stream())

            logger.info(
                "Documents queried",
                collection=collection,
                collection_group=collection_group,
                count=len(results),
                filters=[clause[:2] for clause in where_clauses or []],
                limit=limit
            )
            return results

        except Exception as e:
            logger.error(
                "Failed to query documents",
                collection=collection,
                collection_group=collection_group,
                error=str(e)
            )
            raise translate_error(e, "query documents", collection) from e

    async def list_collections(self, document_path: Optional[str] = None) -> List[str]:
        """List root collections, or the sub-collections of a document."""
        try:
            if document_path:
                collections = self.client.document(document_path).collections()
            else:
                collections = self.client.collections()
            return [collection.id for collection in collections]
        except Exception as e:
            logger.error("Failed to list collections", document_path=document_path, error=str(e))
            raise translate_error(e, "list collections") from e

    async def run_transaction(self, operations: List[WriteOperation]) -> List[Optional[DocumentSnapshot]]:
        """
        Run operations atomically.

        Firestore requires every read in a transaction to happen before any
        write, so ``get`` operations run first regardless of their position.
        The result list is aligned with ``operations``; write slots are None.
        """
        try:
            transaction = self.client.transaction()

            @firestore.transactional
            def run_in_transaction(transaction_ref):
                results: List[Optional[DocumentSnapshot]] = [None] * len(operations)

                for index, op in enumerate(operations):
                    if op.type == "get":
                        doc_ref = self._doc_ref(op.collection, op.id)
                        results[index] = doc_ref.get(transaction=transaction_ref)

                for op in operations:
                    doc_ref = self._doc_ref(op.collection, op.id)
                    if op.type == "set":
                        transaction_ref.set(doc_ref, op.data or {}, merge=op.merge)
                    elif op.type == "update":
                        transaction_ref.update(doc_ref, op.data or {})
                    elif op.type == "delete":
                        transaction_ref.delete(doc_ref)

                return results

            results = run_in_transaction(transaction)

            logger.info("Transaction completed", operations_count=len(operations))
            return results

        except Exception as e:
            logger.error(
                "Failed to run transaction",
                operations_count=len(operations),
                error=str(e)
            )
            raise translate_error(e, "run transaction") from e

    async def batch_write(self, operations: List[WriteOperation]) -> int:
        """Apply set/update/delete operations in a single atomic batch."""
        if len(operations) > MAX_BATCH_OPERATIONS:
            raise ValidationError(
                message=f"A batch accepts at most {MAX_BATCH_OPERATIONS} operations",
                details=[f"Received: {len(operations)}"]
            )

        try:
            batch = self.client.batch()

            for op in operations:
                doc_ref = self._doc_ref(op.collection, op.id)
                if op.type == "set":
                    batch.set(doc_ref, op.data or {}, merge=op.merge)
                elif op.type == "update":
                    batch.update(doc_ref, op.data or {})
                elif op.type == "delete":
                    batch.delete(doc_ref)
                else:
                    raise ValidationError(
                        message=f"Operation '{op.type}' is not allowed in a batch",
                        details=["Use firestore_transaction to read documents atomically"]
                    )

            batch.commit()

            logger.info("Batch write completed", operations_count=len(operations))
            return len(operations)

        except ValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to commit batch",
                operations_count=len(operations),
                error=str(e)
            )
            raise translate_error(e, "commit batch") from e

    def close(self) -> None:
        """Close the underlying client if one was created."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("Firestore client closed")
