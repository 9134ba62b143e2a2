"""
Tool handlers for Firestore document operations.

Each public coroutine on ``FirestoreTools`` backs one MCP tool and returns a
``ToolResult`` dump; failures come back as categorized errors, never as
exceptions.
"""
import functools
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from google.cloud import firestore

from ..infrastructure.firestore import FirestoreService
from ..models.requests import FieldOperation, QueryFilter, QueryOrder, SpecialField, WriteOperation
from ..models.responses import ToolResult
from ..services.document_cache import DocumentCache
from ..services.value_normalizer import ValueNormalizer, format_timestamp
from ..utils.constants import DEFAULT_TTL_FIELD
from ..utils.exceptions import AppException, ValidationError

logger = structlog.get_logger()


def tool_handler(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Wrap a handler so it logs the call and returns a ToolResult dump."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs) -> Dict[str, Any]:
        start_time = time.time()
        tool = func.__name__

        logger.info("Tool call started", tool=tool)

        try:
            result = ToolResult.ok(await func(self, *args, **kwargs))
        except AppException as exc:
            logger.warning(
                "Tool call failed",
                tool=tool,
                error_code=exc.code,
                error_message=exc.message
            )
            result = ToolResult.fail(exc)
        except Exception as exc:
            logger.exception("Unexpected error in tool call", tool=tool, error=str(exc))
            result = ToolResult.fail(
                AppException(message="Internal server error", code="INTERNAL_ERROR", details=[str(exc)])
            )

        logger.info(
            "Tool call completed",
            tool=tool,
            success=result.success,
            process_time=f"{time.time() - start_time:.4f}s"
        )
        return result.model_dump()

    return wrapper


def _nest(field_path: str, value: Any) -> Dict[str, Any]:
    """Expand ``a.b.c`` into ``{"a": {"b": {"c": value}}}``."""
    nested: Any = value
    for part in reversed(field_path.split(".")):
        nested = {part: nested}
    return nested


def _deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value
    return target


class FirestoreTools:
    """Firestore tool handlers sharing one store, cache and normalizer."""

    def __init__(self, store: FirestoreService, cache: DocumentCache, normalizer: ValueNormalizer):
        self.store = store
        self.cache = cache
        self.normalizer = normalizer

    def _snapshot_to_plain(self, snapshot) -> Dict[str, Any]:
        return {
            "id": snapshot.id,
            "path": snapshot.reference.path,
            "data": self.normalizer.document_to_plain(snapshot.to_dict()),
        }

    def _filter_value(self, query_filter: QueryFilter) -> Any:
        if query_filter.value_type:
            return self.normalizer.to_native(query_filter.value, query_filter.value_type)
        return self.normalizer.restore_tagged(query_filter.value)

    def _prepare_operations(self, operations: List[WriteOperation]) -> List[WriteOperation]:
        if not operations:
            raise ValidationError(message="At least one operation is required")
        return [
            op.model_copy(update={"data": self.normalizer.restore_tagged(op.data)}) if op.data else op
            for op in operations
        ]

    def _invalidate_written(self, operations: List[WriteOperation]) -> None:
        for op in operations:
            if op.type != "get":
                self.cache.invalidate(op.collection, op.id)

    # Documents

    @tool_handler
    async def get_document(self, collection: str, id: str, use_cache: bool = True) -> Dict[str, Any]:
        """Get a document, served from the cache when fresh."""
        if use_cache:
            cached = self.cache.get(collection, id)
            if cached is not None:
                logger.debug("Document served from cache", collection=collection, document_id=id)
                return cached

        snapshot = await self.store.get_document(collection, id)
        document = self._snapshot_to_plain(snapshot)

        if use_cache:
            self.cache.set(collection, id, document)
        return document

    @tool_handler
    async def create_document(
        self,
        collection: str,
        data: Dict[str, Any],
        id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a document, with a generated ID when none is given."""
        doc_ref = await self.store.create_document(
            collection,
            self.normalizer.restore_tagged(data),
            document_id=id
        )
        self.cache.invalidate(collection, doc_ref.id)
        return {"id": doc_ref.id, "path": doc_ref.path}

    @tool_handler
    async def update_document(
        self,
        collection: str,
        id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> Dict[str, Any]:
        """Update an existing document, or merge into it (creating it if needed)."""
        native = self.normalizer.restore_tagged(data)
        if merge:
            await self.store.set_document(collection, id, native, merge=True)
        else:
            await self.store.update_document(collection, id, native)

        self.cache.invalidate(collection, id)
        return {"id": id, "path": f"{collection}/{id}", "merge": merge}

    @tool_handler
    async def delete_document(self, collection: str, id: str) -> Dict[str, Any]:
        """Delete a document."""
        await self.store.delete_document(collection, id)
        self.cache.invalidate(collection, id)
        return {"id": id, "path": f"{collection}/{id}", "deleted": True}

    # Queries

    @tool_handler
    async def query_collection(
        self,
        collection: str,
        filters: Optional[List[QueryFilter]] = None,
        order_by: Optional[List[QueryOrder]] = None,
        limit: Optional[int] = None,
        select: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """Query a collection with filters, ordering and a limit."""
        snapshots = await self.store.query_documents(
            collection,
            where_clauses=[(f.field, f.operator, self._filter_value(f)) for f in filters or []],
            order_by=[(o.field, o.direction) for o in order_by or []],
            limit=limit,
            select=select
        )
        documents = [self._snapshot_to_plain(snapshot) for snapshot in snapshots]
        return {"documents": documents, "count": len(documents)}

    @tool_handler
    async def collection_group_query(
        self,
        collection_id: str,
        filters: Optional[List[QueryFilter]] = None,
        order_by: Optional[List[QueryOrder]] = None,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """Query every collection with the given ID, at any depth."""
        snapshots = await self.store.query_documents(
            collection_id,
            where_clauses=[(f.field, f.operator, self._filter_value(f)) for f in filters or []],
            order_by=[(o.field, o.direction) for o in order_by or []],
            limit=limit,
            collection_group=True
        )
        documents = [self._snapshot_to_plain(snapshot) for snapshot in snapshots]
        return {"documents": documents, "count": len(documents)}

    @tool_handler
    async def list_collections(self, document_path: Optional[str] = None) -> Dict[str, Any]:
        """List root collections, or the sub-collections of a document."""
        collections = await self.store.list_collections(document_path)
        return {"collections": collections, "count": len(collections)}

    # Field-level writes

    @tool_handler
    async def field_operations(
        self,
        collection: str,
        id: str,
        operations: List[FieldOperation]
    ) -> Dict[str, Any]:
        """Apply atomic field transforms (increment, array union/remove, ...)."""
        if not operations:
            raise ValidationError(message="At least one field operation is required")

        updates: Dict[str, Any] = {}
        for op in operations:
            if op.type == "increment":
                if isinstance(op.value, bool) or not isinstance(op.value, (int, float)):
                    raise ValidationError(
                        message=f"Increment on '{op.field}' needs a numeric value",
                        details=[f"Received: {op.value!r}"]
                    )
                updates[op.field] = firestore.Increment(op.value)
            elif op.type in ("array_union", "array_remove"):
                values = op.value if isinstance(op.value, list) else [op.value]
                values = self.normalizer.restore_tagged(values)
                transform = firestore.ArrayUnion if op.type == "array_union" else firestore.ArrayRemove
                updates[op.field] = transform(values)
            elif op.type == "server_timestamp":
                updates[op.field] = firestore.SERVER_TIMESTAMP
            else:
                updates[op.field] = firestore.DELETE_FIELD

        await self.store.update_document(collection, id, updates)
        self.cache.invalidate(collection, id)
        return {
            "id": id,
            "path": f"{collection}/{id}",
            "applied": [{"field": op.field, "type": op.type} for op in operations],
        }

    @tool_handler
    async def special_data_types(
        self,
        collection: str,
        id: str,
        fields: List[SpecialField],
        operation: str = "set",
        additional_data: Optional[Dict[str, Any]] = None,
        merge: bool = True
    ) -> Dict[str, Any]:
        """Write fields converted to timestamps, geo points, references, ..."""
        if operation not in ("set", "update"):
            raise ValidationError(
                message=f"Unsupported operation '{operation}'",
                details=["Use 'set' or 'update'"]
            )

        data = self.normalizer.restore_tagged(additional_data or {})
        converted = []
        for field in fields:
            native = self.normalizer.to_native(field.value, field.type)
            if operation == "update":
                # update() reads dotted keys as field paths
                data[field.field_path] = native
            else:
                _deep_merge(data, _nest(field.field_path, native))
            converted.append({
                "field_path": field.field_path,
                "type": field.type,
                "stored_as": type(native).__name__,
            })

        if operation == "update":
            await self.store.update_document(collection, id, data)
        else:
            await self.store.set_document(collection, id, data, merge=merge)

        self.cache.invalidate(collection, id)
        return {
            "id": id,
            "path": f"{collection}/{id}",
            "operation": operation,
            "fields": converted,
        }

    # Multi-document writes

    @tool_handler
    async def transaction(self, operations: List[WriteOperation]) -> Dict[str, Any]:
        """Run get/set/update/delete operations atomically."""
        prepared = self._prepare_operations(operations)
        snapshots = await self.store.run_transaction(prepared)
        self._invalidate_written(prepared)

        results = []
        for op, snapshot in zip(prepared, snapshots):
            result: Dict[str, Any] = {"type": op.type, "collection": op.collection, "id": op.id}
            if op.type == "get":
                result["exists"] = bool(snapshot is not None and snapshot.exists)
                result["data"] = (
                    self.normalizer.document_to_plain(snapshot.to_dict()) if result["exists"] else None
                )
            results.append(result)

        return {"operations_count": len(prepared), "results": results}

    @tool_handler
    async def batch_write(self, operations: List[WriteOperation]) -> Dict[str, Any]:
        """Apply set/update/delete operations in one atomic batch."""
        prepared = self._prepare_operations(operations)
        count = await self.store.batch_write(prepared)
        self._invalidate_written(prepared)
        return {"operations_count": count}

    @tool_handler
    async def set_ttl(
        self,
        collection: str,
        id: str,
        expires_in: int,
        field_name: str = DEFAULT_TTL_FIELD
    ) -> Dict[str, Any]:
        """Stamp a document with an expiry time ``expires_in`` milliseconds from now."""
        if expires_in <= 0:
            raise ValidationError(
                message="expires_in must be a positive number of milliseconds",
                details=[f"Received: {expires_in}"]
            )

        expires_at = datetime.now(timezone.utc) + timedelta(milliseconds=expires_in)
        await self.store.set_document(collection, id, {field_name: expires_at}, merge=True)
        self.cache.invalidate(collection, id)

        return {
            "id": id,
            "path": f"{collection}/{id}",
            "field_name": field_name,
            "expires_at": format_timestamp(expires_at),
            "note": f"Firestore deletes the document only if a TTL policy exists on '{field_name}'",
        }

    # Cache

    @tool_handler
    async def cache_stats(self) -> Dict[str, Any]:
        """Get document cache statistics."""
        return self.cache.get_stats().model_dump()

    @tool_handler
    async def cache_clear(self) -> Dict[str, Any]:
        """Clear the document cache."""
        self.cache.clear()
        logger.info("Document cache cleared")
        return {"cleared": True}
