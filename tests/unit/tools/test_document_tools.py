"""
Unit tests for the Firestore tool handlers.
"""
from datetime import datetime, timezone

import pytest
from google.cloud import firestore
from google.cloud.firestore import DocumentReference, GeoPoint

from firestore_mcp.models.requests import (
    FieldOperation,
    QueryFilter,
    QueryOrder,
    SpecialField,
    WriteOperation,
)
from firestore_mcp.utils.exceptions import ConflictError, MissingIndexError, NotFoundError


@pytest.mark.unit
class TestGetDocument:
    """Test firestore_get_document."""

    @pytest.mark.asyncio
    async def test_returns_normalized_document(self, tools, mock_firestore_service, snapshot_factory, reference_factory):
        mock_firestore_service.get_document.return_value = snapshot_factory(
            "users/u1",
            {
                "name": "Ada",
                "joined": datetime(2024, 1, 1, tzinfo=timezone.utc),
                "team": reference_factory("teams/t1"),
                "home": GeoPoint(51.5, -0.1),
            },
        )

        result = await tools.get_document("users", "u1")

        assert result["success"] is True
        assert result["error"] is None
        assert result["data"] == {
            "id": "u1",
            "path": "users/u1",
            "data": {
                "name": "Ada",
                "joined": "2024-01-01T00:00:00.000Z",
                "team": {"type": "reference", "path": "teams/t1", "id": "t1", "collectionId": "teams"},
                "home": {"latitude": 51.5, "longitude": -0.1},
            },
        }

    @pytest.mark.asyncio
    async def test_second_read_is_served_from_cache(self, tools, mock_firestore_service, snapshot_factory):
        mock_firestore_service.get_document.return_value = snapshot_factory("users/u1", {"name": "Ada"})

        first = await tools.get_document("users", "u1")
        second = await tools.get_document("users", "u1")

        assert first == second
        assert mock_firestore_service.get_document.await_count == 1
        stats = tools.cache.get_stats()
        assert stats.hit_count == 1
        assert stats.miss_count == 1

    @pytest.mark.asyncio
    async def test_cache_can_be_bypassed(self, tools, mock_firestore_service, snapshot_factory):
        mock_firestore_service.get_document.return_value = snapshot_factory("users/u1", {"name": "Ada"})

        await tools.get_document("users", "u1", use_cache=False)
        await tools.get_document("users", "u1", use_cache=False)

        assert mock_firestore_service.get_document.await_count == 2
        assert len(tools.cache) == 0

    @pytest.mark.asyncio
    async def test_write_invalidates_cached_document(self, tools, mock_firestore_service, snapshot_factory):
        mock_firestore_service.get_document.return_value = snapshot_factory("users/u1", {"name": "Ada"})
        await tools.get_document("users", "u1")

        await tools.update_document("users", "u1", {"name": "Grace"})
        mock_firestore_service.get_document.return_value = snapshot_factory("users/u1", {"name": "Grace"})
        result = await tools.get_document("users", "u1")

        assert result["data"]["data"] == {"name": "Grace"}
        assert mock_firestore_service.get_document.await_count == 2

    @pytest.mark.asyncio
    async def test_not_found_is_returned_as_error(self, tools, mock_firestore_service):
        mock_firestore_service.get_document.side_effect = NotFoundError(collection="users", document_id="nope")

        result = await tools.get_document("users", "nope")

        assert result["success"] is False
        assert result["data"] is None
        assert result["error"]["code"] == "NOT_FOUND"
        assert "users/nope" in result["error"]["message"]
        assert len(tools.cache) == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal_error(self, tools, mock_firestore_service):
        mock_firestore_service.get_document.side_effect = RuntimeError("boom")

        result = await tools.get_document("users", "u1")

        assert result["success"] is False
        assert result["error"]["code"] == "INTERNAL_ERROR"
        assert result["error"]["details"] == ["boom"]


@pytest.mark.unit
class TestWrites:
    """Test create, update and delete tools."""

    @pytest.mark.asyncio
    async def test_create_with_generated_id(self, tools, mock_firestore_service):
        mock_firestore_service.create_document.return_value = DocumentReference("users", "generated")

        result = await tools.create_document("users", {"name": "Ada"})

        assert result["data"] == {"id": "generated", "path": "users/generated"}
        mock_firestore_service.create_document.assert_awaited_once_with(
            "users", {"name": "Ada"}, document_id=None
        )

    @pytest.mark.asyncio
    async def test_create_restores_tagged_references(self, tools, mock_firestore_service):
        mock_firestore_service.create_document.return_value = DocumentReference("posts", "p1")
        owner = {"type": "reference", "path": "users/u1", "id": "u1", "collectionId": "users"}

        await tools.create_document("posts", {"owner": owner}, id="p1")

        data = mock_firestore_service.create_document.await_args.args[1]
        assert isinstance(data["owner"], DocumentReference)
        assert data["owner"].path == "users/u1"

    @pytest.mark.asyncio
    async def test_create_conflict(self, tools, mock_firestore_service):
        mock_firestore_service.create_document.side_effect = ConflictError("Document 'users/u1' already exists")

        result = await tools.create_document("users", {"name": "Ada"}, id="u1")

        assert result["success"] is False
        assert result["error"]["code"] == "CONFLICT_ERROR"

    @pytest.mark.asyncio
    async def test_update_with_merge_uses_set(self, tools, mock_firestore_service):
        result = await tools.update_document("users", "u1", {"age": 36}, merge=True)

        assert result["success"] is True
        mock_firestore_service.set_document.assert_awaited_once_with("users", "u1", {"age": 36}, merge=True)
        mock_firestore_service.update_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_without_merge(self, tools, mock_firestore_service):
        await tools.update_document("users", "u1", {"age": 36})

        mock_firestore_service.update_document.assert_awaited_once_with("users", "u1", {"age": 36})

    @pytest.mark.asyncio
    async def test_delete_invalidates_cache(self, tools, mock_firestore_service):
        tools.cache.set("users", "u1", {"id": "u1"})

        result = await tools.delete_document("users", "u1")

        assert result["data"] == {"id": "u1", "path": "users/u1", "deleted": True}
        assert "users/u1" not in tools.cache

    @pytest.mark.asyncio
    async def test_failed_write_keeps_cache(self, tools, mock_firestore_service):
        tools.cache.set("users", "u1", {"id": "u1"})
        mock_firestore_service.delete_document.side_effect = NotFoundError(collection="users", document_id="u1")

        result = await tools.delete_document("users", "u1")

        assert result["success"] is False
        assert "users/u1" in tools.cache


@pytest.mark.unit
class TestQueries:
    """Test query tools."""

    @pytest.mark.asyncio
    async def test_query_collection(self, tools, mock_firestore_service, snapshot_factory):
        mock_firestore_service.query_documents.return_value = [
            snapshot_factory("users/u1", {"age": 30}),
            snapshot_factory("users/u2", {"age": 40}),
        ]

        result = await tools.query_collection(
            "users",
            filters=[QueryFilter(field="age", operator=">=", value=30)],
            order_by=[QueryOrder(field="age", direction="desc")],
            limit=10,
        )

        assert result["data"]["count"] == 2
        assert [doc["id"] for doc in result["data"]["documents"]] == ["u1", "u2"]
        mock_firestore_service.query_documents.assert_awaited_once_with(
            "users",
            where_clauses=[("age", ">=", 30)],
            order_by=[("age", "desc")],
            limit=10,
            select=None,
        )

    @pytest.mark.asyncio
    async def test_filter_value_conversion(self, tools, mock_firestore_service):
        await tools.query_collection(
            "events",
            filters=[
                QueryFilter(field="at", operator=">", value="2024-01-01T00:00:00Z", value_type="timestamp"),
                QueryFilter(field="owner", operator="==", value="users/u1", value_type="reference"),
            ],
        )

        clauses = mock_firestore_service.query_documents.await_args.kwargs["where_clauses"]
        assert clauses[0] == ("at", ">", datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert clauses[1][2].path == "users/u1"

    @pytest.mark.asyncio
    async def test_missing_index_error(self, tools, mock_firestore_service):
        mock_firestore_service.query_documents.side_effect = MissingIndexError(
            index_url="https://console.firebase.google.com/project/p/firestore/indexes?create=abc"
        )

        result = await tools.query_collection("users")

        assert result["success"] is False
        assert result["error"]["code"] == "MISSING_INDEX"
        assert "https://console.firebase.google.com" in result["error"]["details"][0]

    @pytest.mark.asyncio
    async def test_collection_group_query(self, tools, mock_firestore_service, snapshot_factory):
        mock_firestore_service.query_documents.return_value = [
            snapshot_factory("users/u1/posts/p1", {"title": "Hi"}),
        ]

        result = await tools.collection_group_query("posts", limit=5)

        assert result["data"]["documents"][0]["path"] == "users/u1/posts/p1"
        assert mock_firestore_service.query_documents.await_args.kwargs["collection_group"] is True

    @pytest.mark.asyncio
    async def test_list_collections(self, tools, mock_firestore_service):
        mock_firestore_service.list_collections.return_value = ["users", "teams"]

        result = await tools.list_collections()

        assert result["data"] == {"collections": ["users", "teams"], "count": 2}


@pytest.mark.unit
class TestFieldOperations:
    """Test firestore_field_operations."""

    @pytest.mark.asyncio
    async def test_builds_transforms(self, tools, mock_firestore_service):
        tools.cache.set("posts", "p1", {"id": "p1"})

        result = await tools.field_operations(
            "posts",
            "p1",
            [
                FieldOperation(field="views", type="increment", value=1),
                FieldOperation(field="tags", type="array_union", value=["new"]),
                FieldOperation(field="old", type="array_remove", value="stale"),
                FieldOperation(field="updated", type="server_timestamp"),
                FieldOperation(field="draft", type="delete"),
            ],
        )

        assert result["success"] is True
        updates = mock_firestore_service.update_document.await_args.args[2]
        assert isinstance(updates["views"], firestore.Increment)
        assert isinstance(updates["tags"], firestore.ArrayUnion)
        assert isinstance(updates["old"], firestore.ArrayRemove)
        assert updates["updated"] is firestore.SERVER_TIMESTAMP
        assert updates["draft"] is firestore.DELETE_FIELD
        assert "posts/p1" not in tools.cache

    @pytest.mark.asyncio
    async def test_increment_requires_number(self, tools, mock_firestore_service):
        result = await tools.field_operations(
            "posts", "p1", [FieldOperation(field="views", type="increment", value="one")]
        )

        assert result["success"] is False
        assert result["error"]["code"] == "VALIDATION_ERROR"
        mock_firestore_service.update_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_operations(self, tools):
        result = await tools.field_operations("posts", "p1", [])

        assert result["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.unit
class TestSpecialDataTypes:
    """Test firestore_special_data_types."""

    @pytest.mark.asyncio
    async def test_set_converts_fields(self, tools, mock_firestore_service):
        result = await tools.special_data_types(
            "test_collection",
            "test_document",
            fields=[
                SpecialField(field_path="userRef", type="reference", value="users/user123"),
                SpecialField(field_path="meta.location", type="geopoint", value={"latitude": 1, "longitude": 2}),
                SpecialField(field_path="when", type="timestamp", value="bad date"),
            ],
            additional_data={"name": "Test Document"},
        )

        assert result["success"] is True
        collection, document_id, data = mock_firestore_service.set_document.await_args.args
        assert (collection, document_id) == ("test_collection", "test_document")
        assert data["name"] == "Test Document"
        assert data["userRef"].path == "users/user123"
        assert data["meta"]["location"] == GeoPoint(1, 2)
        assert data["when"] == "bad date"
        assert mock_firestore_service.set_document.await_args.kwargs == {"merge": True}
        assert [field["stored_as"] for field in result["data"]["fields"]] == [
            "DocumentReference", "GeoPoint", "str",
        ]

    @pytest.mark.asyncio
    async def test_update_keeps_dotted_paths(self, tools, mock_firestore_service):
        await tools.special_data_types(
            "c",
            "d",
            fields=[SpecialField(field_path="meta.count", type="number", value="3")],
            operation="update",
        )

        mock_firestore_service.update_document.assert_awaited_once_with("c", "d", {"meta.count": 3})

    @pytest.mark.asyncio
    async def test_rejects_unknown_operation(self, tools):
        result = await tools.special_data_types("c", "d", fields=[], operation="upsert")

        assert result["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.unit
class TestMultiDocumentWrites:
    """Test transactions, batches and TTL."""

    @pytest.mark.asyncio
    async def test_transaction(self, tools, mock_firestore_service, snapshot_factory):
        tools.cache.set("accounts", "a", {"id": "a"})
        tools.cache.set("accounts", "b", {"id": "b"})
        mock_firestore_service.run_transaction.return_value = [
            snapshot_factory("accounts/a", {"balance": 10}),
            None,
        ]

        result = await tools.transaction([
            WriteOperation(type="get", collection="accounts", id="a"),
            WriteOperation(type="update", collection="accounts", id="b", data={"balance": 5}),
        ])

        assert result["data"]["results"] == [
            {"type": "get", "collection": "accounts", "id": "a", "exists": True, "data": {"balance": 10}},
            {"type": "update", "collection": "accounts", "id": "b"},
        ]
        assert "accounts/a" in tools.cache
        assert "accounts/b" not in tools.cache

    @pytest.mark.asyncio
    async def test_transaction_missing_document(self, tools, mock_firestore_service, snapshot_factory):
        mock_firestore_service.run_transaction.return_value = [
            snapshot_factory("accounts/x", exists=False),
        ]

        result = await tools.transaction([WriteOperation(type="get", collection="accounts", id="x")])

        assert result["data"]["results"][0]["exists"] is False
        assert result["data"]["results"][0]["data"] is None

    @pytest.mark.asyncio
    async def test_transaction_requires_operations(self, tools, mock_firestore_service):
        result = await tools.transaction([])

        assert result["error"]["code"] == "VALIDATION_ERROR"
        mock_firestore_service.run_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_batch_write_invalidates_every_document(self, tools, mock_firestore_service):
        mock_firestore_service.batch_write.return_value = 2
        tools.cache.set("users", "u1", {})
        tools.cache.set("users", "u2", {})

        result = await tools.batch_write([
            WriteOperation(type="set", collection="users", id="u1", data={"a": 1}),
            WriteOperation(type="delete", collection="users", id="u2"),
        ])

        assert result["data"] == {"operations_count": 2}
        assert len(tools.cache) == 0

    @pytest.mark.asyncio
    async def test_set_ttl(self, tools, mock_firestore_service):
        before = datetime.now(timezone.utc)

        result = await tools.set_ttl("sessions", "s1", expires_in=86400000)

        collection, document_id, data = mock_firestore_service.set_document.await_args.args
        assert (collection, document_id) == ("sessions", "s1")
        expires_at = data["expires_at"]
        assert (expires_at - before).total_seconds() == pytest.approx(86400, abs=5)
        assert result["data"]["field_name"] == "expires_at"
        assert result["data"]["expires_at"].endswith("Z")

    @pytest.mark.asyncio
    async def test_set_ttl_rejects_non_positive(self, tools, mock_firestore_service):
        result = await tools.set_ttl("sessions", "s1", expires_in=0, field_name="ttl")

        assert result["error"]["code"] == "VALIDATION_ERROR"
        mock_firestore_service.set_document.assert_not_awaited()


@pytest.mark.unit
class TestCacheTools:
    """Test cache statistics and clearing."""

    @pytest.mark.asyncio
    async def test_stats_and_clear(self, tools):
        tools.cache.set("users", "u1", {})
        tools.cache.get("users", "u1")

        stats = await tools.cache_stats()
        assert stats["data"] == {
            "size": 1,
            "max_size": 10,
            "hit_count": 1,
            "miss_count": 0,
            "hit_ratio": 1.0,
        }

        cleared = await tools.cache_clear()
        assert cleared["data"] == {"cleared": True}
        assert len(tools.cache) == 0
