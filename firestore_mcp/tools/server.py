"""
MCP server definition: registers the Firestore tool handlers with FastMCP.
"""
from typing import Callable, List, Tuple

from mcp.server.fastmcp import FastMCP

from .document_tools import FirestoreTools

# Tool name -> description shown to the model
TOOL_DESCRIPTIONS = {
    "firestore_get_document": (
        "Get a document by collection and ID. Timestamps come back as ISO-8601 UTC strings, "
        "geo points as {latitude, longitude} and references as "
        "{type: 'reference', path, id, collectionId}. Recent reads are served from a short-lived cache."
    ),
    "firestore_create_document": (
        "Create a document. Omit 'id' to let Firestore generate one. "
        "Fails with CONFLICT_ERROR if the ID is taken."
    ),
    "firestore_update_document": (
        "Update fields of an existing document. With merge=true the data is merged "
        "and the document is created if missing."
    ),
    "firestore_delete_document": "Delete a document by collection and ID.",
    "firestore_query_collection": (
        "Query a collection with filters ({field, operator, value, value_type?}), "
        "ordering ({field, direction}) and a limit. Operators: <, <=, ==, !=, >=, >, "
        "array-contains, array-contains-any, in, not-in. Errors with MISSING_INDEX "
        "include the URL to create the required index."
    ),
    "firestore_collection_group_query": (
        "Query every collection with the given ID at any depth, with the same filters "
        "and ordering as firestore_query_collection."
    ),
    "firestore_list_collections": (
        "List root collections, or the sub-collections of the document at document_path."
    ),
    "firestore_field_operations": (
        "Apply atomic field transforms to a document: increment, array_union, "
        "array_remove, server_timestamp, delete."
    ),
    "firestore_special_data_types": (
        "Write fields as Firestore-specific types. Each field has field_path, type "
        "(timestamp, geopoint, reference, array, map, boolean, number, string, null) and value. "
        "Values that cannot be converted are stored as given."
    ),
    "firestore_transaction": (
        "Run get/set/update/delete operations atomically. Reads run before writes."
    ),
    "firestore_batch_write": "Apply up to 500 set/update/delete operations in one atomic batch.",
    "firestore_set_ttl": (
        "Set an expiry timestamp field (default 'expires_at') expires_in milliseconds from now. "
        "Firestore removes the document once a TTL policy exists for that field."
    ),
    "firestore_cache_stats": "Get document cache statistics: size, max_size, hits, misses, hit ratio.",
    "firestore_cache_clear": "Clear the document cache and reset its statistics.",
}


def tool_bindings(tools: FirestoreTools) -> List[Tuple[str, Callable]]:
    """Pair every tool name with its handler."""
    return [
        ("firestore_get_document", tools.get_document),
        ("firestore_create_document", tools.create_document),
        ("firestore_update_document", tools.update_document),
        ("firestore_delete_document", tools.delete_document),
        ("firestore_query_collection", tools.query_collection),
        ("firestore_collection_group_query", tools.collection_group_query),
        ("firestore_list_collections", tools.list_collections),
        ("firestore_field_operations", tools.field_operations),
        ("firestore_special_data_types", tools.special_data_types),
        ("firestore_transaction", tools.transaction),
        ("firestore_batch_write", tools.batch_write),
        ("firestore_set_ttl", tools.set_ttl),
        ("firestore_cache_stats", tools.cache_stats),
        ("firestore_cache_clear", tools.cache_clear),
    ]


def build_server(tools: FirestoreTools, name: str = "firestore-mcp") -> FastMCP:
    """Create a FastMCP server exposing every Firestore tool."""
    server = FastMCP(name)
    for tool_name, handler in tool_bindings(tools):
        server.add_tool(handler, name=tool_name, description=TOOL_DESCRIPTIONS[tool_name])
    return server
