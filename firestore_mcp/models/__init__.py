"""
Pydantic models for tool arguments and responses.
"""
from .requests import FieldOperation, QueryFilter, QueryOrder, SpecialField, WriteOperation
from .responses import CacheStats, ToolError, ToolResult

__all__ = [
    "FieldOperation",
    "QueryFilter",
    "QueryOrder",
    "SpecialField",
    "WriteOperation",
    "CacheStats",
    "ToolError",
    "ToolResult",
]
