"""
Pydantic models for structured tool arguments.
"""

from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, Field

QueryOperator = Literal[
    "<", "<=", "==", "!=", ">=", ">",
    "array-contains", "array-contains-any", "in", "not-in",
]


class QueryFilter(BaseModel):
    """A single where clause."""
    field: str = Field(..., description="Field path to filter on", examples=["status"])
    operator: QueryOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Value to compare against")
    value_type: Optional[str] = Field(
        None,
        description="Convert the value before querying (timestamp, reference, geopoint, number, ...)"
    )


class QueryOrder(BaseModel):
    """Ordering clause."""
    field: str = Field(..., description="Field path to order by")
    direction: Literal["asc", "desc"] = Field("asc", description="Sort direction")


class FieldOperation(BaseModel):
    """Atomic field transform applied to one field."""
    field: str = Field(..., description="Field path", examples=["stats.views"])
    type: Literal["increment", "array_union", "array_remove", "server_timestamp", "delete"] = Field(
        ..., description="Transform to apply"
    )
    value: Any = Field(None, description="Amount for increment, elements for array operations")


class SpecialField(BaseModel):
    """Field whose value must be stored as a specific Firestore type."""
    field_path: str = Field(..., description="Field path", examples=["owner"])
    type: str = Field(..., description="Target type: timestamp, geopoint, reference, array, map, ...")
    value: Any = Field(None, description="Plain value to convert")


class WriteOperation(BaseModel):
    """One operation inside a transaction or batch."""
    type: Literal["get", "set", "update", "delete"] = Field(..., description="Operation type")
    collection: str = Field(..., description="Collection path")
    id: str = Field(..., description="Document ID")
    data: Optional[Dict[str, Any]] = Field(None, description="Document data for set/update")
    merge: bool = Field(False, description="Merge into the existing document on set")
