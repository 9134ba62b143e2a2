"""
Pydantic models for tool responses.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, Field

from ..utils.exceptions import AppException


class ToolError(BaseModel):
    """Categorized failure returned by a tool."""
    code: str = Field(..., description="Error code", examples=["NOT_FOUND"])
    message: str = Field(..., description="Error message", examples=["Document 'users/u1' not found"])
    details: List[str] = Field(default_factory=list, description="Additional error details")


class ToolResult(BaseModel):
    """Envelope returned by every tool: either data or an error."""
    success: bool = Field(..., description="Whether the operation succeeded")
    data: Optional[Any] = Field(None, description="Operation payload")
    error: Optional[ToolError] = Field(None, description="Error information")

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: AppException) -> "ToolResult":
        return cls(
            success=False,
            error=ToolError(code=exc.code, message=exc.message, details=exc.details)
        )


class CacheStats(BaseModel):
    """Document cache statistics."""
    size: int = Field(..., description="Number of live cached documents")
    max_size: int = Field(..., description="Maximum number of cached documents")
    hit_count: int = Field(..., description="Cache hit count")
    miss_count: int = Field(..., description="Cache miss count")
    hit_ratio: float = Field(..., description="hits / (hits + misses), 0 when unused")
