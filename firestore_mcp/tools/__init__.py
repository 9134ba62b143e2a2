"""
MCP tool handlers and server registration.
"""
from .document_tools import FirestoreTools, tool_handler
from .server import TOOL_DESCRIPTIONS, build_server, tool_bindings

__all__ = [
    "FirestoreTools",
    "tool_handler",
    "TOOL_DESCRIPTIONS",
    "build_server",
    "tool_bindings",
]
