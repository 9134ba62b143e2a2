"""
Tests for MCP tool registration.
"""
import pytest

from firestore_mcp.tools.server import TOOL_DESCRIPTIONS, build_server, tool_bindings


@pytest.mark.unit
class TestServer:
    """Test FastMCP server construction."""

    def test_every_tool_has_a_description(self, tools):
        names = [name for name, _ in tool_bindings(tools)]

        assert len(names) == len(set(names))
        assert set(names) == set(TOOL_DESCRIPTIONS)

    @pytest.mark.asyncio
    async def test_tools_are_registered(self, tools):
        server = build_server(tools, name="firestore-mcp-test")

        registered = {tool.name: tool for tool in await server.list_tools()}

        assert set(registered) == set(TOOL_DESCRIPTIONS)
        assert registered["firestore_set_ttl"].description == TOOL_DESCRIPTIONS["firestore_set_ttl"]

    @pytest.mark.asyncio
    async def test_argument_schema_comes_from_handler_signature(self, tools):
        server = build_server(tools)

        registered = {tool.name: tool for tool in await server.list_tools()}
        schema = registered["firestore_get_document"].inputSchema

        assert set(schema["properties"]) == {"collection", "id", "use_cache"}
        assert set(schema["required"]) == {"collection", "id"}

    @pytest.mark.asyncio
    async def test_call_tool_returns_result_envelope(self, tools):
        server = build_server(tools)
        tools.cache.set("users", "u1", {"id": "u1", "path": "users/u1", "data": {}})

        await server.call_tool("firestore_get_document", {"collection": "users", "id": "u1"})

        assert tools.cache.get_stats().hit_count == 1
