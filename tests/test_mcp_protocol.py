"""Protocol integration tests for the zettel-rank MCP server.

These tests call the tools through the JSON-RPC protocol using a real
ClientSession connected to a real FastMCP server over memory streams.
"""

import json

import pytest
from mcp.shared.memory import create_connected_server_and_client_session
from mcp.types import CallToolResult

from zettel_rank.server.mcp_server import ZettelRankMcpServer

ALL_TOOL_NAMES = {
    "zk_search",
    "zk_query",
    "zk_list",
    "zk_links",
    "zk_backlinks",
    "zk_inspect",
    "zk_create_note",
    "zk_status",
}


def get_text(result: CallToolResult) -> str:
    """Extract the text payload from a CallToolResult."""
    assert result.content, "CallToolResult has no content"
    assert hasattr(result.content[0], "text"), "First content block has no text"
    return result.content[0].text


@pytest.fixture
def mcp_server(scenario_dir):
    return ZettelRankMcpServer(notes_dir=scenario_dir)


@pytest.fixture
async def mcp_client(mcp_server):
    """A ClientSession with the handshake complete."""
    async with create_connected_server_and_client_session(
        mcp_server.mcp._mcp_server,
        raise_exceptions=True,
    ) as client_session:
        yield client_session


class TestMCPProtocol:
    """Tool discovery and calls over the wire."""

    @pytest.mark.anyio
    async def test_list_tools(self, mcp_client):
        result = await mcp_client.list_tools()
        assert {tool.name for tool in result.tools} == ALL_TOOL_NAMES

    @pytest.mark.anyio
    async def test_search_schema_requires_query(self, mcp_client):
        result = await mcp_client.list_tools()
        search = next(tool for tool in result.tools if tool.name == "zk_search")
        assert search.inputSchema["required"] == ["query"]

    @pytest.mark.anyio
    async def test_search(self, mcp_client):
        result = await mcp_client.call_tool("zk_search", {"query": "hello world"})
        assert not result.isError
        records = json.loads(get_text(result))
        assert records[0]["document"]["id"] in ("A.md", "C.md")
        assert "D.md" not in {r["document"]["id"] for r in records}

    @pytest.mark.anyio
    async def test_backlinks(self, mcp_client):
        result = await mcp_client.call_tool("zk_backlinks", {"note": "B.md"})
        assert json.loads(get_text(result)) == ["A.md"]

    @pytest.mark.anyio
    async def test_invalid_filter_is_reported(self, mcp_client):
        result = await mcp_client.call_tool("zk_query", {"filters": ["status ="]})
        payload = json.loads(get_text(result))
        assert payload["code"] == "QUERY_INVALID_SYNTAX"
