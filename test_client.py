"""
End-to-end tests: drive the real server process over stdio with JSON-RPC lines.
No Kusto credentials are given, so the server starts without a client and
every remote-dependent request must fail on its own without killing the process.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

SERVER_SCRIPT = Path(__file__).parent / "adx_mcp_server.py"
RESPONSE_TIMEOUT = 30


class MCPTestClient:
    """Minimal line-oriented JSON-RPC client for an MCP server process"""

    def __init__(self, server_command: List[str], env: Dict[str, str], cwd: Path):
        self.server_command = server_command
        self.env = env
        self.cwd = cwd
        self.process = None
        self.request_id = 1

    async def start_server(self):
        self.process = await asyncio.create_subprocess_exec(
            *self.server_command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self.env,
            cwd=str(self.cwd)
        )

    async def _write(self, message: Dict[str, Any]):
        self.process.stdin.write((json.dumps(message) + '\n').encode())
        await self.process.stdin.drain()

    async def send_request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request and wait for the response carrying its id"""
        if not self.process:
            raise RuntimeError("Server not started")

        request = {"jsonrpc": "2.0", "id": self.request_id, "method": method}
        if params:
            request["params"] = params
        self.request_id += 1
        await self._write(request)

        while True:
            response_line = await asyncio.wait_for(self.process.stdout.readline(), RESPONSE_TIMEOUT)
            if not response_line:
                stderr = await self.process.stderr.read()
                raise RuntimeError(f"No response from server: {stderr.decode(errors='replace')}")
            message = json.loads(response_line.decode().strip())
            # skip server notifications
            if message.get("id") == request["id"]:
                return message

    async def send_notification(self, method: str):
        await self._write({"jsonrpc": "2.0", "method": method})

    async def initialize(self) -> Dict[str, Any]:
        response = await self.send_request("initialize", {
            "protocolVersion": "2024-11-05",
            "capabilities": {},
            "clientInfo": {
                "name": "test-client",
                "version": "1.0.0"
            }
        })
        await self.send_notification("notifications/initialized")
        return response

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        return await self.send_request("resources/read", {"uri": uri})

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return await self.send_request("tools/call", {"name": name, "arguments": arguments})

    async def cleanup(self):
        if self.process and self.process.returncode is None:
            self.process.terminate()
            await self.process.wait()


@pytest.fixture
async def mcp_client(tmp_path):
    env = {k: v for k, v in os.environ.items() if not k.startswith("ADX_")}
    env["ADX_CLIENT_SECRET"] = "hunter2"
    env["ADX_MCP_LOG_DIR"] = str(tmp_path / "logs")

    client = MCPTestClient([sys.executable, str(SERVER_SCRIPT)], env=env, cwd=tmp_path)
    await client.start_server()
    try:
        init = await client.initialize()
        assert init["result"]["serverInfo"]["name"] == "Azure Data Explorer"
        yield client
    finally:
        await client.cleanup()


async def test_lists_endpoints(mcp_client):
    resources = await mcp_client.send_request("resources/list")
    templates = await mcp_client.send_request("resources/templates/list")
    tools = await mcp_client.send_request("tools/list")

    assert [r["uri"].rstrip("/") for r in resources["result"]["resources"]] == [
        "config://azure-data-explorer-creds"
    ]
    assert {t["uriTemplate"] for t in templates["result"]["resourceTemplates"]} == {
        "schema://adx/{db}",
        "schema://adx/{db}/{table}",
        "schema://adx/{db}/functions",
    }
    assert [t["name"] for t in tools["result"]["tools"]] == ["query"]


async def test_config_resource_masks_secret(mcp_client):
    response = await mcp_client.read_resource("config://azure-data-explorer-creds")

    contents = {c["uri"]: c["text"] for c in response["result"]["contents"]}
    assert contents["config://azure-data-explorer-creds/client-secret"] == "******"
    assert contents["config://azure-data-explorer-creds/cluster-name"] == "Not set"
    assert "hunter2" not in json.dumps(response)


async def test_requests_fail_individually_without_client(mcp_client):
    schema = await mcp_client.read_resource("schema://adx/mydb")
    assert "not initialized" in schema["error"]["message"]

    invalid = await mcp_client.read_resource("schema://adx/mydb/")
    assert invalid["result"]["contents"][0]["text"] == "Invalid URI"

    tool = await mcp_client.call_tool("query", {"db": "mydb", "query": "Table1 | take 5"})
    assert tool["result"]["isError"] is True
    assert "not initialized" in tool["result"]["content"][0]["text"]

    # still serving
    ping = await mcp_client.send_request("ping")
    assert ping["result"] == {}
    assert mcp_client.process.returncode is None


async def test_log_file_written(mcp_client, tmp_path):
    await mcp_client.send_request("ping")

    log_file = tmp_path / "logs" / "adx-mcp-server.log"
    assert log_file.exists()
    assert "Environment variable validation failed" in log_file.read_text(encoding="utf-8")
