#!/usr/bin/env python3
"""
MCP Server for Azure Data Explorer (Kusto)
Exposes database and table schemas as resources and a KQL query tool over stdio
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server import Server, NotificationOptions, InitializationOptions
from mcp.server.stdio import stdio_server
import mcp.types as types

from adx_addresses import (
    ConfigAddress,
    FunctionsListAddress,
    InvalidAddress,
    RemoteAddress,
    TableSchemaAddress,
    parse_address,
    query_for,
)
from adx_client import ClientNotInitializedError, KustoClientHandle
from adx_config import CONFIG_URI, ConfigurationError, config_entries, config_entry, load_environment, load_settings

SERVER_NAME = "Azure Data Explorer"
SERVER_VERSION = "1.0.0"
QUERY_TOOL = "query"
TEXT_MIME_TYPE = "text/plain"

logger = logging.getLogger(__name__)


def configure_logging() -> Optional[Path]:
    """Log to a file, never stdout; stdout carries the MCP protocol.

    Falls back to stderr when the log directory cannot be written, and
    returns None in that case.
    """
    log_dir = Path(os.getenv("ADX_MCP_LOG_DIR") or Path.cwd() / "logs")
    level_name = os.getenv("ADX_MCP_LOG_LEVEL", "INFO").upper()

    log_file = log_dir / 'adx-mcp-server.log'
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding='utf-8')
    except OSError as e:
        print(f"Cannot write log file {log_file}: {e}; logging to stderr", file=sys.stderr)
        handler = logging.StreamHandler(sys.stderr)
        log_file = None

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[handler]
    )
    return log_file


class AdxMcpServer:
    """MCP server that relays schema lookups and KQL queries to one Kusto cluster"""

    def __init__(self, client_handle: Optional[KustoClientHandle] = None):
        self.server = Server(SERVER_NAME)
        self.client_handle = client_handle if client_handle is not None else KustoClientHandle()

        # Endpoints never depend on the client being connected
        self._setup_handlers()

    def _setup_handlers(self):
        """Setup MCP protocol handlers"""

        @self.server.list_resources()
        async def handle_list_resources() -> List[types.Resource]:
            return self.list_resources()

        @self.server.list_resource_templates()
        async def handle_list_resource_templates() -> List[types.ResourceTemplate]:
            return self.list_resource_templates()

        @self.server.list_tools()
        async def handle_list_tools() -> List[types.Tool]:
            return self.list_tools()

        # Registered directly: config contents carry their own sub-addresses and
        # tool results carry an explicit error flag, neither of which the
        # decorator forms can express.
        self.server.request_handlers[types.ReadResourceRequest] = self._handle_read_resource_request
        self.server.request_handlers[types.CallToolRequest] = self._handle_call_tool_request

    async def _handle_read_resource_request(self, req: types.ReadResourceRequest) -> types.ServerResult:
        contents = await self.read_resource(str(req.params.uri))
        return types.ServerResult(types.ReadResourceResult(contents=contents))

    async def _handle_call_tool_request(self, req: types.CallToolRequest) -> types.ServerResult:
        result = await self.call_tool(req.params.name, req.params.arguments or {})
        return types.ServerResult(result)

    def list_resources(self) -> List[types.Resource]:
        return [
            types.Resource(
                uri=CONFIG_URI,
                name="Config",
                description="Config of the Azure Data Explorer",
                mimeType=TEXT_MIME_TYPE
            )
        ]

    def list_resource_templates(self) -> List[types.ResourceTemplate]:
        return [
            types.ResourceTemplate(
                uriTemplate="schema://adx/{db}",
                name="Schema of the db",
                description="List down the tables in the given db",
                mimeType=TEXT_MIME_TYPE
            ),
            types.ResourceTemplate(
                uriTemplate="schema://adx/{db}/{table}",
                name="Schema of the table",
                description="Schema of the given db and table",
                mimeType=TEXT_MIME_TYPE
            ),
            types.ResourceTemplate(
                uriTemplate="schema://adx/{db}/functions",
                name="Functions of the db",
                description="List all functions of the given db",
                mimeType=TEXT_MIME_TYPE
            ),
        ]

    def list_tools(self) -> List[types.Tool]:
        return [
            types.Tool(
                name=QUERY_TOOL,
                description="Execute a KQL (Kusto Query Language) query against a database in the Azure Data Explorer cluster",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "KQL query to execute"
                        },
                        "db": {
                            "type": "string",
                            "description": "Database to run the query against"
                        }
                    },
                    "required": ["query", "db"]
                }
            )
        ]

    async def read_resource(self, uri: str) -> List[types.TextResourceContents]:
        """Read a config or schema resource.

        Raises UnknownAddressError for URIs this server does not serve and
        ClientNotInitializedError when a schema is requested without a client.
        Everything else comes back as content, including failures.
        """
        logger.info(f"Reading resource: {uri}")
        address = parse_address(uri)

        if isinstance(address, ConfigAddress):
            return self._read_config(uri, address)

        if isinstance(address, InvalidAddress):
            logger.warning(f"Invalid resource address {uri}: {address.reason}")
            return [self._error_content(uri, "Invalid URI")]

        return await self._read_schema(uri, address)

    def _read_config(self, uri: str, address: ConfigAddress) -> List[types.TextResourceContents]:
        if address.field is None:
            entries = config_entries()
        else:
            entry = config_entry(address.field)
            if entry is None:
                logger.warning(f"Unknown config field in {uri}")
                return [self._error_content(uri, "Invalid URI")]
            entries = [entry]

        return [
            types.TextResourceContents(uri=entry.uri, name=entry.name, mimeType=TEXT_MIME_TYPE, text=entry.text)
            for entry in entries
        ]

    async def _read_schema(self, uri: str, address: RemoteAddress) -> List[types.TextResourceContents]:
        if not self.client_handle.is_connected:
            logger.error(f"Cannot read {uri}: Kusto client is not initialized")
            raise ClientNotInitializedError()

        query = query_for(address)
        try:
            text = await asyncio.to_thread(self.client_handle.execute, address.db, query)
        except ClientNotInitializedError:
            raise
        except Exception as e:
            logger.error(f"Error reading resource {uri}: {e}")
            return [self._error_content(uri, f"Error: {e}")]

        return [
            types.TextResourceContents(uri=uri, name=_schema_title(address), mimeType=TEXT_MIME_TYPE, text=text)
        ]

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        """Run the query tool. Failures are returned with isError set, never raised."""
        logger.info(f"Tool called: {name} with args: {arguments}")

        if name != QUERY_TOOL:
            return self._tool_error(f"Unknown tool: {name}")

        query = arguments.get("query")
        db = arguments.get("db")
        if not isinstance(query, str) or not query.strip():
            return self._tool_error("Missing required argument: query")
        if not isinstance(db, str) or not db.strip():
            return self._tool_error("Missing required argument: db")

        # Query text is forwarded as given: no allow-list or read-only check
        try:
            text = await asyncio.to_thread(self.client_handle.execute, db, query)
        except Exception as e:
            logger.error(f"Error executing tool {name}: {e}")
            return self._tool_error(str(e))

        return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=False)

    @staticmethod
    def _error_content(uri: str, text: str) -> types.TextResourceContents:
        return types.TextResourceContents(uri=uri, name="Error", mimeType=TEXT_MIME_TYPE, text=text)

    @staticmethod
    def _tool_error(message: str) -> types.CallToolResult:
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=f"Error: {message}")],
            isError=True
        )

    def connect(self) -> bool:
        """Connect the Kusto client from the environment.

        Invalid configuration is logged and leaves the client unconnected; the
        server still starts and remote-dependent requests fail one by one.
        """
        try:
            settings = load_settings()
        except ConfigurationError as e:
            logger.error(f"Environment variable validation failed: {e}")
            return False

        try:
            self.client_handle.connect(settings)
        except Exception as e:
            logger.error(f"Failed to create Kusto client for {settings.cluster_url}: {e}")
            return False
        return True

    def disconnect(self):
        self.client_handle.close()

    async def run(self):
        """Run the MCP server"""
        logger.info(f"Starting {SERVER_NAME} MCP Server")
        self.connect()

        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream=read_stream,
                    write_stream=write_stream,
                    initialization_options=InitializationOptions(
                        server_name=SERVER_NAME,
                        server_version=SERVER_VERSION,
                        capabilities=self.server.get_capabilities(
                            notification_options=NotificationOptions(),
                            experimental_capabilities={}
                        )
                    )
                )
        except Exception as e:
            logger.error(f"Server error: {e}")
            raise
        finally:
            self.disconnect()


def _schema_title(address: RemoteAddress) -> str:
    if isinstance(address, TableSchemaAddress):
        return f"Schema of the table {address.table}"
    if isinstance(address, FunctionsListAddress):
        return f"Functions of the db {address.db}"
    return f"Schema of the db {address.db}"


def main():
    """Main entry point"""
    # .env may carry ADX_MCP_LOG_DIR / ADX_MCP_LOG_LEVEL
    load_environment()
    configure_logging()

    try:
        server = AdxMcpServer()
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
