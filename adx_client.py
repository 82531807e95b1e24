#!/usr/bin/env python3
"""
Shared Kusto client handle for the Azure Data Explorer MCP server
"""

import enum
import logging
from typing import Callable, Optional

from azure.kusto.data import KustoClient, KustoConnectionStringBuilder
import mcp.types as types
from mcp.shared.exceptions import McpError

from adx_config import AdxSettings

logger = logging.getLogger(__name__)


class ClientNotInitializedError(McpError):
    """Raised when a query is attempted while no Kusto client is connected"""

    def __init__(self, message: str = "Database client is not initialized"):
        super().__init__(types.ErrorData(code=types.INTERNAL_ERROR, message=message))


class HandleState(enum.Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    CLOSED = "closed"


class KustoClientHandle:
    """Holds at most one KustoClient for the lifetime of the server.

    The handle starts UNCONNECTED, becomes CONNECTED through connect() and
    CLOSED through close(). execute() only works while CONNECTED; in every
    other state it raises ClientNotInitializedError so each request fails on
    its own instead of taking the server down.

    Example:
        handle = KustoClientHandle()
        handle.connect(load_settings())
        text = handle.execute("Samples", ".show tables")
        handle.close()
    """

    def __init__(self, client_factory: Callable[[KustoConnectionStringBuilder], KustoClient] = KustoClient):
        self._client_factory = client_factory
        self._client: Optional[KustoClient] = None
        self._state = HandleState.UNCONNECTED

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def client(self) -> Optional[KustoClient]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._state is HandleState.CONNECTED

    def connect(self, settings: AdxSettings) -> None:
        """Create the Kusto client using application key authentication"""
        if self._client is not None:
            logger.info("Replacing existing Kusto client")
            self.close()

        kcsb = KustoConnectionStringBuilder.with_aad_application_key_authentication(
            settings.cluster_url,
            settings.client_id,
            settings.client_secret,
            settings.tenant_id,
        )
        self._client = self._client_factory(kcsb)
        self._state = HandleState.CONNECTED
        logger.info(f"Created Kusto client for cluster: {settings.cluster_url}")

    def execute(self, database: str, query: str) -> str:
        """Run a query and return the text rendering of the first result table"""
        if self._state is not HandleState.CONNECTED or self._client is None:
            raise ClientNotInitializedError()

        logger.info(f"Executing query on database '{database}': {query}")
        response = self._client.execute(database, query)
        if not response.primary_results:
            return ""
        return str(response.primary_results[0])

    def close(self) -> None:
        """Release the client. Safe to call any number of times."""
        if self._client is None:
            return

        client, self._client = self._client, None
        self._state = HandleState.CLOSED
        client.close()
        logger.info("Kusto client closed")
