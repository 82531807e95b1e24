"""
Shared fixtures for the Azure Data Explorer MCP server tests.
"""
from unittest.mock import MagicMock, patch

import pytest

from adx_client import KustoClientHandle
from adx_config import AdxSettings, CONFIG_FIELDS
from adx_mcp_server import AdxMcpServer

TEST_ENV = {
    "ADX_CLUSTER_NAME": "mycluster",
    "ADX_CLIENT_ID": "00000000-1111-2222-3333-444444444444",
    "ADX_CLIENT_SECRET": "super-secret-value",
    "ADX_TENANT_ID": "55555555-6666-7777-8888-999999999999",
}


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every ADX_* variable from the process environment."""
    for field in CONFIG_FIELDS:
        monkeypatch.delenv(field.env_var, raising=False)
    return monkeypatch


@pytest.fixture
def adx_env(clean_env):
    """Set all four ADX_* variables to test values."""
    for name, value in TEST_ENV.items():
        clean_env.setenv(name, value)
    return dict(TEST_ENV)


@pytest.fixture
def settings():
    return AdxSettings(
        cluster_name=TEST_ENV["ADX_CLUSTER_NAME"],
        client_id=TEST_ENV["ADX_CLIENT_ID"],
        client_secret=TEST_ENV["ADX_CLIENT_SECRET"],
        tenant_id=TEST_ENV["ADX_TENANT_ID"],
    )


def make_response(text):
    """A KustoResponseDataSet stand-in whose first primary table renders as text."""
    table = MagicMock()
    table.__str__.return_value = text
    response = MagicMock()
    response.primary_results = [table]
    return response


@pytest.fixture
def kusto_client():
    """Mock azure KustoClient returning a one-table response."""
    client = MagicMock()
    client.execute.return_value = make_response("TableName\nStormEvents")
    return client


@pytest.fixture
def client_handle(kusto_client):
    return KustoClientHandle(client_factory=lambda kcsb: kusto_client)


@pytest.fixture
def connected_server(client_handle, settings):
    """Server whose handle is connected to the mock Kusto client."""
    with patch("adx_client.KustoConnectionStringBuilder"):
        client_handle.connect(settings)
    return AdxMcpServer(client_handle=client_handle)


@pytest.fixture
def unconnected_server(client_handle):
    return AdxMcpServer(client_handle=client_handle)
