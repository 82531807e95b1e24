#!/usr/bin/env python3
"""
Resource address parsing for the Azure Data Explorer MCP server.

Every URI a client reads is decoded once into one of the address types below,
then handled by type:

    config://azure-data-explorer-creds[/<field>]  -> ConfigAddress
    schema://adx/<db>                              -> DatabaseSchemaAddress
    schema://adx/<db>/functions                    -> FunctionsListAddress
    schema://adx/<db>/<table>                      -> TableSchemaAddress

Malformed schema addresses become InvalidAddress; addresses outside these
two families raise UnknownAddressError.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import unquote

CONFIG_SCHEME = "config"
CONFIG_HOST = "azure-data-explorer-creds"
SCHEMA_SCHEME = "schema"
SCHEMA_HOST = "adx"
FUNCTIONS_SEGMENT = "functions"

_IDENTIFIER = re.compile(r"\w+", re.ASCII)


class UnknownAddressError(ValueError):
    """Raised for URIs outside the config:// and schema://adx families"""


@dataclass(frozen=True)
class ConfigAddress:
    field: Optional[str] = None


@dataclass(frozen=True)
class DatabaseSchemaAddress:
    db: str


@dataclass(frozen=True)
class TableSchemaAddress:
    db: str
    table: str


@dataclass(frozen=True)
class FunctionsListAddress:
    db: str


@dataclass(frozen=True)
class InvalidAddress:
    uri: str
    reason: str


Address = Union[ConfigAddress, DatabaseSchemaAddress, TableSchemaAddress, FunctionsListAddress, InvalidAddress]
RemoteAddress = Union[DatabaseSchemaAddress, TableSchemaAddress, FunctionsListAddress]


def parse_address(uri: str) -> Address:
    """Decode a resource URI into its address type"""
    scheme, sep, rest = str(uri).partition("://")
    if not sep:
        raise UnknownAddressError(f"Unsupported URI: {uri}")

    host, _, path = rest.partition("/")
    scheme = scheme.lower()
    host = host.lower()

    if scheme == CONFIG_SCHEME and host == CONFIG_HOST:
        return ConfigAddress(unquote(path) if path else None)

    if scheme == SCHEMA_SCHEME and host == SCHEMA_HOST:
        return _parse_schema_path(uri, path)

    raise UnknownAddressError(f"Unknown resource: {uri}")


def _parse_schema_path(uri: str, path: str) -> Address:
    if not path:
        return InvalidAddress(uri, "database name is missing")

    segments = [unquote(segment) for segment in path.split("/")]
    if any(not segment for segment in segments):
        return InvalidAddress(uri, "empty path segment")
    if len(segments) > 2:
        return InvalidAddress(uri, f"expected at most 2 path segments, got {len(segments)}")
    for segment in segments:
        if not _IDENTIFIER.fullmatch(segment):
            return InvalidAddress(uri, f"invalid name: {segment!r}")

    db = segments[0]
    if len(segments) == 1:
        return DatabaseSchemaAddress(db)

    # "functions" always names the functions listing, never a table
    if segments[1] == FUNCTIONS_SEGMENT:
        return FunctionsListAddress(db)
    return TableSchemaAddress(db, segments[1])


def query_for(address: RemoteAddress) -> str:
    """Fixed Kusto command issued for a schema address"""
    if isinstance(address, DatabaseSchemaAddress):
        return ".show tables"
    if isinstance(address, FunctionsListAddress):
        return ".show functions"
    if isinstance(address, TableSchemaAddress):
        return f"{address.table} | getschema"
    raise TypeError(f"No query for address {address!r}")
