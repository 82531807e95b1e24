#!/usr/bin/env python3
"""
Configuration for the Azure Data Explorer MCP server.
Credentials come from ADX_* environment variables, optionally seeded from a .env file.
"""

import logging
import os
from pathlib import Path
from typing import List, Mapping, NamedTuple, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_URI = "config://azure-data-explorer-creds"
SECRET_MASK = "******"
NOT_SET = "Not set"

ENV_CLUSTER_NAME = "ADX_CLUSTER_NAME"
ENV_CLIENT_ID = "ADX_CLIENT_ID"
ENV_CLIENT_SECRET = "ADX_CLIENT_SECRET"
ENV_TENANT_ID = "ADX_TENANT_ID"


class ConfigurationError(Exception):
    """Raised when the ADX_* environment variables are missing or empty"""


class ConfigField(NamedTuple):
    env_var: str
    field: str
    label: str
    secret: bool = False


class ConfigEntry(NamedTuple):
    uri: str
    name: str
    text: str


CONFIG_FIELDS = (
    ConfigField(ENV_CLUSTER_NAME, "cluster-name", "Cluster Name"),
    ConfigField(ENV_CLIENT_ID, "client-id", "Client ID"),
    ConfigField(ENV_CLIENT_SECRET, "client-secret", "Client Secret", secret=True),
    ConfigField(ENV_TENANT_ID, "tenant-id", "Tenant ID"),
)


_REQUIRED_MESSAGES = {
    "cluster_name": "Cluster name is required",
    "client_id": "Client ID is required",
    "client_secret": "Client secret is required",
    "tenant_id": "Tenant ID is required",
}


class AdxSettings(BaseModel):
    """Validated service principal credentials for one cluster"""

    cluster_name: str
    client_id: str
    client_secret: str = Field(repr=False)
    tenant_id: str

    @field_validator("cluster_name", "client_id", "client_secret", "tenant_id", mode="before")
    @classmethod
    def _required(cls, value, info):
        if value is None or not str(value).strip():
            raise ValueError(_REQUIRED_MESSAGES[info.field_name])
        return str(value).strip()

    @property
    def cluster_url(self) -> str:
        return f"https://{self.cluster_name}.kusto.windows.net"


def load_environment(env_file: Optional[Union[str, Path]] = None) -> bool:
    """Load a .env file into os.environ without overriding variables already set.

    Returns True when a file was found and loaded.
    """
    env_path = Path(env_file) if env_file else Path.cwd() / ".env"
    if not env_path.exists():
        logger.info(f"No .env file at {env_path}, using process environment only")
        return False

    load_dotenv(env_path, override=False)
    logger.info(f"Loaded environment variables from {env_path}")
    return True


def load_settings(environ: Optional[Mapping[str, str]] = None) -> AdxSettings:
    """Build settings from the environment, raising ConfigurationError on any missing value"""
    env = os.environ if environ is None else environ
    try:
        return AdxSettings(
            cluster_name=env.get(ENV_CLUSTER_NAME),
            client_id=env.get(ENV_CLIENT_ID),
            client_secret=env.get(ENV_CLIENT_SECRET),
            tenant_id=env.get(ENV_TENANT_ID),
        )
    except ValidationError as e:
        problems = []
        for error in e.errors():
            message = error.get("msg", "")
            # pydantic prefixes validator messages with "Value error, "
            problems.append(message.split(", ", 1)[-1] if message.startswith("Value error") else message)
        raise ConfigurationError("; ".join(problems)) from e


def _render(field: ConfigField, env: Mapping[str, str]) -> str:
    value = env.get(field.env_var)
    if not value:
        return NOT_SET
    return SECRET_MASK if field.secret else value


def config_entries(environ: Optional[Mapping[str, str]] = None) -> List[ConfigEntry]:
    """Current configuration as (sub-address, label, text) entries, secret redacted"""
    env = os.environ if environ is None else environ
    return [
        ConfigEntry(f"{CONFIG_URI}/{field.field}", field.label, _render(field, env))
        for field in CONFIG_FIELDS
    ]


def config_entry(field_name: str, environ: Optional[Mapping[str, str]] = None) -> Optional[ConfigEntry]:
    env = os.environ if environ is None else environ
    for field in CONFIG_FIELDS:
        if field.field == field_name:
            return ConfigEntry(f"{CONFIG_URI}/{field.field}", field.label, _render(field, env))
    return None
