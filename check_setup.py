#!/usr/bin/env python3
"""
Check the local setup for the Azure Data Explorer MCP server
Run this before wiring the server into an MCP client
"""

import argparse
import importlib
import os
import sys
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from azure.identity import ClientSecretCredential

from adx_config import CONFIG_FIELDS, ConfigurationError, AdxSettings, load_environment, load_settings

KUSTO_SCOPE = "https://kusto.kusto.windows.net/.default"
MIN_PYTHON = (3, 10)

REQUIRED_PACKAGES = [
    ('mcp', 'mcp'),
    ('azure.kusto.data', 'azure-kusto-data'),
    ('azure.identity', 'azure-identity'),
    ('dotenv', 'python-dotenv'),
]


def print_step(step_num, description):
    """Print a formatted step"""
    print(f"\n{'='*60}")
    print(f"Step {step_num}: {description}")
    print('='*60)


def check_python_version(version_info=None) -> bool:
    version = version_info or sys.version_info
    print(f"Python version: {version[0]}.{version[1]}.{version[2]}")
    if tuple(version[:2]) < MIN_PYTHON:
        print(f"❌ Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ required")
        return False
    print("✅ Python version OK")
    return True


def check_packages(packages: Sequence[Tuple[str, str]] = REQUIRED_PACKAGES) -> List[str]:
    """Try importing each package; returns the pip names of the missing ones"""
    missing = []
    for module_name, pip_name in packages:
        try:
            importlib.import_module(module_name)
            print(f"✅ Package imported: {module_name}")
        except ImportError:
            print(f"❌ Package missing: {module_name}")
            print(f"   Install with: pip install {pip_name}")
            missing.append(pip_name)
    return missing


def check_environment(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Report each ADX_* variable; returns the names of the missing ones"""
    env = os.environ if environ is None else environ
    missing = []
    for field in CONFIG_FIELDS:
        value = env.get(field.env_var, "")
        if not value.strip():
            print(f"❌ {field.env_var} not set ({field.label})")
            missing.append(field.env_var)
        elif field.secret:
            print(f"✅ {field.env_var} set (hidden)")
        else:
            print(f"✅ {field.env_var} = {value}")
    return missing


def verify_credentials(
    settings: AdxSettings,
    credential_factory: Callable[..., ClientSecretCredential] = ClientSecretCredential,
) -> bool:
    """Acquire a Kusto token with the service principal to prove it works"""
    try:
        credential = credential_factory(settings.tenant_id, settings.client_id, settings.client_secret)
        token = credential.get_token(KUSTO_SCOPE)
    except Exception as e:
        print(f"❌ Authentication failed: {e}")
        return False

    print("✅ Authentication successful!")
    print(f"Token expires: {token.expires_on}")
    return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check the Azure Data Explorer MCP server setup")
    parser.add_argument("--env-file", help="Path of a .env file to load (default: ./.env)")
    parser.add_argument("--verify-token", action="store_true",
                        help="Also acquire a Kusto token with the configured service principal")
    args = parser.parse_args(argv)

    print("🧪 Testing Azure Data Explorer MCP Server Setup")
    ok = True

    print_step(1, "Python version")
    ok = check_python_version() and ok

    print_step(2, "Required packages")
    ok = not check_packages() and ok

    print_step(3, "Environment variables")
    load_environment(args.env_file)
    ok = not check_environment() and ok

    if args.verify_token:
        print_step(4, "Service principal authentication")
        try:
            settings = load_settings()
        except ConfigurationError as e:
            print(f"❌ Cannot authenticate: {e}")
            ok = False
        else:
            ok = verify_credentials(settings) and ok

    print("\n" + "="*60)
    if ok:
        print("🎉 Setup check passed!")
    else:
        print("❌ Setup check failed - fix the issues above")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
