"""
Configuration helpers for the COTI MCP server.

This module centralizes RPC endpoint selection, timeouts, logging and gateway
limits, and reads the account key lists from the environment. Keys are never
stored in the repository and never logged.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from coti_mcp.errors import ConfigurationMissingError

# Default connection settings
DEFAULT_TESTNET_RPC_URL = os.getenv("COTI_TESTNET_RPC_URL", "https://testnet.coti.io/rpc")
DEFAULT_MAINNET_RPC_URL = os.getenv("COTI_MAINNET_RPC_URL", "https://mainnet.coti.io/rpc")


def _load_float(env_var: str, default: float) -> float:
    raw_value = os.getenv(env_var)
    if raw_value:
        try:
            return float(raw_value)
        except ValueError:
            return default
    return default


def _load_timeout() -> float:
    return _load_float("COTI_HTTP_TIMEOUT", 10.0)


def _load_port() -> int:
    raw_port = os.getenv("COTI_MCP_PORT")
    if raw_port:
        try:
            return int(raw_port)
        except ValueError:
            return 8000
    return 8000


DEFAULT_TIMEOUT = _load_timeout()
DEFAULT_RECEIPT_TIMEOUT = _load_float("COTI_RECEIPT_TIMEOUT", 120.0)

# AccountOnboard contract used to generate or recover an account AES key
DEFAULT_ONBOARD_CONTRACT_ADDRESS = os.getenv(
    "COTI_MCP_ONBOARD_CONTRACT_ADDRESS", "0x24D6c44eaB7aA09A085dDB8cD25c28FFc9917EC9"
)

# Account key lists (comma separated, positionally aligned)
PRIVATE_KEY_ENV_VAR = "COTI_MCP_PRIVATE_KEY"
PUBLIC_KEY_ENV_VAR = "COTI_MCP_PUBLIC_KEY"
AES_KEY_ENV_VAR = "COTI_MCP_AES_KEY"
CURRENT_PUBLIC_KEY_ENV_VAR = "COTI_MCP_CURRENT_PUBLIC_KEY"
NETWORK_ENV_VAR = "COTI_MCP_NETWORK"

VALID_NETWORKS = ("testnet", "mainnet")
DEFAULT_NETWORK = "testnet"

# Gateway and logging
DEFAULT_RATE_LIMIT_QPS = _load_float("COTI_MCP_RATE_LIMIT_QPS", 5.0)
LOG_LEVEL = os.getenv("COTI_MCP_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("COTI_MCP_LOG_FORMAT", "json")  # json or plain
HOST = os.getenv("COTI_MCP_HOST", "127.0.0.1")
PORT = _load_port()


def _load_per_tool_rate_limits(raw: Optional[str]) -> dict[str, float]:
    """Parse ``tool=qps`` pairs, e.g. ``transfer_native=0.5,list_accounts=10``; bad pairs are skipped."""
    limits: dict[str, float] = {}
    for item in _split_list(raw):
        name, _, value = item.partition("=")
        try:
            limits[name.strip()] = float(value)
        except ValueError:
            continue
    return limits


def _split_list(raw: Optional[str]) -> List[str]:
    """Split a comma-separated value, dropping blanks."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


PER_TOOL_RATE_LIMITS = _load_per_tool_rate_limits(os.getenv("COTI_MCP_PER_TOOL_RATE_LIMITS"))


@dataclass(slots=True)
class AccountSettings:
    """Account material read from the environment at startup."""

    addresses: List[str]
    private_keys: List[str]
    aes_keys: List[str]
    current_address: Optional[str] = None
    network: str = DEFAULT_NETWORK


def load_account_settings(environ: Optional[Mapping[str, str]] = None) -> AccountSettings:
    """
    Read the account key lists, default account and network from the environment.

    Raises:
        ConfigurationMissingError: a key list is missing or empty, the lists have
            different lengths, an address is listed twice, or the network name
            is not recognised.
    """
    env = os.environ if environ is None else environ

    lists = {}
    for env_var in (AES_KEY_ENV_VAR, PRIVATE_KEY_ENV_VAR, PUBLIC_KEY_ENV_VAR):
        values = _split_list(env.get(env_var))
        if not values:
            raise ConfigurationMissingError(f"{env_var} environment variable is required")
        lists[env_var] = values

    addresses = lists[PUBLIC_KEY_ENV_VAR]
    for env_var in (PRIVATE_KEY_ENV_VAR, AES_KEY_ENV_VAR):
        if len(lists[env_var]) != len(addresses):
            raise ConfigurationMissingError(
                f"{env_var} has {len(lists[env_var])} entries but "
                f"{PUBLIC_KEY_ENV_VAR} has {len(addresses)}"
            )

    seen = set()
    for address in addresses:
        if address.lower() in seen:
            raise ConfigurationMissingError(f"{PUBLIC_KEY_ENV_VAR} lists {address} more than once")
        seen.add(address.lower())

    network = (env.get(NETWORK_ENV_VAR) or DEFAULT_NETWORK).strip().lower()
    if network not in VALID_NETWORKS:
        raise ConfigurationMissingError(f"{NETWORK_ENV_VAR} must be one of: {', '.join(VALID_NETWORKS)}")

    current = (env.get(CURRENT_PUBLIC_KEY_ENV_VAR) or "").strip() or None

    return AccountSettings(
        addresses=addresses,
        private_keys=lists[PRIVATE_KEY_ENV_VAR],
        aes_keys=lists[AES_KEY_ENV_VAR],
        current_address=current,
        network=network,
    )


@dataclass(slots=True)
class CotiConfig:
    """Runtime configuration for COTI node access and the HTTP gateway."""

    testnet_rpc_url: str = DEFAULT_TESTNET_RPC_URL
    mainnet_rpc_url: str = DEFAULT_MAINNET_RPC_URL
    timeout: float = DEFAULT_TIMEOUT
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    onboard_contract_address: str = DEFAULT_ONBOARD_CONTRACT_ADDRESS
    rate_limit_qps: float = DEFAULT_RATE_LIMIT_QPS
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT
    host: str = HOST
    port: int = PORT
    per_tool_rate_limits: dict[str, float] = field(default_factory=lambda: dict(PER_TOOL_RATE_LIMITS))

    def rpc_url(self, network: str) -> str:
        if network == "mainnet":
            return self.mainnet_rpc_url
        return self.testnet_rpc_url


default_config = CotiConfig()
