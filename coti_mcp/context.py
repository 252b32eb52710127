"""Process-wide state handed to every tool call."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from coti_mcp.accounts import CredentialStore
from coti_mcp.coti_api import CotiApiClient, ConfidentialCipher
from coti_mcp.config import CotiConfig, default_config, load_account_settings
from coti_mcp.network import NetworkSelector

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServerContext:
    config: CotiConfig
    accounts: CredentialStore
    network: NetworkSelector
    client: Any


def build_context(
    config: CotiConfig | None = None,
    environ: Optional[Mapping[str, str]] = None,
    *,
    client: Any = None,
    cipher: Optional[ConfidentialCipher] = None,
) -> ServerContext:
    """
    Load accounts and network from the environment and wire up the COTI client.

    Raises:
        ConfigurationMissingError: the account configuration is absent or inconsistent.
    """
    config = config or default_config
    settings = load_account_settings(environ)
    accounts = CredentialStore.from_settings(settings)
    network = NetworkSelector(settings.network)
    if client is None:
        client = CotiApiClient(config, network=network, cipher=cipher)
    logger.info("Loaded %d COTI account(s); network=%s", len(accounts), network.get().value)
    return ServerContext(config=config, accounts=accounts, network=network, client=client)
