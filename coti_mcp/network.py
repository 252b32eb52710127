"""Active COTI network selection."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from coti_mcp.errors import InvalidArgumentError


class Network(str, Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


CHAIN_IDS = {
    Network.TESTNET: 7082400,
    Network.MAINNET: 2632500,
}


def explorer_tx_url(network: Network, tx_hash: str) -> str:
    """Return the cotiscan link for a transaction hash."""
    return f"https://{network.value}.cotiscan.io/tx/{tx_hash}"


def parse_network(value: object) -> Network:
    if isinstance(value, Network):
        return value
    if isinstance(value, str):
        try:
            return Network(value.strip().lower())
        except ValueError:
            pass
    raise InvalidArgumentError("Network must be 'testnet' or 'mainnet'.")


@dataclass(slots=True, frozen=True)
class NetworkSwitch:
    previous: Network
    current: Network

    @property
    def changed(self) -> bool:
        return self.previous is not self.current


class NetworkSelector:
    """Holds the network every chain call is routed to. Unset means testnet."""

    def __init__(self, initial: Optional[str | Network] = None) -> None:
        self._network: Optional[Network] = parse_network(initial) if initial else None

    def get(self) -> Network:
        return self._network or Network.TESTNET

    def switch(self, target: str | Network) -> NetworkSwitch:
        network = parse_network(target)
        previous = self.get()
        self._network = network
        return NetworkSwitch(previous=previous, current=network)
