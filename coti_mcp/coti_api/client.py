"""
Thin async client for the COTI JSON-RPC endpoints.

Chain access goes through web3's ``AsyncWeb3``; keys are handled locally with
eth_account. The RPC endpoint follows the network selector on every call. Node,
contract and signing failures are mapped to ``DownstreamError`` so the tool layer
can turn them into user-facing messages.
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from aiohttp import ClientTimeout
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import function_abi_to_4byte_selector, to_hex
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3Exception

from coti_mcp.coti_api.abis import ONBOARD_ABI
from coti_mcp.coti_api.cipher import ConfidentialCipher, CotiSdkCipher
from coti_mcp.coti_api.events import decode_event
from coti_mcp.config import CotiConfig, default_config
from coti_mcp.errors import DownstreamError, InvalidArgumentError, NodeUnreachableError
from coti_mcp.network import CHAIN_IDS, Network, NetworkSelector

logger = logging.getLogger(__name__)

Web3Factory = Callable[[str], AsyncWeb3]

SIGNATURE_REGEX = re.compile(r"^(0x)?[0-9a-fA-F]{130}$")

# Gas limit used for onboardAccount transactions
ONBOARD_GAS_LIMIT = 15_000_000


@contextmanager
def _node_errors(operation: str) -> Iterator[None]:
    """Map web3/transport exceptions raised inside the block to DownstreamError."""
    try:
        yield
    except (OSError, asyncio.TimeoutError) as exc:
        logger.warning("COTI node unreachable during %s", operation)
        raise NodeUnreachableError("Node unreachable") from exc
    except ContractLogicError as exc:
        raise DownstreamError(f"Contract call reverted: {exc}", code="CONTRACT_REVERTED") from exc
    except TimeExhausted as exc:
        raise DownstreamError("Timed out waiting for transaction receipt", code="RECEIPT_TIMEOUT") from exc
    except (Web3Exception, ValueError, TypeError) as exc:
        raise DownstreamError(str(exc) or "COTI node error") from exc


def _strip_hex(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def _hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return to_hex(value)
    return value


def _normalize_log(log: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "address": log.get("address"),
        "blockNumber": log.get("blockNumber"),
        "transactionIndex": log.get("transactionIndex"),
        "logIndex": log.get("logIndex"),
        "removed": bool(log.get("removed", False)),
        "topics": [_hex(topic) for topic in log.get("topics", [])],
        "data": _hex(log.get("data")),
    }


def _normalize_receipt(receipt: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "transactionHash": _hex(receipt.get("transactionHash")),
        "status": receipt.get("status"),
        "blockNumber": receipt.get("blockNumber"),
        "gasUsed": receipt.get("gasUsed"),
        "contractAddress": receipt.get("contractAddress"),
        "logs": [_normalize_log(log) for log in receipt.get("logs", [])],
    }


def _normalize_transaction(tx: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "hash": _hex(tx.get("hash")),
        "from": tx.get("from"),
        "to": tx.get("to"),
        "value": tx.get("value", 0),
        "gas": tx.get("gas"),
        "gasPrice": tx.get("gasPrice"),
        "nonce": tx.get("nonce"),
        "blockNumber": tx.get("blockNumber"),
    }


def _find_function(abi: Sequence[Mapping[str, Any]], function_name: str) -> Mapping[str, Any]:
    for entry in abi:
        if entry.get("type", "function") == "function" and entry.get("name") == function_name:
            return entry
    raise InvalidArgumentError(
        f"Function '{function_name}' not found in contract. Check the function name or provide a custom ABI."
    )


class CotiApiClient:
    """Async client for the COTI chain operations used by the tools."""

    def __init__(
        self,
        config: CotiConfig | None = None,
        *,
        network: Optional[NetworkSelector] = None,
        cipher: Optional[ConfidentialCipher] = None,
        web3_factory: Optional[Web3Factory] = None,
    ) -> None:
        self.config = config or default_config
        self.network = network or NetworkSelector()
        self.cipher: ConfidentialCipher = cipher if cipher is not None else CotiSdkCipher()
        self._web3_factory = web3_factory or self._default_web3
        self._web3_by_network: Dict[Network, AsyncWeb3] = {}

    def _default_web3(self, rpc_url: str) -> AsyncWeb3:
        return AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": ClientTimeout(total=self.config.timeout)})
        )

    def _web3(self) -> AsyncWeb3:
        active = self.network.get()
        w3 = self._web3_by_network.get(active)
        if w3 is None:
            w3 = self._web3_factory(self.config.rpc_url(active.value))
            self._web3_by_network[active] = w3
        return w3

    async def aclose(self) -> None:
        for w3 in self._web3_by_network.values():
            disconnect = getattr(w3.provider, "disconnect", None)
            if disconnect is not None:
                await disconnect()
        self._web3_by_network.clear()

    @staticmethod
    def _account(private_key: str):
        try:
            return Account.from_key(private_key)
        except (ValueError, TypeError, KeyValidationError) as exc:
            raise DownstreamError("Invalid private key for the selected account.") from exc

    @staticmethod
    def _checksum(address: str) -> str:
        try:
            return AsyncWeb3.to_checksum_address(address)
        except (ValueError, TypeError) as exc:
            raise InvalidArgumentError(f"Invalid COTI address: {address}") from exc

    @staticmethod
    def create_random_keypair() -> Dict[str, str]:
        account = Account.create()
        return {"address": account.address, "private_key": to_hex(account.key)}

    async def sign_message(self, private_key: str, message: str) -> str:
        account = self._account(private_key)
        signed = account.sign_message(encode_defunct(text=message))
        return to_hex(signed.signature)

    async def recover_signer(self, message: str, signature: str) -> str:
        if not SIGNATURE_REGEX.fullmatch(signature.strip()):
            raise DownstreamError("Invalid signature: expected 65 bytes of hex")
        with _node_errors("recover_signer"):
            try:
                return Account.recover_message(encode_defunct(text=message), signature=signature.strip())
            except (BadSignature, KeyValidationError) as exc:
                raise DownstreamError(f"Invalid signature: {exc}") from exc

    async def get_balance(self, address: str) -> int:
        w3 = self._web3()
        with _node_errors("get_balance"):
            return int(await w3.eth.get_balance(self._checksum(address)))

    async def get_block_number(self) -> int:
        w3 = self._web3()
        with _node_errors("get_block_number"):
            return int(await w3.eth.block_number)

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        w3 = self._web3()
        try:
            with _node_errors("get_transaction"):
                tx = await w3.eth.get_transaction(tx_hash)
        except DownstreamError as exc:
            if isinstance(exc.__cause__, TransactionNotFound):
                return None
            raise
        return _normalize_transaction(tx) if tx else None

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        w3 = self._web3()
        try:
            with _node_errors("get_transaction_receipt"):
                receipt = await w3.eth.get_transaction_receipt(tx_hash)
        except DownstreamError as exc:
            if isinstance(exc.__cause__, TransactionNotFound):
                return None
            raise
        return _normalize_receipt(receipt) if receipt else None

    async def _sign_and_send(self, w3: AsyncWeb3, account, tx: Dict[str, Any]) -> Dict[str, Any]:
        signed = account.sign_transaction(tx)
        tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Broadcast transaction %s from %s", to_hex(tx_hash), account.address)
        receipt = await w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.config.receipt_timeout)
        return _normalize_receipt(receipt)

    async def _base_tx(self, w3: AsyncWeb3, sender: str, gas_limit: Optional[int]) -> Dict[str, Any]:
        tx: Dict[str, Any] = {
            "from": sender,
            "nonce": await w3.eth.get_transaction_count(sender),
            "chainId": CHAIN_IDS[self.network.get()],
            "gasPrice": await w3.eth.gas_price,
        }
        if gas_limit:
            tx["gas"] = int(gas_limit)
        return tx

    async def send_transaction(
        self,
        private_key: str,
        to: str,
        value: int,
        gas_limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Send native COTI and wait for the receipt."""
        account = self._account(private_key)
        w3 = self._web3()
        with _node_errors("send_transaction"):
            tx = await self._base_tx(w3, account.address, gas_limit)
            tx["to"] = self._checksum(to)
            tx["value"] = int(value)
            if "gas" not in tx:
                tx["gas"] = await w3.eth.estimate_gas(tx)
            return await self._sign_and_send(w3, account, tx)

    def _contract_function(self, w3: AsyncWeb3, address: str, abi: Sequence[Mapping[str, Any]], function_name: str, args: Sequence[Any]):
        _find_function(abi, function_name)
        contract = w3.eth.contract(address=self._checksum(address), abi=list(abi))
        return contract.functions[function_name](*args)

    async def call_contract(
        self,
        private_key: str,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
    ) -> Any:
        """Run a read-only contract call from the account's address."""
        account = self._account(private_key)
        w3 = self._web3()
        with _node_errors(f"call {function_name}"):
            function = self._contract_function(w3, address, abi, function_name, args)
            return await function.call({"from": account.address})

    async def transact_contract(
        self,
        private_key: str,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
        gas_limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Send a state-changing contract call and wait for the receipt."""
        account = self._account(private_key)
        w3 = self._web3()
        with _node_errors(f"transact {function_name}"):
            function = self._contract_function(w3, address, abi, function_name, args)
            base = await self._base_tx(w3, account.address, gas_limit)
            tx = await function.build_transaction(base)
            return await self._sign_and_send(w3, account, tx)

    @staticmethod
    def function_selector(abi: Sequence[Mapping[str, Any]], function_name: str) -> str:
        return to_hex(function_abi_to_4byte_selector(dict(_find_function(abi, function_name))))

    async def encrypt_value(
        self,
        private_key: str,
        aes_key: str,
        value: int | str,
        contract_address: str,
        function_selector: str,
    ) -> Any:
        self._account(private_key)
        with _node_errors("encrypt_value"):
            return self.cipher.encrypt(
                private_key=private_key,
                aes_key=aes_key,
                value=value,
                contract_address=self._checksum(contract_address),
                function_selector=function_selector,
            )

    async def decrypt_value(self, private_key: str, aes_key: str, ciphertext: int | List[int]) -> int | str:
        with _node_errors("decrypt_value"):
            return self.cipher.decrypt(aes_key=aes_key, ciphertext=ciphertext)

    async def generate_or_recover_aes_key(self, private_key: str) -> Optional[str]:
        """
        Onboard the account with the AccountOnboard contract and return its AES key.

        A fresh RSA key pair is registered on chain; the contract answers with the
        account's AES key split into two shares encrypted to that RSA key. Running
        it again for an onboarded account recovers the same AES key.
        """
        account = self._account(private_key)
        rsa_private_key, rsa_public_key = await asyncio.to_thread(self.cipher.generate_rsa_keypair)
        signed_key = self.cipher.sign_onboarding_key(private_key=private_key, public_key=rsa_public_key)
        receipt = await self.transact_contract(
            private_key,
            self.config.onboard_contract_address,
            ONBOARD_ABI,
            "onboardAccount",
            [rsa_public_key, signed_key],
            ONBOARD_GAS_LIMIT,
        )
        for log in receipt.get("logs", []):
            event = decode_event(ONBOARD_ABI, log.get("topics") or [], log.get("data") or "0x")
            if event is None:
                continue
            shares = event.args()
            logger.info("Onboarded account %s (tx %s)", account.address, receipt.get("transactionHash"))
            return self.cipher.recover_aes_key(
                rsa_private_key=rsa_private_key,
                key_share0=bytes.fromhex(_strip_hex(shares["userKey1"])),
                key_share1=bytes.fromhex(_strip_hex(shares["userKey2"])),
            )
        logger.warning("Onboarding transaction %s emitted no AccountOnboarded event", receipt.get("transactionHash"))
        return None
