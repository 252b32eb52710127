"""
COTI confidential-value (MPC) cryptography.

Private contracts take inputs encrypted with the account's AES key and signed
over (sender, contract, function selector, ciphertext), and return ciphertexts
that only that key can decrypt. The primitives come from COTI's Python SDK
(``coti.crypto_utils``). ``CotiApiClient`` uses ``CotiSdkCipher`` unless another
``ConfidentialCipher`` is injected.
"""

from __future__ import annotations

import logging
from types import SimpleNamespace
from typing import Any, List, Protocol, Tuple

from coti import crypto_utils
from eth_account import Account

from coti_mcp.errors import DownstreamError

logger = logging.getLogger(__name__)


class ConfidentialCipher(Protocol):
    def encrypt(
        self,
        *,
        private_key: str,
        aes_key: str,
        value: int | str,
        contract_address: str,
        function_selector: str,
    ) -> Any:
        """Build the signed input-text for ``value`` (an itUint64 or itString tuple)."""
        ...

    def decrypt(self, *, aes_key: str, ciphertext: int | List[int]) -> int | str:
        """Decrypt a ctUint (int) or ctString (list of ints) with the account AES key."""
        ...

    def generate_rsa_keypair(self) -> Tuple[bytes, bytes]:
        """Return a fresh ``(private_key, public_key)`` pair for AES key onboarding."""
        ...

    def sign_onboarding_key(self, *, private_key: str, public_key: bytes) -> bytes:
        ...

    def recover_aes_key(self, *, rsa_private_key: bytes, key_share0: bytes, key_share1: bytes) -> str:
        """Combine the two RSA-encrypted key shares from AccountOnboarded into the AES key."""
        ...


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def _signing_key(private_key: str) -> bytes:
    try:
        return bytes.fromhex(_strip_0x(private_key))
    except ValueError as exc:
        raise DownstreamError("Invalid private key for the selected account.") from exc


class CotiSdkCipher:
    """``ConfidentialCipher`` backed by the coti-sdk crypto utilities."""

    def encrypt(
        self,
        *,
        private_key: str,
        aes_key: str,
        value: int | str,
        contract_address: str,
        function_selector: str,
    ) -> Any:
        sender = SimpleNamespace(address=Account.from_key(private_key).address)
        contract = SimpleNamespace(address=contract_address)
        args = (_strip_0x(aes_key), sender, contract, function_selector, _signing_key(private_key))
        try:
            if isinstance(value, int):
                built = crypto_utils.build_input_text(value, *args)
                return (built["ciphertext"], built["signature"])
            built = crypto_utils.build_string_input_text(value, *args)
            return ((list(built["ciphertext"]["value"]),), list(built["signature"]))
        except (ValueError, TypeError, OverflowError, RuntimeError) as exc:
            raise DownstreamError(f"Encryption failed: {exc}") from exc

    def decrypt(self, *, aes_key: str, ciphertext: int | List[int]) -> int | str:
        try:
            if isinstance(ciphertext, int):
                return crypto_utils.decrypt_uint(ciphertext, _strip_0x(aes_key))
            # ctString as returned by a contract read: a one-field tuple of chunks
            return crypto_utils.decrypt_string((list(ciphertext),), _strip_0x(aes_key))
        except (ValueError, TypeError, OverflowError, RuntimeError) as exc:
            raise DownstreamError(f"Decryption failed: {exc}") from exc

    def generate_rsa_keypair(self) -> Tuple[bytes, bytes]:
        return crypto_utils.generate_rsa_keypair()

    def sign_onboarding_key(self, *, private_key: str, public_key: bytes) -> bytes:
        return crypto_utils.sign(public_key, _signing_key(private_key))

    def recover_aes_key(self, *, rsa_private_key: bytes, key_share0: bytes, key_share1: bytes) -> str:
        try:
            aes_key = crypto_utils.recover_user_key(rsa_private_key, key_share0, key_share1)
        except (ValueError, TypeError) as exc:
            raise DownstreamError(f"Could not recover the AES key: {exc}") from exc
        if isinstance(aes_key, (bytes, bytearray)):
            return bytes(aes_key).hex()
        return _strip_0x(str(aes_key))
