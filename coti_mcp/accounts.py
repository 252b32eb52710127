"""
Multi-account credential store.

Accounts live in one ordered mapping keyed by the lower-cased address, so an
account's address, private key and AES key are always stored together. The
store also owns the default-account pointer. Nothing here talks to the chain;
key generation and AES onboarding are delegated to the COTI client.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from coti_mcp.config import AccountSettings
from coti_mcp.errors import AccountNotFoundError, GenerationFailedError, InvalidBackupError

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
MASK_PLACEHOLDER = "****"
PENDING_AES_KEY = "Fund this account to generate an AES key. Go to https://discord.com/invite/Z4r8D6ez49"

_JSON_OBJECT_REGEX = re.compile(r"\{.*\}", re.DOTALL)


def mask_secret(value: Optional[str]) -> str:
    """Show the first and last four characters of a secret; short secrets are fully masked."""
    if not value or len(value) <= 8:
        return MASK_PLACEHOLDER
    return f"{value[:4]}...{value[-4:]}"


def _normalize(address: str) -> str:
    return address.strip().lower()


class AesKeyGenerator(Protocol):
    def generate_or_recover_aes_key(self, private_key: str) -> Awaitable[Optional[str]]:
        ...


@dataclass(slots=True)
class Credential:
    address: str
    private_key: str
    aes_key: str


@dataclass(slots=True)
class AccountSummary:
    """Listing view of a credential with masked secrets."""

    index: int
    address: str
    private_key: str
    aes_key: str
    is_default: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "privateKey": self.private_key,
            "aesKey": self.aes_key,
            "isDefault": self.is_default,
            "index": self.index,
        }


@dataclass(slots=True)
class BackupEntry:
    address: str
    private_key: str
    aes_key: str
    is_default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "private_key": self.private_key,
            "aes_key": self.aes_key,
            "is_default": self.is_default,
        }


@dataclass(slots=True)
class BackupDocument:
    """JSON interchange format written by export and read by import."""

    timestamp: str
    accounts: List[BackupEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "accounts": [entry.to_dict() for entry in self.accounts],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def parse(cls, raw: str | Mapping[str, Any]) -> "BackupDocument":
        """
        Parse and validate a backup.

        Strings may carry text around the JSON object (for example the header and
        warning footer of an export), so the outermost ``{...}`` is extracted first.

        Raises:
            InvalidBackupError: the document is not a JSON object, has no accounts,
                or an entry is missing a field or carries redacted secrets.
        """
        if isinstance(raw, str):
            match = _JSON_OBJECT_REGEX.search(raw)
            if not match:
                raise InvalidBackupError("Invalid backup data: Could not find JSON object in the provided string")
            try:
                data = json.loads(match.group(0))
            except ValueError as exc:
                raise InvalidBackupError(f"Invalid backup data: {exc}") from exc
        else:
            data = raw

        if not isinstance(data, Mapping):
            raise InvalidBackupError("Invalid backup data: expected a JSON object")

        raw_accounts = data.get("accounts")
        if not isinstance(raw_accounts, list):
            raise InvalidBackupError("Invalid backup data: Missing or invalid 'accounts' array")
        if not raw_accounts:
            raise InvalidBackupError("Invalid backup data: Backup contains no accounts")

        entries: List[BackupEntry] = []
        for item in raw_accounts:
            if not isinstance(item, Mapping):
                raise InvalidBackupError("Invalid backup data: Account entry must be an object")
            address = item.get("address")
            private_key = item.get("private_key")
            aes_key = item.get("aes_key")
            if not isinstance(address, str) or not address.strip():
                raise InvalidBackupError("Invalid backup data: Account missing valid address")
            if not isinstance(private_key, str) or not private_key or private_key == REDACTED:
                raise InvalidBackupError(
                    "Invalid backup data: Account missing valid private key or contains redacted data"
                )
            if not isinstance(aes_key, str) or not aes_key or aes_key == REDACTED:
                raise InvalidBackupError(
                    "Invalid backup data: Account missing valid AES key or contains redacted data"
                )
            entries.append(
                BackupEntry(
                    address=address.strip(),
                    private_key=private_key,
                    aes_key=aes_key,
                    is_default=item.get("is_default") is True,
                )
            )

        timestamp = data.get("timestamp")
        return cls(timestamp=timestamp if isinstance(timestamp, str) else "", accounts=entries)


@dataclass(slots=True)
class ImportSummary:
    imported: int
    total_after: int
    merged: bool
    default_address: Optional[str]
    addresses: List[str]


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CredentialStore:
    """Process-wide registry of COTI accounts and the default-account pointer."""

    def __init__(self, credentials: Iterable[Credential] = (), *, default_address: Optional[str] = None) -> None:
        self._credentials: Dict[str, Credential] = {}
        for credential in credentials:
            key = _normalize(credential.address)
            if key in self._credentials:
                logger.warning("Account %s given more than once; keeping the last entry", credential.address)
            self._credentials[key] = credential
        self._default_address: Optional[str] = default_address or None

    @classmethod
    def from_settings(cls, settings: AccountSettings) -> "CredentialStore":
        credentials = [
            Credential(address=address, private_key=private_key, aes_key=aes_key)
            for address, private_key, aes_key in zip(settings.addresses, settings.private_keys, settings.aes_keys)
        ]
        store = cls(credentials, default_address=settings.current_address)
        if settings.current_address and store.find(settings.current_address) is None:
            logger.warning("Configured default account %s is not among the configured accounts", settings.current_address)
        return store

    def __len__(self) -> int:
        return len(self._credentials)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and _normalize(address) in self._credentials

    @property
    def addresses(self) -> List[str]:
        return [credential.address for credential in self._credentials.values()]

    @property
    def default_address(self) -> Optional[str]:
        """The explicit default pointer, or None when the first account is implied."""
        return self._default_address

    def current_address(self) -> Optional[str]:
        """Address that calls without an explicit account resolve to."""
        if self._default_address:
            return self._default_address
        for credential in self._credentials.values():
            return credential.address
        return None

    def is_default(self, address: str) -> bool:
        current = self.current_address()
        return current is not None and _normalize(current) == _normalize(address)

    def find(self, address: str) -> Optional[Credential]:
        return self._credentials.get(_normalize(address))

    def get(self, address: Optional[str] = None) -> Credential:
        """
        Resolve a credential by address, or the default account when omitted.

        Raises:
            AccountNotFoundError: nothing is registered under the resolved address.
        """
        target = address if address else self.current_address()
        if not target:
            raise AccountNotFoundError("No COTI accounts configured.")
        credential = self.find(target)
        if credential is None:
            raise AccountNotFoundError(f"No keys found for account: {target}")
        return credential

    def set_default(self, address: str) -> str:
        credential = self.get(address)
        self._default_address = credential.address
        logger.info("Default account changed to %s", credential.address)
        return credential.address

    def add(self, credential: Credential) -> Credential:
        self._credentials[_normalize(credential.address)] = credential
        return credential

    def create(
        self,
        generate_keypair: Callable[[], Mapping[str, str]],
        *,
        set_as_default: bool = False,
    ) -> Credential:
        """Register a freshly generated keypair with a placeholder AES key."""
        keypair = generate_keypair()
        credential = self.add(
            Credential(address=keypair["address"], private_key=keypair["private_key"], aes_key=PENDING_AES_KEY)
        )
        if set_as_default:
            self._default_address = credential.address
        logger.info("Created account %s (default=%s)", credential.address, set_as_default)
        return credential

    def set_aes_key(self, address: str, aes_key: str) -> Credential:
        credential = self.get(address)
        updated = dataclasses.replace(credential, aes_key=aes_key)
        self._credentials[_normalize(credential.address)] = updated
        return updated

    async def generate_aes_key(self, address: str, client: AesKeyGenerator) -> Credential:
        """
        Onboard (or recover) the AES key of an account and store it in place.

        Raises:
            AccountNotFoundError: the address is not registered, before or after onboarding.
            GenerationFailedError: the client returned no usable key.
        """
        credential = self.get(address)
        aes_key = await client.generate_or_recover_aes_key(credential.private_key)
        if aes_key is not None and not isinstance(aes_key, str):
            raise GenerationFailedError("AES key is not a string")
        if not aes_key:
            raise GenerationFailedError("Failed to generate AES key")
        # The record may have been replaced while onboarding was in flight.
        return self.set_aes_key(credential.address, aes_key)

    def list_accounts(self) -> List[AccountSummary]:
        return [
            AccountSummary(
                index=position,
                address=credential.address,
                private_key=mask_secret(credential.private_key),
                aes_key=mask_secret(credential.aes_key),
                is_default=self.is_default(credential.address),
            )
            for position, credential in enumerate(self._credentials.values(), start=1)
        ]

    def export_backup(
        self,
        addresses: Optional[Iterable[str]] = None,
        *,
        include_secrets: bool = True,
    ) -> BackupDocument:
        """Export accounts; an address filter matching nothing exports everything."""
        selected = list(self._credentials.values())
        wanted = {_normalize(address) for address in addresses or ()}
        if wanted:
            filtered = [credential for credential in selected if _normalize(credential.address) in wanted]
            if filtered:
                selected = filtered

        entries = [
            BackupEntry(
                address=credential.address,
                private_key=credential.private_key if include_secrets else REDACTED,
                aes_key=credential.aes_key if include_secrets else REDACTED,
                is_default=self.is_default(credential.address),
            )
            for credential in selected
        ]
        return BackupDocument(timestamp=_utc_timestamp(), accounts=entries)

    def import_backup(
        self,
        document: str | Mapping[str, Any] | BackupDocument,
        *,
        merge: bool = True,
        preferred_default: Optional[str] = None,
    ) -> ImportSummary:
        """
        Merge a backup into the store or replace the store with it.

        The resulting mapping is built separately and swapped in only after the
        document and the requested default have been validated, so a failed import
        leaves the store untouched.

        Raises:
            InvalidBackupError: the document is malformed.
            AccountNotFoundError: ``preferred_default`` is not among the resulting accounts.
        """
        backup = document if isinstance(document, BackupDocument) else BackupDocument.parse(document)

        if merge:
            updated: Dict[str, Credential] = dict(self._credentials)
            for entry in backup.accounts:
                key = _normalize(entry.address)
                existing = updated.get(key)
                if existing is not None:
                    updated[key] = dataclasses.replace(existing, private_key=entry.private_key, aes_key=entry.aes_key)
                else:
                    updated[key] = Credential(address=entry.address, private_key=entry.private_key, aes_key=entry.aes_key)
            new_default = preferred_default or self.current_address()
            if not new_default:
                flagged = next((entry for entry in backup.accounts if entry.is_default), None)
                new_default = flagged.address if flagged else None
        else:
            updated = {}
            for entry in backup.accounts:
                updated[_normalize(entry.address)] = Credential(
                    address=entry.address, private_key=entry.private_key, aes_key=entry.aes_key
                )
            new_default = preferred_default
            if not new_default:
                flagged = next((entry for entry in backup.accounts if entry.is_default), None)
                new_default = (flagged or backup.accounts[0]).address

        if preferred_default:
            resolved = updated.get(_normalize(preferred_default))
            if resolved is None:
                raise AccountNotFoundError(f"Account {preferred_default} not found")
            new_default = resolved.address

        self._credentials = updated
        self._default_address = new_default
        logger.info(
            "Imported %d account(s) (merge=%s); %d account(s) registered",
            len(backup.accounts),
            merge,
            len(updated),
        )
        return ImportSummary(
            imported=len(backup.accounts),
            total_after=len(updated),
            merged=merge,
            default_address=self.current_address(),
            addresses=self.addresses,
        )
