"""Exception hierarchy shared by the account store, the COTI client and the tools."""

from __future__ import annotations

from typing import Optional


class CotiMcpError(Exception):
    """Base exception for COTI MCP errors."""

    kind = "error"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationMissingError(CotiMcpError):
    """Raised when required startup configuration is absent or inconsistent."""

    kind = "configuration_missing"


class AccountNotFoundError(CotiMcpError):
    """Raised when an address has no credential record."""

    kind = "not_found"


class InvalidArgumentError(CotiMcpError):
    """Raised when a tool argument is malformed or outside its allowed values."""

    kind = "invalid_argument"


class InvalidBackupError(CotiMcpError):
    """Raised when an account backup document fails validation."""

    kind = "invalid_backup"


class GenerationFailedError(CotiMcpError):
    """Raised when AES key onboarding returns no usable key."""

    kind = "generation_failed"


class DownstreamError(CotiMcpError):
    """Raised for failures reported by the COTI node or the signing libraries."""

    kind = "downstream_failure"


class NodeUnreachableError(DownstreamError):
    """Raised when the COTI RPC endpoint cannot be reached."""
