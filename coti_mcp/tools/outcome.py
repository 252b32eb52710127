"""Result value returned by every tool handler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from coti_mcp.errors import CotiMcpError


@dataclass(slots=True)
class ToolOutcome:
    """
    Text shown to the caller, an optional structured payload, and the error kind
    when the call failed. ``error`` is None on success.
    """

    text: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, text: str, data: Optional[Dict[str, Any]] = None) -> "ToolOutcome":
        return cls(text=text, data=data)

    @classmethod
    def failure(cls, operation: str, exc: CotiMcpError) -> "ToolOutcome":
        return cls(text=f"Failed to {operation}: {exc.message}", error=exc.kind)

    def to_envelope(self) -> Dict[str, Any]:
        envelope: Dict[str, Any] = {
            "content": [{"type": "text", "text": self.text}],
            "isError": self.is_error,
        }
        if self.data is not None:
            envelope["structuredContent"] = self.data
        return envelope
