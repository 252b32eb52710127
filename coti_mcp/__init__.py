"""COTI MCP server package."""

__all__ = ["config", "server"]
