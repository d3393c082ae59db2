"""Gmail send/draft tools for MCP clients, authorized through a local OAuth callback."""

__version__ = "1.0.0"
