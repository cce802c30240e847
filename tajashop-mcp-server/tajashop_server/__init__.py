"""Taja.Shop cart store, server sync and MCP/HTTP servers."""

__version__ = "0.1.0"
