"""Fastboot client over USB bulk transfers, served as an MCP server."""

__version__ = "0.1.0"
