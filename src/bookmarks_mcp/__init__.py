"""MCP server and reorder-and-synchronize engine for browser bookmarks."""

__version__ = "0.1.0"
