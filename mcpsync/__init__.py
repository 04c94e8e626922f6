"""Environment-driven MCP server registration for Laravel projects."""

__version__ = "0.1.0"
