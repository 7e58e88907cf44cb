"""Todo list MCP server keeping an editor replica, a protocol replica and a
markdown instructions file in sync."""

__version__ = "0.3.0"
