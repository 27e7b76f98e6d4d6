"""MCPeer: orchestrated chat over Model Context Protocol tool servers."""

__version__ = "0.1.0"
