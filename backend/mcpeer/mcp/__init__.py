"""MCP protocol client, tool catalogs and invocation."""

from .arguments import remap_arguments, resolve_primary_argument
from .catalog import ToolCatalogFetcher
from .client import MCPClient, MCPServerError
from .invoker import ToolInvoker
from .schema import ServerToolCatalog, ToolCallResult, ToolDescriptor

__all__ = [
    "MCPClient",
    "MCPServerError",
    "ServerToolCatalog",
    "ToolCallResult",
    "ToolCatalogFetcher",
    "ToolDescriptor",
    "ToolInvoker",
    "remap_arguments",
    "resolve_primary_argument",
]
