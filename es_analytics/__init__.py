"""
ES Analytics - health-check analytics over Elasticsearch, exposed as MCP tools.

This package provides an async search engine gateway, date histogram queries
over health-check indices and the MCP server publishing them.
"""

__version__ = "0.1.0"

from .server import create_server

__all__ = ["create_server", "__version__"]
