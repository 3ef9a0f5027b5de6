"""
MCP tools for the analytics server.

This module contains the MCP tool implementations for health-check date
histograms and cluster health.
"""

from .healthcheck_analysis import register_healthcheck_tools

__all__ = ["register_healthcheck_tools"]
