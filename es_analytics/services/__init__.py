"""
Service layer for the analytics package.

This module contains the search engine gateway and its configuration.
"""

from .search_gateway import ElasticsearchConfig, SearchGateway, create_search_gateway

__all__ = ["ElasticsearchConfig", "SearchGateway", "create_search_gateway"]
