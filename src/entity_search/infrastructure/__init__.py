"""
Infrastructure Layer - External Systems Integration

Contains:
- elasticsearch: httpx-based SearchGateway implementation
"""

from .elasticsearch import ElasticsearchGateway

__all__ = ["ElasticsearchGateway"]
