"""Search backend gateway."""

from .client import ElasticsearchGateway

__all__ = ["ElasticsearchGateway"]
