"""
HTTP API for Entity Search.

Provides REST endpoints for every Searcher operation plus a health check.
"""

from .server import create_api_server, run_api_server

__all__ = ["create_api_server", "run_api_server"]
