#!/usr/bin/env python3
"""
Entity Search Server - HTTP Mode

This script runs the Entity Search HTTP API with uvicorn.

Usage:
    # Run with a configuration file
    python run_server.py --config config/search.example.yaml

    # Point at a remote backend and listen on all interfaces
    python run_server.py --config search.yaml --es-url http://es:9200 --host 0.0.0.0 --port 8080

Environment Variables:
    ENTITY_SEARCH_CONFIG: Search configuration YAML file
    ENTITY_SEARCH_ES_URL: Search backend URL (default: http://localhost:9200)
    ENTITY_SEARCH_TIMEOUT: Backend request timeout in seconds (default: 30)
    ENTITY_SEARCH_MAX_RETRIES: Backend retries for transient failures (default: 2)
    ENTITY_SEARCH_HOST: Server host (default: 127.0.0.1)
    ENTITY_SEARCH_PORT: Server port (default: 8080)
"""

import argparse
import logging
import os
import sys

# Add src to path for development
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

from entity_search.api.server import DEFAULT_API_HOST, DEFAULT_API_PORT, run_api_server
from entity_search.container import ApplicationContainer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run the Entity Search HTTP API")
    parser.add_argument(
        "--config",
        default=os.environ.get("ENTITY_SEARCH_CONFIG"),
        help="Search configuration YAML file",
    )
    parser.add_argument(
        "--es-url",
        default=os.environ.get("ENTITY_SEARCH_ES_URL", "http://localhost:9200"),
        help="Search backend URL",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=float(os.environ.get("ENTITY_SEARCH_TIMEOUT", "30")),
        help="Backend request timeout in seconds",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=int(os.environ.get("ENTITY_SEARCH_MAX_RETRIES", "2")),
        help="Backend retries for transient failures",
    )
    parser.add_argument(
        "--host",
        default=os.environ.get("ENTITY_SEARCH_HOST", DEFAULT_API_HOST),
        help=f"Server host (default: {DEFAULT_API_HOST})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("ENTITY_SEARCH_PORT", str(DEFAULT_API_PORT))),
        help=f"Server port (default: {DEFAULT_API_PORT})",
    )

    args = parser.parse_args()
    if not args.config:
        parser.error("--config (or ENTITY_SEARCH_CONFIG) is required")

    logger.info("Creating Entity Search server...")
    logger.info(f"  Config: {args.config}")
    logger.info(f"  Backend: {args.es_url}")
    logger.info(f"  Timeout: {args.timeout}s, retries: {args.max_retries}")

    container = ApplicationContainer()
    container.config.from_dict(
        {
            "config_path": args.config,
            "es_url": args.es_url,
            "timeout": args.timeout,
            "max_retries": args.max_retries,
        }
    )

    run_api_server(container, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
