#!/usr/bin/env python3
"""
Manufactron I3X Aggregator - Service Entry Point

Starts the unified query API:
1. Load configuration from the environment (.env supported)
2. Create one adapter per upstream service (ERP, MES, SCADA)
3. Serve the FastAPI app; the graph is built on the first request
   and rebuilt in the background once it expires

Usage:
    python run_aggregator.py
"""

import sys
import logging

import uvicorn

from manufactron.config import setup_environment
from manufactron.errors import ConfigurationError
from manufactron.server.app import create_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def print_separator(title: str = ""):
    """Print a visual separator."""
    if title:
        print(f"\n{'='*70}")
        print(f"  {title}")
        print(f"{'='*70}\n")
    else:
        print(f"{'='*70}")


def main():
    """Run the aggregator service."""
    print_separator("I3X Aggregator")

    try:
        config = setup_environment()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"\n❌ Error: {e}")
        return 1

    logging.getLogger().setLevel(config.log_level)

    print("Upstream services:")
    for name, url in config.source_urls.items():
        print(f"  - {name}: {url}")
    print(f"Cache TTL: {config.cache_ttl_seconds:.0f}s, fetch timeout: {config.fetch_timeout}s")
    print(f"Context traversal: {config.max_hops} hops, {config.max_nodes} nodes max")
    print(f"\nListening on http://{config.host}:{config.port}")
    print(f"API docs: http://localhost:{config.port}/docs")
    print_separator()

    app = create_app(config=config)
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower()
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
