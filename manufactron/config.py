"""
Aggregator Configuration

Loads service settings from the environment (and an optional .env file).
"""

import os
import logging
from typing import Any, Callable, Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel

from .errors import ConfigurationError
from .ingestion.adapter import I3XSourceAdapter

logger = logging.getLogger(__name__)


DEFAULT_SOURCE_URLS = {
    'ERP': 'http://localhost:7001',
    'MES': 'http://localhost:7002',
    'SCADA': 'http://localhost:7003'
}


class AggregatorConfig(BaseModel):
    """Validated aggregator settings."""
    source_urls: Dict[str, str] = dict(DEFAULT_SOURCE_URLS)
    cache_ttl_seconds: float = 1800.0
    fetch_timeout: float = 10.0
    max_hops: int = 4
    max_nodes: int = 10000
    host: str = '0.0.0.0'
    port: int = 7000
    log_level: str = 'INFO'


def _read(name: str, default: str, cast: Callable[[str], Any]) -> Any:
    raw = os.getenv(name, default)
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'")

    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def setup_environment() -> AggregatorConfig:
    """
    Load and validate environment configuration.

    Returns:
        AggregatorConfig with values from the environment or defaults

    Raises:
        ConfigurationError: If a numeric setting is malformed or non-positive
    """
    load_dotenv()

    config = AggregatorConfig(
        source_urls={
            'ERP': os.getenv('I3X_ERP_URL', DEFAULT_SOURCE_URLS['ERP']),
            'MES': os.getenv('I3X_MES_URL', DEFAULT_SOURCE_URLS['MES']),
            'SCADA': os.getenv('I3X_SCADA_URL', DEFAULT_SOURCE_URLS['SCADA'])
        },
        cache_ttl_seconds=_read('GRAPH_CACHE_TTL_SECONDS', '1800', float),
        fetch_timeout=_read('SOURCE_FETCH_TIMEOUT', '10.0', float),
        max_hops=_read('CONTEXT_MAX_HOPS', '4', int),
        max_nodes=_read('CONTEXT_MAX_NODES', '10000', int),
        host=os.getenv('AGGREGATOR_HOST', '0.0.0.0'),
        port=_read('AGGREGATOR_PORT', '7000', int),
        log_level=os.getenv('LOG_LEVEL', 'INFO').upper()
    )

    logger.debug(f"Configuration loaded: sources={list(config.source_urls)}")
    return config


def build_adapters(config: AggregatorConfig) -> List[I3XSourceAdapter]:
    """
    Create one source adapter per configured upstream service.

    Adapters are returned in ERP, MES, SCADA order, which fixes the
    instance order (and therefore edge discovery order) of every rebuild.
    """
    return [
        I3XSourceAdapter(name=name, base_url=url, timeout=config.fetch_timeout)
        for name, url in config.source_urls.items()
    ]
