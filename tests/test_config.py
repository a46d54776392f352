"""
Tests for environment configuration.
"""

from unittest.mock import patch

import pytest

from manufactron.config import AggregatorConfig, build_adapters, setup_environment
from manufactron.errors import ConfigurationError

ENV_VARS = [
    'I3X_ERP_URL', 'I3X_MES_URL', 'I3X_SCADA_URL',
    'GRAPH_CACHE_TTL_SECONDS', 'SOURCE_FETCH_TIMEOUT',
    'CONTEXT_MAX_HOPS', 'CONTEXT_MAX_NODES',
    'AGGREGATOR_HOST', 'AGGREGATOR_PORT', 'LOG_LEVEL'
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    with patch('manufactron.config.load_dotenv'):
        yield


def test_defaults():
    config = setup_environment()

    assert config.source_urls == {
        'ERP': 'http://localhost:7001',
        'MES': 'http://localhost:7002',
        'SCADA': 'http://localhost:7003'
    }
    assert config.cache_ttl_seconds == 1800.0
    assert config.max_hops == 4
    assert config.max_nodes == 10000
    assert config.port == 7000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv('I3X_MES_URL', 'http://mes.plant:9002')
    monkeypatch.setenv('GRAPH_CACHE_TTL_SECONDS', '60')
    monkeypatch.setenv('CONTEXT_MAX_HOPS', '2')
    monkeypatch.setenv('LOG_LEVEL', 'debug')

    config = setup_environment()

    assert config.source_urls['MES'] == 'http://mes.plant:9002'
    assert config.cache_ttl_seconds == 60.0
    assert config.max_hops == 2
    assert config.log_level == 'DEBUG'


@pytest.mark.parametrize("var, value", [
    ('GRAPH_CACHE_TTL_SECONDS', 'soon'),
    ('CONTEXT_MAX_HOPS', '0'),
    ('AGGREGATOR_PORT', '-1'),
])
def test_invalid_values(monkeypatch, var, value):
    monkeypatch.setenv(var, value)
    with pytest.raises(ConfigurationError):
        setup_environment()


def test_build_adapters_in_source_order():
    adapters = build_adapters(AggregatorConfig(fetch_timeout=3.0))

    assert [a.name for a in adapters] == ['ERP', 'MES', 'SCADA']
    assert adapters[2].base_url == 'http://localhost:7003'
    assert adapters[0].timeout == 3.0
