"""
Pytest configuration and shared fixtures for entityjson tests.

This module provides the test model (Company -> Department -> Employee,
plus Employee <-> Project), stores and contexts built on it, and the
test data document.
"""

import pytest
import json
from pathlib import Path

from entityjson.core.schema import SchemaRegistry
from entityjson.storage.engine import InMemoryEntityStore
from entityjson.mapping.importer import JSONImporter
from entityjson.mapping.exporter import JSONExporter
from entityjson.interface.context import ObjectContext


FIXTURES = Path(__file__).parent / "fixtures"


# =============================================================================
# Schema Fixtures
# =============================================================================

@pytest.fixture
def model_path():
    """Path to the test model definition."""
    return FIXTURES / "test_model.json"


@pytest.fixture
def registry(model_path):
    """Schema registry for the test model."""
    return SchemaRegistry.load(model_path)


@pytest.fixture
def model_definition(model_path):
    """The test model definition as a dict (fresh copy per test)."""
    return json.loads(model_path.read_text(encoding="utf-8"))


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def store(registry):
    """Create an empty in-memory store."""
    store = InMemoryEntityStore(registry)
    yield store
    store.clear()


@pytest.fixture
def importer(registry, store):
    return JSONImporter(registry, store)


@pytest.fixture
def exporter(registry, store):
    return JSONExporter(registry, store)


@pytest.fixture
def context(registry):
    """Create an empty ObjectContext."""
    return ObjectContext(registry)


# =============================================================================
# Data Fixtures
# =============================================================================

@pytest.fixture
def data_path():
    """Path to the test data document."""
    return FIXTURES / "test_data.json"


@pytest.fixture
def test_data(data_path):
    """The test data document as bytes."""
    return data_path.read_bytes()


@pytest.fixture
def populated_context(context, test_data):
    """A context with the test data imported."""
    context.import_json(test_data)
    return context


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "roundtrip: marks export -> import round-trip tests"
    )
