"""Shared fixtures for annotation-core tests."""

from __future__ import annotations

import pytest
from loguru import logger

from trailmark.config import Settings
from trailmark.draw import EditableLayer, SyncBridge
from trailmark.features import FeatureStore
from trailmark.groups import GroupTree
from trailmark.persistence import MemoryKeyValueStore
from trailmark.session import MapSession


@pytest.fixture
def store():
    return FeatureStore()


@pytest.fixture
def tree(store):
    return GroupTree(store)


@pytest.fixture
def layer():
    return EditableLayer()


@pytest.fixture
def bridge(store, layer):
    return SyncBridge(store, layer)


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def notices():
    return []


@pytest.fixture
def session(kv, layer, notices):
    config = Settings(storage_path="unused.json", strict_load=False)
    return MapSession(storage=kv, toolkit=layer, config=config, notify=notices.append)


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during the test."""
    messages: list[str] = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(sink_id)
