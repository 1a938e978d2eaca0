"""Save/load: GeoJSON codec, legacy reader, and key-value storage backends."""

from trailmark.persistence.geojson import deserialize, dumps, loads, serialize
from trailmark.persistence.legacy import parse_legacy
from trailmark.persistence.storage import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore

__all__ = [
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "deserialize",
    "dumps",
    "loads",
    "parse_legacy",
    "serialize",
]
