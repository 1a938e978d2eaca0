"""Map annotation core — feature store, draw-toolkit bridge, group tree, GeoJSON persistence.

Coordinates are WGS84 (lat, lng) in memory and [lng, lat] in GeoJSON.
"""

from __future__ import annotations

import sys

from loguru import logger

from trailmark.errors import (
    IdentityError,
    PersistenceFormatError,
    TrailmarkError,
    TreeIntegrityError,
    ValidationError,
)
from trailmark.features import Feature, FeatureKind, FeatureStore, LatLng
from trailmark.groups import DEFAULT_GROUP_ID, DeletePolicy, Group, GroupTree
from trailmark.session import MapSession

__all__ = [
    "DEFAULT_GROUP_ID",
    "DeletePolicy",
    "Feature",
    "FeatureKind",
    "FeatureStore",
    "Group",
    "GroupTree",
    "IdentityError",
    "LatLng",
    "MapSession",
    "PersistenceFormatError",
    "TrailmarkError",
    "TreeIntegrityError",
    "ValidationError",
    "configure_logging",
]


def configure_logging(level: str = "INFO") -> None:
    """Send loguru output to stderr at the given level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
