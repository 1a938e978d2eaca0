"""Feature records, the feature store and the geometry codec."""

from trailmark.features.feature import (
    CircleGeometry,
    Feature,
    FeatureKind,
    Geometry,
    LatLng,
    LineGeometry,
    PointGeometry,
    PolygonGeometry,
    RectangleGeometry,
)
from trailmark.features.store import FeatureStore

__all__ = [
    "CircleGeometry",
    "Feature",
    "FeatureKind",
    "FeatureStore",
    "Geometry",
    "LatLng",
    "LineGeometry",
    "PointGeometry",
    "PolygonGeometry",
    "RectangleGeometry",
]
