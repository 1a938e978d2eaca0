"""Feature record and its kind-tagged geometry.

All coordinates are stored as (lat, lng) pairs in WGS84 degrees. The
GeoJSON codec swaps them to [lng, lat] on the way out.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Union

DEFAULT_COLOR = "#1d4ed8"


class LatLng(NamedTuple):
    """A geographic position in degrees."""

    lat: float
    lng: float


class FeatureKind(str, Enum):
    """Kinds of drawable features."""
    POINT = "point"
    LINE = "line"
    POLYGON = "polygon"
    RECTANGLE = "rectangle"
    CIRCLE = "circle"


@dataclass(frozen=True)
class PointGeometry:
    position: LatLng

    @property
    def kind(self) -> FeatureKind:
        return FeatureKind.POINT


@dataclass(frozen=True)
class LineGeometry:
    positions: tuple[LatLng, ...]

    @property
    def kind(self) -> FeatureKind:
        return FeatureKind.LINE


@dataclass(frozen=True)
class PolygonGeometry:
    """Outer ring only. The ring is implicitly closed, so the first vertex is not repeated."""

    positions: tuple[LatLng, ...]

    @property
    def kind(self) -> FeatureKind:
        return FeatureKind.POLYGON


@dataclass(frozen=True)
class RectangleGeometry:
    """Axis-aligned box given by its south-west and north-east corners."""

    south_west: LatLng
    north_east: LatLng

    @property
    def kind(self) -> FeatureKind:
        return FeatureKind.RECTANGLE

    def corners(self) -> tuple[LatLng, LatLng, LatLng, LatLng]:
        """Corners in ring order, starting south-west, counter-clockwise."""
        sw, ne = self.south_west, self.north_east
        return (sw, LatLng(sw.lat, ne.lng), ne, LatLng(ne.lat, sw.lng))


@dataclass(frozen=True)
class CircleGeometry:
    """Center plus radius in meters."""

    center: LatLng
    radius: float

    @property
    def kind(self) -> FeatureKind:
        return FeatureKind.CIRCLE


Geometry = Union[PointGeometry, LineGeometry, PolygonGeometry, RectangleGeometry, CircleGeometry]


@dataclass(frozen=True)
class Feature:
    """A single drawn annotation.

    Records are immutable: the store replaces a whole record on every
    change, so a snapshot taken by ``FeatureStore.list()`` never changes
    underneath its reader.

    Attributes:
        id: Stable identifier, generated once at creation.
        kind: Feature kind; always equals ``geometry.kind``.
        geometry: Kind-specific coordinates.
        group_id: Owning group. Every feature belongs to exactly one group.
        visible: Whether the feature is rendered.
        name: Display label.
        color: Stroke/fill color as a CSS hex string.
        description: Free-form notes.
    """

    id: str
    kind: FeatureKind
    geometry: Geometry
    group_id: str
    visible: bool = True
    name: str = ""
    color: str = DEFAULT_COLOR
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", FeatureKind(self.kind))
        if self.geometry.kind is not self.kind:
            raise ValueError(
                f"Feature {self.id}: kind {self.kind.value} does not match "
                f"geometry {self.geometry.kind.value}"
            )
