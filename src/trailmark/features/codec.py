"""Geometry codec — toolkit handles <-> kind-tagged feature geometry.

``extract`` reads a handle into a (kind, geometry) pair and ``apply``
builds a fresh handle from one. Both directions go through
``validate_geometry`` so nothing malformed reaches the store.
"""

from __future__ import annotations

import math
from typing import Callable

from trailmark.draw.handles import Circle, Marker, Polygon, Polyline, Rectangle, ShapeHandle
from trailmark.errors import ValidationError
from trailmark.features.feature import (
    DEFAULT_COLOR,
    CircleGeometry,
    FeatureKind,
    Geometry,
    LatLng,
    LineGeometry,
    PointGeometry,
    PolygonGeometry,
    RectangleGeometry,
)

MIN_LINE_POINTS = 2
MIN_POLYGON_POINTS = 3


def to_latlng(value) -> LatLng:
    """Coerce a (lat, lng) pair into a validated LatLng.

    Raises:
        ValidationError: For anything that is not two finite numbers in range.
    """
    try:
        lat, lng = value
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValidationError(f"Not a coordinate pair: {value!r}") from None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise ValidationError(f"Non-finite coordinate: {value!r}")
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
        raise ValidationError(f"Coordinate out of range: ({lat}, {lng})")
    return LatLng(lat, lng)


def _positions(values, minimum: int, label: str) -> tuple[LatLng, ...]:
    positions = tuple(to_latlng(v) for v in values)
    if len(positions) < minimum:
        raise ValidationError(
            f"A {label} needs at least {minimum} points, got {len(positions)}"
        )
    return positions


def _open_ring(positions: tuple[LatLng, ...]) -> tuple[LatLng, ...]:
    if len(positions) > 1 and positions[0] == positions[-1]:
        return positions[:-1]
    return positions


def make_rectangle(corner_a, corner_b) -> RectangleGeometry:
    """Normalize two opposite corners into south-west / north-east."""
    a, b = to_latlng(corner_a), to_latlng(corner_b)
    return RectangleGeometry(
        south_west=LatLng(min(a.lat, b.lat), min(a.lng, b.lng)),
        north_east=LatLng(max(a.lat, b.lat), max(a.lng, b.lng)),
    )


def make_circle(center, radius) -> CircleGeometry:
    if radius is None:
        raise ValidationError("Circle is missing its radius")
    try:
        radius = float(radius)
    except (TypeError, ValueError):
        raise ValidationError(f"Circle radius is not a number: {radius!r}") from None
    if not math.isfinite(radius) or radius <= 0:
        raise ValidationError(f"Circle radius must be positive, got {radius}")
    return CircleGeometry(center=to_latlng(center), radius=radius)


def validate_geometry(kind: FeatureKind, geometry: Geometry) -> Geometry:
    """Check ``geometry`` against ``kind`` and return a normalized copy.

    Raises:
        ValidationError: If the geometry is malformed or of the wrong kind.
    """
    kind = FeatureKind(kind)
    if geometry.kind is not kind:
        raise ValidationError(
            f"Geometry {type(geometry).__name__} does not match kind {kind.value}"
        )
    if kind is FeatureKind.POINT:
        return PointGeometry(to_latlng(geometry.position))
    if kind is FeatureKind.LINE:
        return LineGeometry(_positions(geometry.positions, MIN_LINE_POINTS, "line"))
    if kind is FeatureKind.POLYGON:
        ring = _open_ring(tuple(to_latlng(p) for p in geometry.positions))
        return PolygonGeometry(_positions(ring, MIN_POLYGON_POINTS, "polygon"))
    if kind is FeatureKind.RECTANGLE:
        return make_rectangle(geometry.south_west, geometry.north_east)
    return make_circle(geometry.center, geometry.radius)


# ----------------------------------------------------------------------
# Handle -> geometry
# ----------------------------------------------------------------------


def _extract_marker(handle: Marker) -> Geometry:
    return PointGeometry(handle.get_latlng())


def _extract_polyline(handle: Polyline) -> Geometry:
    return LineGeometry(tuple(handle.get_latlngs()))


def _extract_polygon(handle: Polygon) -> Geometry:
    return PolygonGeometry(tuple(handle.get_latlngs()))


def _extract_rectangle(handle: Rectangle) -> Geometry:
    return RectangleGeometry(*handle.get_bounds())


def _extract_circle(handle: Circle) -> Geometry:
    return CircleGeometry(handle.get_latlng(), handle.get_radius())


_EXTRACTORS: dict[str, tuple[FeatureKind, Callable[..., Geometry]]] = {
    Marker.shape_type: (FeatureKind.POINT, _extract_marker),
    Polyline.shape_type: (FeatureKind.LINE, _extract_polyline),
    Polygon.shape_type: (FeatureKind.POLYGON, _extract_polygon),
    Rectangle.shape_type: (FeatureKind.RECTANGLE, _extract_rectangle),
    Circle.shape_type: (FeatureKind.CIRCLE, _extract_circle),
}


def extract(handle: ShapeHandle) -> tuple[FeatureKind, Geometry]:
    """Read a handle's kind and geometry.

    The kind comes from the handle's declared ``shape_type``.

    Raises:
        ValidationError: For undeclared shape types or malformed geometry.
    """
    entry = _EXTRACTORS.get(getattr(handle, "shape_type", ""))
    if entry is None:
        raise ValidationError(f"Unsupported shape handle: {type(handle).__name__}")
    kind, reader = entry
    return kind, validate_geometry(kind, reader(handle))


# ----------------------------------------------------------------------
# Geometry -> handle
# ----------------------------------------------------------------------


def apply(kind: FeatureKind, geometry: Geometry, color: str = DEFAULT_COLOR) -> ShapeHandle:
    """Build a new toolkit handle for ``geometry`` with ``color`` applied."""
    kind = FeatureKind(kind)
    geometry = validate_geometry(kind, geometry)
    options = {"color": color}

    if kind is FeatureKind.POINT:
        return Marker(geometry.position, options)
    if kind is FeatureKind.LINE:
        return Polyline(geometry.positions, options)
    if kind is FeatureKind.POLYGON:
        return Polygon(geometry.positions, options)
    if kind is FeatureKind.RECTANGLE:
        return Rectangle(geometry.south_west, geometry.north_east, options)
    return Circle(geometry.center, geometry.radius, options)
