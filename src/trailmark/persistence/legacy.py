"""Reader for the pre-grouping ``mapData`` format.

Older builds stored a plain JSON array of feature records:

    [{"id": "123", "type": "marker", "coordinates": {"lat": 47.0, "lng": 8.0},
      "layerGroup": "default", "visible": true, "name": "", "description": ""}, ...]

``type`` is one of marker/line/polygon/circle. Coordinates are
``{lat, lng}`` objects, lists of them (polygons may be nested one level
deeper, one list per ring), or ``{"lat": {lat, lng}, "radius": r}`` for
circles. The format is read-only: saves always write GeoJSON.
"""

from __future__ import annotations

import json
from typing import Any, Union

from loguru import logger

from trailmark.errors import PersistenceFormatError, ValidationError
from trailmark.features.codec import make_circle, to_latlng, validate_geometry
from trailmark.features.feature import (
    DEFAULT_COLOR,
    Feature,
    FeatureKind,
    Geometry,
    LatLng,
    LineGeometry,
    PointGeometry,
    PolygonGeometry,
)
from trailmark.features.store import FeatureStore
from trailmark.groups.group import DEFAULT_GROUP_ID, DEFAULT_GROUP_NAME, Group
from trailmark.groups.tree import GroupTree

_LEGACY_KINDS = {
    "marker": FeatureKind.POINT,
    "point": FeatureKind.POINT,
    "line": FeatureKind.LINE,
    "polyline": FeatureKind.LINE,
    "polygon": FeatureKind.POLYGON,
    "circle": FeatureKind.CIRCLE,
}


def _latlng(value: Any) -> LatLng:
    if isinstance(value, dict):
        return to_latlng((value.get("lat"), value.get("lng")))
    return to_latlng(value)


def _flatten_ring(value: Any) -> list:
    # Polygons were stored as a list of rings; only the outer ring is kept.
    if isinstance(value, list) and value and isinstance(value[0], list):
        return value[0]
    return value


def _geometry(kind: FeatureKind, coords: Any) -> Geometry:
    if kind is FeatureKind.POINT:
        return PointGeometry(_latlng(coords))
    if kind is FeatureKind.CIRCLE:
        if not isinstance(coords, dict):
            raise ValidationError("Circle coordinates must be an object")
        return make_circle(_latlng(coords.get("lat")), coords.get("radius"))
    if not isinstance(coords, list):
        raise ValidationError(f"{kind.value} coordinates must be a list")
    if kind is FeatureKind.LINE:
        return validate_geometry(kind, LineGeometry(tuple(_latlng(p) for p in coords)))
    ring = _flatten_ring(coords)
    return validate_geometry(kind, PolygonGeometry(tuple(_latlng(p) for p in ring)))


def parse_legacy(
    text: Union[str, bytes],
    default_group_name: str = DEFAULT_GROUP_NAME,
) -> tuple[list[Feature], list[Group]]:
    """Parse a legacy ``mapData`` array into features and groups.

    Groups are created by name on first reference; ``"default"`` maps to
    the default group. Malformed records are logged and skipped.

    Raises:
        PersistenceFormatError: If the text is not a JSON array.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
        raise PersistenceFormatError(f"Legacy data is not valid JSON: {e}") from None
    if not isinstance(data, list):
        raise PersistenceFormatError("Legacy data must be a JSON array")

    store = FeatureStore()
    tree = GroupTree(store, default_group_name=default_group_name)

    for idx, raw in enumerate(data):
        try:
            if not isinstance(raw, dict):
                raise ValidationError("record is not an object")
            kind = _LEGACY_KINDS.get(str(raw.get("type", "")).lower())
            if kind is None:
                raise ValidationError(f"unknown type {raw.get('type')!r}")
            geometry = _geometry(kind, raw.get("coordinates"))
        except ValidationError as e:
            logger.warning(f"Skipping legacy record {idx}: {e}")
            continue

        group_name = str(raw.get("layerGroup") or "").strip()
        if not group_name or group_name in ("default", tree.default_group.name):
            group_id = DEFAULT_GROUP_ID
        else:
            group_id = tree.ensure_group(group_name).id

        feature_id = raw.get("id")
        if feature_id is None or str(feature_id) in store:
            feature_id = store.new_id()

        store.add(
            Feature(
                id=str(feature_id),
                kind=kind,
                geometry=geometry,
                group_id=group_id,
                visible=raw.get("visible") is not False,
                name=str(raw.get("name") or ""),
                color=str(raw.get("color") or DEFAULT_COLOR),
                description=str(raw.get("description") or ""),
            )
        )

    logger.info(f"Parsed {len(store)} of {len(data)} legacy records")
    return store.list(), tree.list()
