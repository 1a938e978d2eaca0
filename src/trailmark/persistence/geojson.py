"""GeoJSON persistence codec (RFC 7946) for features and the group tree.

Geometry is written with GeoJSON's native shapes:

  point     -> Point
  line      -> LineString
  polygon   -> Polygon (closed outer ring)
  rectangle -> Polygon (5-vertex ring)
  circle    -> Point (center)

Everything the native shape cannot hold goes into ``properties``: the
feature kind, circle radius, group id and name, visibility, color, name
and description. The group tree is written as a top-level ``groups``
member of the FeatureCollection.

GeoJSON coordinates are [lng, lat]; features store (lat, lng).
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from trailmark.errors import PersistenceFormatError, ValidationError
from trailmark.features.codec import make_circle, make_rectangle, to_latlng, validate_geometry
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

GEOMETRY_TYPES = ("Point", "LineString", "Polygon")

# Kind names written by older serializations and by the draw toolkit
_KIND_ALIASES = {
    "marker": FeatureKind.POINT,
    "polyline": FeatureKind.LINE,
    "linestring": FeatureKind.LINE,
}

_LEGACY_DEFAULT_GROUP = "default"


class FeatureProperties(BaseModel):
    """The properties side channel of one stored feature."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    kind: Optional[str] = None
    radius: Optional[float] = None
    group_id: Optional[str] = Field(default=None, alias="groupId")
    layer_group: Optional[str] = Field(default=None, alias="layerGroup")
    visible: Optional[bool] = None
    color: Optional[str] = None
    name: Optional[str] = None
    text: Optional[str] = None
    description: Optional[str] = None

    @field_validator("color", "name", "text", "description", mode="before")
    @classmethod
    def text_or_none(cls, value: Any) -> Optional[str]:
        # Non-string labels from other writers fall back to the defaults
        return value if isinstance(value, str) else None


class GroupRecord(BaseModel):
    """One entry of the top-level ``groups`` member."""

    id: str
    name: str
    parent_id: Optional[str] = Field(default=None, alias="parentId")


# ----------------------------------------------------------------------
# Serialize
# ----------------------------------------------------------------------


def _position(p: LatLng) -> list[float]:
    return [p.lng, p.lat]


def _ring(points: Iterable[LatLng]) -> list[list[float]]:
    ring = [_position(p) for p in points]
    if ring and ring[0] != ring[-1]:
        ring.append(list(ring[0]))
    return ring


def _geometry_to_geojson(feature: Feature) -> dict:
    geometry = feature.geometry
    kind = feature.kind
    if kind is FeatureKind.POINT:
        return {"type": "Point", "coordinates": _position(geometry.position)}
    if kind is FeatureKind.LINE:
        return {"type": "LineString", "coordinates": [_position(p) for p in geometry.positions]}
    if kind is FeatureKind.POLYGON:
        return {"type": "Polygon", "coordinates": [_ring(geometry.positions)]}
    if kind is FeatureKind.RECTANGLE:
        return {"type": "Polygon", "coordinates": [_ring(geometry.corners())]}
    return {"type": "Point", "coordinates": _position(geometry.center)}


def _feature_to_geojson(feature: Feature, group_names: dict[str, str]) -> dict:
    """Convert a Feature to a GeoJSON Feature dict."""
    properties: dict[str, Any] = {
        "kind": feature.kind.value,
        "groupId": feature.group_id,
        "layerGroup": group_names.get(feature.group_id, feature.group_id),
        "visible": feature.visible,
        "color": feature.color,
        "name": feature.name,
        "description": feature.description,
    }
    if feature.kind is FeatureKind.CIRCLE:
        properties["radius"] = feature.geometry.radius

    return {
        "type": "Feature",
        "id": feature.id,
        "geometry": _geometry_to_geojson(feature),
        "properties": properties,
    }


def serialize(features: Iterable[Feature], groups: Iterable[Group]) -> dict:
    """Export features and groups to a GeoJSON FeatureCollection dict.

    Args:
        features: Features to write.
        groups: The group tree, written to the ``groups`` member.

    Returns:
        Dict representing a valid GeoJSON FeatureCollection.
    """
    groups = list(groups)
    group_names = {g.id: g.name for g in groups}
    return {
        "type": "FeatureCollection",
        "features": [_feature_to_geojson(f, group_names) for f in features],
        "groups": [
            {"id": g.id, "name": g.name, "parentId": g.parent_id} for g in groups
        ],
    }


def dumps(features: Iterable[Feature], groups: Iterable[Group]) -> str:
    return json.dumps(serialize(features, groups))


# ----------------------------------------------------------------------
# Deserialize
# ----------------------------------------------------------------------


def _load_document(document: Union[str, bytes, dict]) -> dict:
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PersistenceFormatError(f"Stored document is not valid JSON: {e}") from None
    if not isinstance(document, dict):
        raise PersistenceFormatError(
            f"Stored document must be a GeoJSON object, got {type(document).__name__}"
        )
    return document


def _entries(data: dict) -> list:
    doc_type = data.get("type")
    if doc_type == "FeatureCollection":
        entries = data.get("features", [])
        if not isinstance(entries, list):
            raise PersistenceFormatError("FeatureCollection 'features' must be a list")
        return entries
    if doc_type == "Feature" or doc_type in GEOMETRY_TYPES or "coordinates" in data:
        return [data]
    raise PersistenceFormatError(f"Unsupported GeoJSON document type: {doc_type!r}")


def _wrap(entry: Any) -> Optional[dict]:
    """Normalize an entry to a Feature dict; bare geometries get empty properties."""
    if not isinstance(entry, dict):
        return None
    if entry.get("type") == "Feature":
        return entry
    if "coordinates" in entry:
        return {"type": "Feature", "geometry": entry, "properties": {}}
    return None


def _resolve_kind(geom_type: str, declared: Optional[str]) -> FeatureKind:
    natural = {
        "Point": FeatureKind.POINT,
        "LineString": FeatureKind.LINE,
        "Polygon": FeatureKind.POLYGON,
    }
    if geom_type not in natural:
        raise ValidationError(f"Unknown geometry type {geom_type!r}")
    if not declared:
        return natural[geom_type]

    key = declared.lower()
    try:
        kind = _KIND_ALIASES.get(key) or FeatureKind(key)
    except ValueError:
        raise ValidationError(f"Unknown feature kind {declared!r}") from None

    compatible = {
        "Point": (FeatureKind.POINT, FeatureKind.CIRCLE),
        "LineString": (FeatureKind.LINE,),
        "Polygon": (FeatureKind.POLYGON, FeatureKind.RECTANGLE),
    }
    if kind not in compatible[geom_type]:
        raise ValidationError(f"Kind {kind.value} cannot be stored as {geom_type}")
    return kind


def _position_in(value) -> LatLng:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        raise ValidationError(f"Not a GeoJSON position: {value!r}")
    return to_latlng((value[1], value[0]))


def _geometry_from_geojson(kind: FeatureKind, coordinates, props: FeatureProperties) -> Geometry:
    if kind in (FeatureKind.POINT, FeatureKind.CIRCLE):
        center = _position_in(coordinates)
        if kind is FeatureKind.CIRCLE:
            return make_circle(center, props.radius)
        return PointGeometry(center)

    if not isinstance(coordinates, list):
        raise ValidationError("Coordinates must be a list")
    if kind is FeatureKind.LINE:
        return validate_geometry(kind, LineGeometry(tuple(_position_in(p) for p in coordinates)))

    if not coordinates or not isinstance(coordinates[0], list):
        raise ValidationError("Polygon has no outer ring")
    ring = tuple(_position_in(p) for p in coordinates[0])
    if kind is FeatureKind.RECTANGLE:
        if not ring:
            raise ValidationError("Rectangle ring is empty")
        lats = [p.lat for p in ring]
        lngs = [p.lng for p in ring]
        return make_rectangle((min(lats), min(lngs)), (max(lats), max(lngs)))
    return validate_geometry(kind, PolygonGeometry(ring))


def _restore_groups(data: dict, tree: GroupTree) -> dict[str, str]:
    """Load the ``groups`` member into ``tree``.

    Returns:
        Map of every stored group id to the id it ended up under (groups
        sharing a name collapse into the first one).
    """
    raw_groups = data.get("groups") or []
    if not isinstance(raw_groups, list):
        logger.warning("Ignoring malformed 'groups' member")
        return {}

    records: list[GroupRecord] = []
    for raw in raw_groups:
        try:
            records.append(GroupRecord.model_validate(raw))
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed group record: {e.errors()[0]['msg']}")

    default_name = next(
        (r.name.strip() for r in records if r.id == DEFAULT_GROUP_ID and r.name.strip()),
        tree.default_group.name,
    )
    alias: dict[str, str] = {}
    by_name: dict[str, str] = {default_name: DEFAULT_GROUP_ID}
    kept: list[Group] = []
    for rec in records:
        name = rec.name.strip() or rec.id
        if rec.id in alias:
            logger.warning(f"Skipping duplicate group id {rec.id}")
            continue
        if rec.id == DEFAULT_GROUP_ID:
            name = default_name
        elif name in by_name:
            logger.warning(f"Group name '{name}' appears twice, merging {rec.id}")
            alias[rec.id] = by_name[name]
            continue
        alias[rec.id] = rec.id
        by_name[name] = rec.id
        kept.append(Group(rec.id, name, rec.parent_id))

    kept = [
        Group(g.id, g.name, alias.get(g.parent_id, g.parent_id) if g.parent_id else None)
        for g in kept
    ]
    tree.replace_all(kept)
    return alias


def _resolve_group(props: FeatureProperties, tree: GroupTree, alias: dict[str, str]) -> str:
    if props.group_id and alias.get(props.group_id, props.group_id) in tree:
        return alias.get(props.group_id, props.group_id)
    name = (props.layer_group or "").strip()
    if not name or name == _LEGACY_DEFAULT_GROUP or name == tree.default_group.name:
        return DEFAULT_GROUP_ID
    return tree.ensure_group(name).id


def deserialize(
    document: Union[str, bytes, dict],
    default_group_name: str = DEFAULT_GROUP_NAME,
    strict: bool = False,
) -> tuple[list[Feature], list[Group]]:
    """Restore features and groups from a GeoJSON document.

    Accepts a FeatureCollection, a single Feature, or a bare geometry.
    Entries of a collection may themselves be bare geometries.

    Args:
        document: JSON text or an already-parsed dict.
        default_group_name: Name of the default group if the document
            does not carry one.
        strict: Raise instead of skipping records with unknown or malformed
            geometry.

    Returns:
        (features, groups), ready for ``FeatureStore.replace_all`` and
        ``GroupTree.replace_all``.

    Raises:
        PersistenceFormatError: If the document is not parseable GeoJSON,
            or (strict) a record cannot be restored.
    """
    data = _load_document(document)
    entries = _entries(data)

    store = FeatureStore()
    tree = GroupTree(store, default_group_name=default_group_name)
    alias = _restore_groups(data, tree)

    for idx, entry in enumerate(entries):
        raw = _wrap(entry)
        try:
            if raw is None:
                raise ValidationError("Entry is neither a Feature nor a geometry")
            feature = _parse_feature(raw, store, tree, alias)
        except ValidationError as e:
            if strict:
                raise PersistenceFormatError(f"Feature {idx}: {e}") from None
            logger.warning(f"Skipping feature {idx}: {e}")
            continue
        store.add(feature)

    logger.debug(f"Deserialized {len(store)} features in {len(tree)} groups")
    return store.list(), tree.list()


def _parse_feature(raw: dict, store: FeatureStore, tree: GroupTree, alias: dict[str, str]) -> Feature:
    """Parse a single GeoJSON Feature dict into a Feature."""
    geometry = raw.get("geometry")
    if not isinstance(geometry, dict):
        raise ValidationError("Feature has no geometry")

    properties = raw.get("properties") or {}
    if not isinstance(properties, dict):
        properties = {}
    try:
        props = FeatureProperties.model_validate(properties)
    except PydanticValidationError as e:
        raise ValidationError(f"Bad properties: {e.errors()[0]['msg']}") from None

    kind = _resolve_kind(str(geometry.get("type", "")), props.kind)
    shape = _geometry_from_geojson(kind, geometry.get("coordinates"), props)

    feature_id = raw.get("id")
    if feature_id is None or str(feature_id) in store:
        feature_id = store.new_id()

    return Feature(
        id=str(feature_id),
        kind=kind,
        geometry=shape,
        group_id=_resolve_group(props, tree, alias),
        visible=props.visible is not False,
        name=props.name or props.text or "",
        color=props.color or DEFAULT_COLOR,
        description=props.description or "",
    )


def loads(
    text: Union[str, bytes],
    default_group_name: str = DEFAULT_GROUP_NAME,
    strict: bool = False,
) -> tuple[list[Feature], list[Group]]:
    return deserialize(text, default_group_name=default_group_name, strict=strict)
