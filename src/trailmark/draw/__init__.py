"""Draw-toolkit boundary: shape handles, the toolkit interface, and the sync bridge."""

from trailmark.draw.handles import Circle, Marker, Polygon, Polyline, Rectangle, ShapeHandle
from trailmark.draw.layer import DrawToolkit, EditableLayer
from trailmark.draw.bridge import HandleState, SyncBridge

__all__ = [
    "Circle",
    "DrawToolkit",
    "EditableLayer",
    "HandleState",
    "Marker",
    "Polygon",
    "Polyline",
    "Rectangle",
    "ShapeHandle",
    "SyncBridge",
]
