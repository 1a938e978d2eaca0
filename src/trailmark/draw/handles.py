"""Shape handles as delivered by the draw/edit toolkit.

A handle is the live, editable shape object the toolkit renders and lets
the user drag around. Handles are ephemeral: the bridge maps them to
feature ids through a weak side table and never stores them.

Each handle class declares its ``shape_type``. The geometry codec
dispatches on that declaration, so a Rectangle is never mistaken for a
Polygon just because both carry four corners.
"""

from __future__ import annotations

from typing import ClassVar, Optional, Sequence


class ShapeHandle:
    """Base class for toolkit shapes.

    Attributes:
        options: Rendering options (``color``, ``fillOpacity``, ...).
    """

    shape_type: ClassVar[str] = ""

    def __init__(self, options: Optional[dict] = None) -> None:
        self.options: dict = dict(options or {})

    def set_style(self, style: dict) -> None:
        self.options.update(style)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} at {id(self):#x}>"


class Marker(ShapeHandle):
    shape_type = "marker"

    def __init__(self, latlng: Sequence[float], options: Optional[dict] = None) -> None:
        super().__init__(options)
        self.latlng = tuple(latlng)

    def get_latlng(self) -> tuple:
        return self.latlng

    def set_latlng(self, latlng: Sequence[float]) -> None:
        self.latlng = tuple(latlng)


class Polyline(ShapeHandle):
    shape_type = "polyline"

    def __init__(self, latlngs: Sequence[Sequence[float]], options: Optional[dict] = None) -> None:
        super().__init__(options)
        self.latlngs = [tuple(p) for p in latlngs]

    def get_latlngs(self) -> list:
        return list(self.latlngs)

    def set_latlngs(self, latlngs: Sequence[Sequence[float]]) -> None:
        self.latlngs = [tuple(p) for p in latlngs]


class Polygon(Polyline):
    shape_type = "polygon"


class Rectangle(ShapeHandle):
    """Axis-aligned box given as two opposite corners."""

    shape_type = "rectangle"

    def __init__(
        self,
        corner_a: Sequence[float],
        corner_b: Sequence[float],
        options: Optional[dict] = None,
    ) -> None:
        super().__init__(options)
        self.set_bounds(corner_a, corner_b)

    def get_bounds(self) -> tuple[tuple, tuple]:
        return self.corner_a, self.corner_b

    def set_bounds(self, corner_a: Sequence[float], corner_b: Sequence[float]) -> None:
        self.corner_a = tuple(corner_a)
        self.corner_b = tuple(corner_b)


class Circle(ShapeHandle):
    shape_type = "circle"

    def __init__(
        self,
        latlng: Sequence[float],
        radius: Optional[float],
        options: Optional[dict] = None,
    ) -> None:
        super().__init__(options)
        self.latlng = tuple(latlng)
        self.radius = radius

    def get_latlng(self) -> tuple:
        return self.latlng

    def get_radius(self) -> Optional[float]:
        return self.radius

    def set_radius(self, radius: float) -> None:
        self.radius = radius
