"""Toolkit side of the bridge: the calls the bridge makes into the draw toolkit.

``DrawToolkit`` is the interface; ``EditableLayer`` is an in-memory
implementation of it, equivalent to the toolkit's editable feature group.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from trailmark.draw.handles import ShapeHandle


@runtime_checkable
class DrawToolkit(Protocol):
    """Imperative calls accepted by the draw/edit toolkit."""

    def register_handle(self, handle: ShapeHandle) -> None:
        """Start rendering ``handle`` and make it editable."""
        ...

    def deregister_handle(self, handle: ShapeHandle) -> None:
        """Stop rendering ``handle``. Unknown handles are ignored."""
        ...

    def style_handle(self, handle: ShapeHandle, style: dict) -> None:
        """Apply style options such as ``{"color": "#ff0000"}``."""
        ...


class EditableLayer:
    """Ordered collection of live handles.

    Mirrors the toolkit's own bookkeeping. ``auto_register`` reproduces
    the toolkit adding a freshly drawn shape to its live collection before
    the creation event reaches the bridge.
    """

    def __init__(self) -> None:
        self._handles: list[ShapeHandle] = []

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, handle: object) -> bool:
        return any(h is handle for h in self._handles)

    def __iter__(self):
        return iter(list(self._handles))

    def register_handle(self, handle: ShapeHandle) -> None:
        if handle not in self:
            self._handles.append(handle)

    def deregister_handle(self, handle: ShapeHandle) -> None:
        self._handles = [h for h in self._handles if h is not handle]

    def style_handle(self, handle: ShapeHandle, style: dict) -> None:
        handle.set_style(style)

    def auto_register(self, handle: ShapeHandle) -> None:
        """Add a new shape the way the toolkit does on draw-complete.

        Unlike ``register_handle`` this does not check for an existing entry.
        """
        self._handles.append(handle)

    def count(self, handle: ShapeHandle) -> int:
        """How many times ``handle`` is registered."""
        return sum(1 for h in self._handles if h is handle)

    def handles(self) -> list[ShapeHandle]:
        return list(self._handles)

    def clear(self) -> None:
        self._handles = []
