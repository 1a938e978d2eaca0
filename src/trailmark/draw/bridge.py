"""SyncBridge — keeps toolkit shape handles and store features in step.

Handle lifecycle:
  DRAWING -> (draw complete) -> BOUND -> (delete / reconstruct) -> DETACHED

The handle -> feature-id association is a weak side table: dropping a
handle never touches its feature, and removing a feature only detaches
the handle. An id is attached exactly once per handle.
"""

from __future__ import annotations

import weakref
from enum import Enum
from typing import Iterable, Optional

from loguru import logger

from trailmark.draw.handles import ShapeHandle
from trailmark.draw.layer import DrawToolkit
from trailmark.errors import IdentityError, ValidationError
from trailmark.features import codec
from trailmark.features.feature import DEFAULT_COLOR, Feature, FeatureKind
from trailmark.features.store import FeatureStore
from trailmark.groups.group import DEFAULT_GROUP_ID


class HandleState(str, Enum):
    """Where a handle is in its lifecycle."""
    DRAWING = "drawing"     # gesture in progress, no feature yet
    BOUND = "bound"         # feature id attached
    DETACHED = "detached"   # handle destroyed or feature deleted


class SyncBridge:
    """Binds ephemeral toolkit handles to persistent features."""

    def __init__(
        self,
        store: FeatureStore,
        toolkit: DrawToolkit,
        default_color: str = DEFAULT_COLOR,
        default_group_id: str = DEFAULT_GROUP_ID,
    ) -> None:
        self.store = store
        self.toolkit = toolkit
        self.default_color = default_color
        self.default_group_id = default_group_id

        self._ids: weakref.WeakKeyDictionary[ShapeHandle, str] = weakref.WeakKeyDictionary()
        self._handles: dict[str, weakref.ref] = {}
        self._detached: weakref.WeakSet[ShapeHandle] = weakref.WeakSet()

    # ------------------------------------------------------------------
    # Handle bookkeeping
    # ------------------------------------------------------------------

    def _attach(self, handle: ShapeHandle, feature_id: str) -> None:
        existing = self._ids.get(handle)
        if existing is not None and existing != feature_id:
            raise IdentityError(
                f"{handle!r} is already bound to {existing}, refusing {feature_id}"
            )
        self._ids[handle] = feature_id
        self._handles[feature_id] = weakref.ref(handle)

    def _detach(self, handle: ShapeHandle) -> None:
        feature_id = self._ids.pop(handle, None)
        if feature_id is not None:
            ref = self._handles.get(feature_id)
            if ref is not None and ref() is handle:
                del self._handles[feature_id]
        self._detached.add(handle)
        self.toolkit.deregister_handle(handle)

    def feature_id_for(self, handle: ShapeHandle) -> Optional[str]:
        """Feature id attached to ``handle``, or None if unbound."""
        return self._ids.get(handle)

    def handle_for(self, feature_id: str) -> Optional[ShapeHandle]:
        """Live handle bound to ``feature_id``, or None."""
        ref = self._handles.get(feature_id)
        return ref() if ref is not None else None

    def state_of(self, handle: ShapeHandle) -> HandleState:
        if handle in self._ids:
            return HandleState.BOUND
        if handle in self._detached:
            return HandleState.DETACHED
        return HandleState.DRAWING

    def bound_handles(self) -> list[ShapeHandle]:
        return [h for h in (ref() for ref in self._handles.values()) if h is not None]

    def detach_all(self) -> None:
        """Detach and deregister every bound handle. The store is not touched."""
        for handle in self.bound_handles():
            self._detach(handle)
        self._handles.clear()

    def _require_bound(self, handle: ShapeHandle) -> str:
        feature_id = self._ids.get(handle)
        if feature_id is None:
            raise IdentityError(f"{handle!r} is not bound to any feature")
        if feature_id not in self.store:
            raise IdentityError(f"{handle!r} is bound to missing feature {feature_id}")
        return feature_id

    # ------------------------------------------------------------------
    # Toolkit events
    # ------------------------------------------------------------------

    def on_shape_created(
        self, handle: ShapeHandle, kind: Optional[FeatureKind] = None
    ) -> Feature:
        """Handle a completed draw gesture.

        Args:
            handle: The freshly drawn shape.
            kind: Kind reported by the toolkit. Only used as a cross-check;
                the handle's declared type decides.

        Returns:
            The newly stored Feature.

        Raises:
            ValidationError: If the shape's geometry is malformed. The store
                is untouched and the handle is dropped from the toolkit.
            IdentityError: If the handle is already bound to a feature. The
                store is untouched.
        """
        bound = self._ids.get(handle)
        if bound is not None:
            raise IdentityError(f"{handle!r} is already bound to {bound}")
        try:
            extracted_kind, geometry = codec.extract(handle)
        except ValidationError:
            self.toolkit.deregister_handle(handle)
            raise
        if kind is not None and FeatureKind(kind) is not extracted_kind:
            logger.warning(
                f"Toolkit reported {FeatureKind(kind).value} for a "
                f"{extracted_kind.value} shape, using {extracted_kind.value}"
            )

        feature = Feature(
            id=self.store.new_id(),
            kind=extracted_kind,
            geometry=geometry,
            group_id=self.default_group_id,
            visible=True,
            name="",
            color=handle.options.get("color") or self.default_color,
        )
        self.store.add(feature)
        self._attach(handle, feature.id)

        # The toolkit already put the shape in its live collection; the
        # store decides what is rendered, so register exactly once here.
        self.toolkit.deregister_handle(handle)
        self.toolkit.register_handle(handle)
        self.toolkit.style_handle(handle, {"color": feature.color})

        logger.info(f"Created {feature.kind.value} feature {feature.id}")
        return feature

    def on_shapes_edited(self, handles: Iterable[ShapeHandle]) -> list[Feature]:
        """Commit edited geometry for each handle, in order.

        Unbound handles and geometry that no longer validates are logged
        and skipped; the other handles in the batch are still processed.

        Returns:
            The updated features.
        """
        updated: list[Feature] = []
        for handle in handles:
            try:
                feature_id = self._require_bound(handle)
                _, geometry = codec.extract(handle)
            except (IdentityError, ValidationError) as e:
                logger.warning(f"Ignoring edit: {e}")
                continue
            feature = self.store.update(feature_id, geometry=geometry)
            if feature is not None:
                logger.debug(f"Updated geometry of {feature_id}")
                updated.append(feature)
        return updated

    def on_shapes_deleted(self, handles: Iterable[ShapeHandle]) -> list[str]:
        """Remove the features bound to ``handles``.

        Returns:
            Ids of the removed features.
        """
        removed: list[str] = []
        for handle in handles:
            try:
                feature_id = self._require_bound(handle)
            except IdentityError as e:
                logger.warning(f"Ignoring delete: {e}")
                self._detach(handle)
                continue
            self.store.remove(feature_id)
            self._detach(handle)
            removed.append(feature_id)
            logger.info(f"Deleted feature {feature_id}")
        return removed

    # ------------------------------------------------------------------
    # Store -> toolkit
    # ------------------------------------------------------------------

    def reconstruct(self) -> int:
        """Rebuild all handles from the store, e.g. after a load.

        Existing handles are detached first. Features are not re-added to
        the store and no creation events fire.

        Returns:
            Number of handles registered.
        """
        self.detach_all()

        registered = 0
        for feature in self.store.list():
            if feature.visible:
                self._render(feature)
                registered += 1
        logger.info(f"Reconstructed {registered} of {len(self.store)} features")
        return registered

    def _render(self, feature: Feature) -> ShapeHandle:
        handle = codec.apply(feature.kind, feature.geometry, color=feature.color)
        self._attach(handle, feature.id)
        self.toolkit.register_handle(handle)
        return handle

    def restyle(self, feature_id: str) -> bool:
        """Push a feature's color to its handle after a metadata edit."""
        feature = self.store.get(feature_id)
        handle = self.handle_for(feature_id)
        if feature is None or handle is None:
            return False
        self.toolkit.style_handle(handle, {"color": feature.color})
        return True

    def sync_visibility(self) -> None:
        """Render visible features and drop the handles of hidden ones.

        Hidden features keep no handle; one is rebuilt when they are shown
        again.
        """
        for feature in self.store.list():
            handle = self.handle_for(feature.id)
            if feature.visible and handle is None:
                self._render(feature)
            elif not feature.visible and handle is not None:
                self._detach(handle)
