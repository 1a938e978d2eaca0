"""MapSession — one annotation session: store, group tree, bridge, storage.

The session is the single source of truth handed to every UI entry point.
Components get it (or its parts) by injection; there is no module-level
instance. ``init()`` builds fresh components, ``reset()`` empties them in
place.

Command methods are the boundary where errors stop: a ``TrailmarkError``
is logged, turned into a user-visible notice, and reported through the
return value. The session stays usable after any of them.
"""

from __future__ import annotations

from typing import Callable, Optional

from loguru import logger

from trailmark.config import Settings, settings
from trailmark.draw import DrawToolkit, EditableLayer, ShapeHandle, SyncBridge
from trailmark.errors import PersistenceFormatError, TrailmarkError, ValidationError
from trailmark.features.feature import Feature, FeatureKind
from trailmark.features.store import FeatureStore
from trailmark.groups import DeletePolicy, Group, GroupTree, TreeNode, build_tree, handle_drop
from trailmark.persistence.geojson import deserialize, dumps
from trailmark.persistence.legacy import parse_legacy
from trailmark.persistence.storage import JsonFileKeyValueStore, KeyValueStore

Notifier = Callable[[str], None]

_METADATA_FIELDS = frozenset({"name", "color", "description", "visible", "group_id"})


class MapSession:
    """Process-scoped annotation state plus the commands the view issues."""

    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        toolkit: Optional[DrawToolkit] = None,
        config: Optional[Settings] = None,
        notify: Optional[Notifier] = None,
    ) -> None:
        """Create a session.

        Args:
            storage: Save/load target. Defaults to a JSON file at
                ``config.storage_path``.
            toolkit: Draw toolkit receiving register/style calls. Defaults
                to an in-memory EditableLayer.
            config: Settings; defaults to the module-level settings.
            notify: Receives user-visible notices. Defaults to logging them.
        """
        self.config = config or settings
        self.storage = storage if storage is not None else JsonFileKeyValueStore(self.config.storage_path)
        self.toolkit = toolkit if toolkit is not None else EditableLayer()
        self.notify: Notifier = notify or (lambda message: logger.info(f"Notice: {message}"))

        self.store: FeatureStore
        self.tree: GroupTree
        self.bridge: SyncBridge
        self.init()

    # ==================
    # Lifecycle
    # ==================

    def init(self) -> None:
        """Build fresh store, tree and bridge.

        Handles left in the toolkit by a previous bridge are deregistered.
        """
        previous = getattr(self, "bridge", None)
        if previous is not None:
            previous.detach_all()
        self.store = FeatureStore()
        self.tree = GroupTree(self.store, default_group_name=self.config.default_group_name)
        self.bridge = SyncBridge(
            self.store,
            self.toolkit,
            default_color=self.config.default_color,
        )
        logger.debug("Map session initialized")

    def reset(self) -> None:
        """Drop every feature, group and live handle, keeping the same objects."""
        self.store.clear()
        self.tree.reset()
        self.bridge.reconstruct()
        logger.info("Map session reset")

    def _fail(self, error: TrailmarkError) -> None:
        logger.warning(f"{type(error).__name__}: {error}")
        self.notify(str(error))

    # ==================
    # Toolkit events
    # ==================

    def shape_created(self, handle: ShapeHandle, kind: Optional[FeatureKind] = None) -> Optional[Feature]:
        try:
            return self.bridge.on_shape_created(handle, kind)
        except TrailmarkError as e:
            self._fail(e)
            return None

    def shapes_edited(self, handles: list[ShapeHandle]) -> list[Feature]:
        return self.bridge.on_shapes_edited(handles)

    def shapes_deleted(self, handles: list[ShapeHandle]) -> list[str]:
        return self.bridge.on_shapes_deleted(handles)

    # ==================
    # Feature commands
    # ==================

    def features(self) -> list[Feature]:
        return self.store.list()

    def update_feature(self, feature_id: str, **changes) -> Optional[Feature]:
        """Edit display metadata (name, color, description, visible, group_id).

        Geometry only changes through edit gestures. Unknown ids are a no-op.
        """
        unknown = set(changes) - _METADATA_FIELDS
        if unknown:
            self._fail(ValidationError(f"Cannot edit {', '.join(sorted(unknown))} here"))
            return None
        if feature_id not in self.store:
            logger.debug(f"Ignoring update for unknown feature {feature_id}")
            return None

        group_id = changes.pop("group_id", None)
        try:
            if group_id is not None:
                self.tree.move_feature(feature_id, group_id)
        except TrailmarkError as e:
            self._fail(e)
            return None

        feature = self.store.update(feature_id, **changes) if changes else self.store.get(feature_id)
        if "color" in changes:
            self.bridge.restyle(feature_id)
        if "visible" in changes:
            self.bridge.sync_visibility()
        return feature

    def move_feature(self, feature_id: str, group_id: str) -> bool:
        try:
            self.tree.move_feature(feature_id, group_id)
        except TrailmarkError as e:
            self._fail(e)
            return False
        return True

    # ==================
    # Group commands
    # ==================

    def groups(self) -> list[Group]:
        return self.tree.list()

    def tree_nodes(self) -> list[TreeNode]:
        return build_tree(self.tree)

    def create_group(self, name: str, parent_id: Optional[str] = None) -> Optional[Group]:
        try:
            return self.tree.create_group(name, parent_id)
        except TrailmarkError as e:
            self._fail(e)
            return None

    def rename_group(self, group_id: str, name: str) -> Optional[Group]:
        try:
            return self.tree.rename_group(group_id, name)
        except TrailmarkError as e:
            self._fail(e)
            return None

    def delete_group(self, group_id: str, policy: DeletePolicy = DeletePolicy.CASCADE) -> Optional[list[str]]:
        try:
            return self.tree.delete_group(group_id, policy)
        except TrailmarkError as e:
            self._fail(e)
            return None

    def move_group(self, group_id: str, new_parent_id: Optional[str]) -> bool:
        try:
            self.tree.move_group(group_id, new_parent_id)
        except TrailmarkError as e:
            self._fail(e)
            return False
        return True

    def toggle_group_visibility(self, group_id: str) -> Optional[bool]:
        try:
            visible = self.tree.toggle_group_visibility(group_id)
        except TrailmarkError as e:
            self._fail(e)
            return None
        self.bridge.sync_visibility()
        return visible

    def drop(self, source_id: str, target_id: str) -> bool:
        """Apply a tree-widget drag-and-drop."""
        try:
            handle_drop(self.tree, source_id, target_id)
        except TrailmarkError as e:
            self._fail(e)
            return False
        return True

    # ==================
    # Save / load
    # ==================

    def save(self) -> bool:
        """Write the feature set to ``config.features_key``."""
        text = dumps(self.store.list(), self.tree.list())
        try:
            self.storage.set(self.config.features_key, text)
        except OSError as e:
            logger.error(f"Failed to save map: {e}")
            self.notify(f"Could not save map: {e}")
            return False
        logger.info(f"Saved {len(self.store)} features in {len(self.tree)} groups")
        self.notify("Map saved!")
        return True

    def load(self) -> bool:
        """Replace the session content with the saved feature set.

        On any format error the current content is left untouched.
        """
        try:
            text = self.storage.get(self.config.features_key)
            if text is None:
                raise PersistenceFormatError("No saved features found.")
            features, groups = deserialize(
                text,
                default_group_name=self.config.default_group_name,
                strict=self.config.strict_load,
            )
        except TrailmarkError as e:
            self._fail(e)
            return False
        self._install(features, groups)
        return True

    def load_legacy(self) -> bool:
        """Import the pre-grouping ``mapData`` array, replacing current content."""
        try:
            text = self.storage.get(self.config.legacy_key)
            if text is None:
                raise PersistenceFormatError("No legacy map data found.")
            features, groups = parse_legacy(text, default_group_name=self.config.default_group_name)
        except TrailmarkError as e:
            self._fail(e)
            return False
        self._install(features, groups)
        return True

    def _install(self, features: list[Feature], groups: list[Group]) -> None:
        self.tree.replace_all(groups)
        self.store.replace_all(features)
        self.bridge.reconstruct()
        logger.info(f"Loaded {len(features)} features in {len(groups)} groups")
