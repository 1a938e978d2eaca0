"""GroupTree — hierarchical grouping of features.

Owns the Group records and the parent/child relation. Feature membership
lives on the features themselves (``Feature.group_id``), so the tree works
against the injected FeatureStore for moves, cascades and visibility.

Every operation validates first and mutates second: a rejected call
leaves both the tree and the store untouched.

Group visibility is derived, never stored: a group is visible when every
feature in its subtree is visible.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

from loguru import logger

from trailmark.errors import IdentityError, TreeIntegrityError, ValidationError
from trailmark.features.feature import Feature
from trailmark.features.store import FeatureStore
from trailmark.groups.group import (
    DEFAULT_GROUP_ID,
    DEFAULT_GROUP_NAME,
    DeletePolicy,
    Group,
)


def _clean_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Group name must not be empty")
    return name.strip()


class GroupTree:
    """Manages the group tree for one FeatureStore."""

    def __init__(self, store: FeatureStore, default_group_name: str = DEFAULT_GROUP_NAME) -> None:
        self.store = store
        self.default_group_name = default_group_name
        self._groups: dict[str, Group] = {}
        self.reset()

    def reset(self) -> None:
        """Drop every group except a fresh default group."""
        self._groups = {
            DEFAULT_GROUP_ID: Group(DEFAULT_GROUP_ID, self.default_group_name, None)
        }

    # ==================
    # Queries
    # ==================

    @property
    def default_group(self) -> Group:
        return self._groups[DEFAULT_GROUP_ID]

    def get(self, group_id: str) -> Optional[Group]:
        return self._groups.get(group_id)

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._groups

    def __len__(self) -> int:
        return len(self._groups)

    def list(self) -> list[Group]:
        """Snapshot of all groups, default first, then creation order."""
        return list(self._groups.values())

    def find_by_name(self, name: str) -> Optional[Group]:
        for group in self._groups.values():
            if group.name == name:
                return group
        return None

    def children(self, group_id: Optional[str]) -> list[Group]:
        """Direct child groups; ``None`` lists the roots."""
        return [g for g in self._groups.values() if g.parent_id == group_id]

    def descendants(self, group_id: str) -> list[str]:
        """Ids of every group below ``group_id``, depth first."""
        result: list[str] = []
        stack = [g.id for g in reversed(self.children(group_id))]
        while stack:
            gid = stack.pop()
            result.append(gid)
            stack.extend(g.id for g in reversed(self.children(gid)))
        return result

    def ancestors(self, group_id: str) -> list[str]:
        """Ids from the parent of ``group_id`` up to its root."""
        result: list[str] = []
        current = self._groups.get(group_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in result:
                break
            result.append(current.parent_id)
            current = self._groups.get(current.parent_id)
        return result

    def members(self, group_id: str, recursive: bool = True) -> list[Feature]:
        """Features in ``group_id`` and, if ``recursive``, its subtree."""
        self._require(group_id)
        scope = [group_id]
        if recursive:
            scope.extend(self.descendants(group_id))
        return self.store.in_group(scope)

    def feature_count(self, group_id: str, recursive: bool = False) -> int:
        return len(self.members(group_id, recursive=recursive))

    def _require(self, group_id: str) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise TreeIntegrityError(f"Group not found: {group_id}")
        return group

    def _check_name_free(self, name: str, exclude: Optional[str] = None) -> None:
        clash = self.find_by_name(name)
        if clash is not None and clash.id != exclude:
            raise TreeIntegrityError(f"A group named '{name}' already exists")

    def _new_group_id(self) -> str:
        while True:
            group_id = f"group_{uuid.uuid4().hex[:8]}"
            if group_id not in self._groups:
                return group_id

    # ==================
    # Group CRUD
    # ==================

    def create_group(self, name: str, parent_id: Optional[str] = None) -> Group:
        """Create a group.

        Args:
            name: Display name, unique across the tree.
            parent_id: Parent group, or None for a root group.

        Raises:
            ValidationError: If the name is blank.
            TreeIntegrityError: If the name is taken or the parent is unknown.
        """
        name = _clean_name(name)
        self._check_name_free(name)
        if parent_id is not None:
            self._require(parent_id)

        group = Group(self._new_group_id(), name, parent_id)
        self._groups[group.id] = group
        logger.info(f"Created group '{name}' ({group.id})")
        return group

    def ensure_group(self, name: str, parent_id: Optional[str] = None) -> Group:
        """Return the group called ``name``, creating it on first reference."""
        name = _clean_name(name)
        existing = self.find_by_name(name)
        if existing is not None:
            return existing
        return self.create_group(name, parent_id)

    def rename_group(self, group_id: str, name: str) -> Group:
        """Rename a group.

        Features reference groups by id, so memberships stay valid and the
        persisted ``layerGroup`` label follows the new name on next save.

        Raises:
            TreeIntegrityError: For the default group, unknown ids, or a
                name already used by another group.
        """
        group = self._require(group_id)
        if group.is_default:
            raise TreeIntegrityError("The default group cannot be renamed")
        name = _clean_name(name)
        self._check_name_free(name, exclude=group_id)

        renamed = Group(group.id, name, group.parent_id)
        self._groups[group_id] = renamed
        logger.info(f"Renamed group '{group.name}' to '{name}'")
        return renamed

    def delete_group(self, group_id: str, policy: DeletePolicy = DeletePolicy.CASCADE) -> list[str]:
        """Delete a group and its subtree.

        Args:
            group_id: Group to delete.
            policy: CASCADE drops descendant groups and moves their features
                to the default group. REJECT_IF_NONEMPTY refuses if the group
                has any child group or feature.

        Returns:
            Ids of the deleted groups.

        Raises:
            TreeIntegrityError: For the default group, unknown ids, or a
                non-empty group under REJECT_IF_NONEMPTY.
        """
        group = self._require(group_id)
        if group.is_default:
            raise TreeIntegrityError("The default group cannot be deleted")

        subtree = [group_id, *self.descendants(group_id)]
        orphans = self.store.in_group(subtree)

        if DeletePolicy(policy) is DeletePolicy.REJECT_IF_NONEMPTY and (
            len(subtree) > 1 or orphans
        ):
            raise TreeIntegrityError(
                f"Group '{group.name}' is not empty "
                f"({len(subtree) - 1} groups, {len(orphans)} features)"
            )

        for feature in orphans:
            self.store.set_group(feature.id, DEFAULT_GROUP_ID)
        for gid in subtree:
            del self._groups[gid]

        logger.info(
            f"Deleted group '{group.name}' with {len(subtree) - 1} subgroups, "
            f"moved {len(orphans)} features to default"
        )
        return subtree

    # ==================
    # Moves
    # ==================

    def move_feature(self, feature_id: str, group_id: str) -> Feature:
        """Reassign a feature to another group.

        Raises:
            IdentityError: If the feature does not exist.
            TreeIntegrityError: If the group does not exist.
        """
        self._require(group_id)
        if feature_id not in self.store:
            raise IdentityError(f"Feature not found: {feature_id}")
        feature = self.store.set_group(feature_id, group_id)
        logger.debug(f"Moved feature {feature_id} to group {group_id}")
        return feature

    def move_group(self, group_id: str, new_parent_id: Optional[str]) -> Group:
        """Reparent a group; ``None`` makes it a root.

        Raises:
            TreeIntegrityError: For the default group, unknown ids, or a move
                that would make the group its own ancestor.
        """
        group = self._require(group_id)
        if group.is_default:
            raise TreeIntegrityError("The default group cannot be moved")
        if new_parent_id is not None:
            self._require(new_parent_id)
            if new_parent_id == group_id or group_id in self.ancestors(new_parent_id):
                raise TreeIntegrityError(
                    f"Moving '{group.name}' under {new_parent_id} would create a cycle"
                )

        moved = Group(group.id, group.name, new_parent_id)
        self._groups[group_id] = moved
        logger.debug(f"Moved group {group_id} under {new_parent_id}")
        return moved

    # ==================
    # Visibility
    # ==================

    def is_group_visible(self, group_id: str) -> bool:
        """True if every feature in the group's subtree is visible.

        Empty groups count as visible.
        """
        return all(f.visible for f in self.members(group_id))

    def set_group_visible(self, group_id: str, visible: bool) -> int:
        """Set ``visible`` on every feature in the subtree.

        Returns:
            Number of features whose flag changed.
        """
        changed = 0
        for feature in self.members(group_id):
            if feature.visible != visible:
                self.store.set_visible(feature.id, visible)
                changed += 1
        return changed

    def toggle_group_visibility(self, group_id: str) -> bool:
        """Flip the group checkbox. Returns the new state."""
        visible = not self.is_group_visible(group_id)
        self.set_group_visible(group_id, visible)
        return visible

    # ==================
    # Bulk
    # ==================

    def replace_all(self, groups: Iterable[Group]) -> None:
        """Swap the whole tree for ``groups``.

        A default group is kept if ``groups`` lacks one. Groups whose parent
        is missing, or whose parent chain loops, become roots.

        Raises:
            TreeIntegrityError: On a duplicate group id or name. The tree is
                left unchanged.
        """
        incoming: dict[str, Group] = {}
        for group in groups:
            if group.id in incoming:
                raise TreeIntegrityError(f"Duplicate group id: {group.id}")
            incoming[group.id] = group

        default = incoming.pop(DEFAULT_GROUP_ID, None) or self.default_group
        rebuilt: dict[str, Group] = {DEFAULT_GROUP_ID: Group(DEFAULT_GROUP_ID, default.name, None)}
        rebuilt.update(incoming)

        names: set[str] = set()
        for group in rebuilt.values():
            if group.name in names:
                raise TreeIntegrityError(f"A group named '{group.name}' already exists")
            names.add(group.name)

        for gid in list(rebuilt):
            seen = {gid}
            current = rebuilt[gid]
            while current.parent_id is not None:
                parent = current.parent_id
                if parent not in rebuilt or parent in seen:
                    logger.warning(f"Group '{current.name}' has a broken parent link, moving to root")
                    rebuilt[current.id] = Group(current.id, current.name, None)
                    break
                seen.add(parent)
                current = rebuilt[parent]

        self._groups = rebuilt
