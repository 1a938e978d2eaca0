"""Flat node list for a drag-and-drop tree widget, and drop dispatch.

The widget works on nodes of the form ``{id, parent, droppable, text}``.
Group nodes are droppable, feature nodes are not. A drop is turned into
an explicit, validated GroupTree command before anything changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from trailmark.errors import TreeIntegrityError
from trailmark.groups.tree import GroupTree

ROOT_NODE_ID = "root"
GROUP_PREFIX = "group:"
FEATURE_PREFIX = "feature:"


@dataclass(frozen=True)
class TreeNode:
    """One row of the tree widget.

    Attributes:
        id: ``group:<id>``, ``feature:<id>`` or ``root``.
        parent: Parent node id; None only for the root.
        droppable: Whether other nodes may be dropped onto this one.
        text: Display label.
        checked: Group checkbox state (derived visibility) or feature visibility.
    """

    id: str
    parent: Optional[str]
    droppable: bool
    text: str
    checked: bool = True

    @property
    def is_group(self) -> bool:
        return self.id.startswith(GROUP_PREFIX)

    @property
    def ref(self) -> str:
        """The group or feature id behind this node."""
        return self.id.split(":", 1)[1] if ":" in self.id else self.id


def group_node_id(group_id: str) -> str:
    return f"{GROUP_PREFIX}{group_id}"


def feature_node_id(feature_id: str) -> str:
    return f"{FEATURE_PREFIX}{feature_id}"


def feature_label(feature) -> str:
    """``"<name> (<kind> <last five id chars>)"``, as shown in the widget."""
    return f"{feature.name} ({feature.kind.value} {feature.id[-5:]})"


def build_tree(tree: GroupTree) -> list[TreeNode]:
    """Snapshot the group tree and its features as widget nodes.

    Groups come first (parents before children), then features.
    """
    nodes = [TreeNode(ROOT_NODE_ID, None, True, "root")]

    stack = list(reversed(tree.children(None)))
    while stack:
        group = stack.pop()
        parent = group_node_id(group.parent_id) if group.parent_id else ROOT_NODE_ID
        nodes.append(
            TreeNode(
                id=group_node_id(group.id),
                parent=parent,
                droppable=True,
                text=group.name,
                checked=tree.is_group_visible(group.id),
            )
        )
        stack.extend(reversed(tree.children(group.id)))

    for feature in tree.store.list():
        nodes.append(
            TreeNode(
                id=feature_node_id(feature.id),
                parent=group_node_id(feature.group_id),
                droppable=False,
                text=feature_label(feature),
                checked=feature.visible,
            )
        )
    return nodes


def handle_drop(tree: GroupTree, source_id: str, target_id: str) -> None:
    """Apply a widget drop of ``source_id`` onto ``target_id``.

    Feature onto group moves the feature; group onto group (or onto the
    root) reparents the group. Anything else is rejected.

    Raises:
        TreeIntegrityError: For non-droppable targets, unknown node ids, or
            moves the tree refuses.
        IdentityError: If the dragged feature no longer exists.
    """
    if target_id == ROOT_NODE_ID:
        target_group = None
    elif target_id.startswith(GROUP_PREFIX):
        target_group = target_id[len(GROUP_PREFIX):]
    else:
        raise TreeIntegrityError(f"Cannot drop onto {target_id}: not a group")

    if source_id.startswith(FEATURE_PREFIX):
        if target_group is None:
            raise TreeIntegrityError("Features must be dropped onto a group")
        tree.move_feature(source_id[len(FEATURE_PREFIX):], target_group)
    elif source_id.startswith(GROUP_PREFIX):
        tree.move_group(source_id[len(GROUP_PREFIX):], target_group)
    else:
        raise TreeIntegrityError(f"Unknown tree node: {source_id}")
