"""Group tree: hierarchical organization of features with derived visibility."""

from trailmark.groups.group import DEFAULT_GROUP_ID, DEFAULT_GROUP_NAME, DeletePolicy, Group
from trailmark.groups.tree import GroupTree
from trailmark.groups.view import TreeNode, build_tree, handle_drop

__all__ = [
    "DEFAULT_GROUP_ID",
    "DEFAULT_GROUP_NAME",
    "DeletePolicy",
    "Group",
    "GroupTree",
    "TreeNode",
    "build_tree",
    "handle_drop",
]
