"""Group record for organizing features into a tree."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

DEFAULT_GROUP_ID = "default"
DEFAULT_GROUP_NAME = "Default"


class DeletePolicy(str, Enum):
    """What ``GroupTree.delete_group`` does with a group's contents."""
    CASCADE = "cascade"                        # drop subtree, features go to default
    REJECT_IF_NONEMPTY = "reject_if_nonempty"  # refuse unless subtree is empty


@dataclass(frozen=True)
class Group:
    """A named node in the group tree.

    Attributes:
        id: Stable identifier; features reference groups by id.
        name: Display label, unique across the tree.
        parent_id: Parent group id, or None for a root.
    """

    id: str
    name: str
    parent_id: Optional[str] = None

    @property
    def is_default(self) -> bool:
        return self.id == DEFAULT_GROUP_ID
