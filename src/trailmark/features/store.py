"""FeatureStore — canonical in-memory table of drawn features.

Owns every Feature record. Mutations swap whole immutable records, so a
list returned by ``list()`` is a snapshot that later calls never touch.
"""

from __future__ import annotations

import dataclasses
import uuid
from typing import Iterable, Optional

from loguru import logger

from trailmark.features.feature import Feature

_MUTABLE_FIELDS = frozenset(
    f.name for f in dataclasses.fields(Feature) if f.name != "id"
)


class FeatureStore:
    """Registry of features keyed by id, kept in insertion order."""

    def __init__(self) -> None:
        self._features: dict[str, Feature] = {}
        self._retired: set[str] = set()

    def __len__(self) -> int:
        return len(self._features)

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._features

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def new_id(self) -> str:
        """Return an id that is neither live nor previously deleted."""
        while True:
            feature_id = f"feat_{uuid.uuid4().hex}"
            if feature_id not in self._features and feature_id not in self._retired:
                return feature_id

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add(self, feature: Feature) -> str:
        """Insert a feature.

        Args:
            feature: The record to insert.

        Returns:
            The feature id.

        Raises:
            ValueError: If a feature with the same id is already stored.
        """
        if feature.id in self._features:
            raise ValueError(f"Feature already exists: {feature.id}")
        self._features[feature.id] = feature
        logger.debug(f"Added {feature.kind.value} feature {feature.id}")
        return feature.id

    def get(self, feature_id: str) -> Optional[Feature]:
        """Get a feature by id, or None."""
        return self._features.get(feature_id)

    def update(self, feature_id: str, **changes) -> Optional[Feature]:
        """Shallow-merge ``changes`` into a feature.

        Absent ids are a no-op so callers can treat stale ids as recoverable.

        Returns:
            The new record, or None if the id was not found.

        Raises:
            ValueError: If a change names an unknown field or the id itself.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update feature fields: {sorted(unknown)}")

        current = self._features.get(feature_id)
        if current is None:
            return None

        updated = dataclasses.replace(current, **changes)
        self._features[feature_id] = updated
        return updated

    def remove(self, feature_id: str) -> bool:
        """Delete a feature. Returns False if it did not exist."""
        if feature_id not in self._features:
            return False
        del self._features[feature_id]
        self._retired.add(feature_id)
        logger.debug(f"Removed feature {feature_id}")
        return True

    def set_group(self, feature_id: str, group_id: str) -> Optional[Feature]:
        return self.update(feature_id, group_id=group_id)

    def set_visible(self, feature_id: str, visible: bool) -> Optional[Feature]:
        return self.update(feature_id, visible=bool(visible))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self) -> list[Feature]:
        """Snapshot of all features in insertion order."""
        return list(self._features.values())

    def ids(self) -> list[str]:
        return list(self._features)

    def in_group(self, group_ids: Iterable[str]) -> list[Feature]:
        """Features whose group is one of ``group_ids``."""
        wanted = set(group_ids)
        return [f for f in self._features.values() if f.group_id in wanted]

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def clear(self) -> None:
        self._retired.update(self._features)
        self._features = {}

    def replace_all(self, features: Iterable[Feature]) -> None:
        """Swap the whole content for ``features`` in one step.

        Raises:
            ValueError: If ``features`` contains duplicate ids. The store is
                left unchanged in that case.
        """
        incoming: dict[str, Feature] = {}
        for feature in features:
            if feature.id in incoming:
                raise ValueError(f"Duplicate feature id: {feature.id}")
            incoming[feature.id] = feature
        self._retired.update(fid for fid in self._features if fid not in incoming)
        self._retired.difference_update(incoming)
        self._features = incoming
