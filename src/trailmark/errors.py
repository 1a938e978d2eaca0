"""Error kinds raised by the annotation core.

Every error is a synchronous outcome: callers either handle it at the
command boundary (MapSession) or, in the bridge, log it and drop the event.
"""

from __future__ import annotations


class TrailmarkError(Exception):
    """Base class for all annotation-core errors."""


class ValidationError(TrailmarkError):
    """Raised when geometry or command input is malformed.

    Nothing is written to the store when this is raised.
    """


class IdentityError(TrailmarkError):
    """Raised for an unbound handle or an unknown feature id."""


class PersistenceFormatError(TrailmarkError):
    """Raised when a stored document is absent, unparseable, or unusable."""


class TreeIntegrityError(TrailmarkError):
    """Raised when a group tree operation would break the tree's invariants."""
