"""
Error kinds and the exception hierarchy of the reconciliation engine.

Every exception carries an ``ErrorKind`` so reports and the CLI can
classify failures without isinstance chains:

    InvalidManifest     — fatal, raised before any backend call
    ObservationFailure  — per resource, downgraded to an unknown state
    BackendError        — per action, turned into a failed result
    LinkConflict        — a non-symlink occupies a link target
    CyclicDependency    — the kind dependency graph has a cycle
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of engine errors."""

    INVALID_MANIFEST = "InvalidManifest"
    OBSERVATION_FAILURE = "ObservationFailure"
    BACKEND_ERROR = "BackendError"
    LINK_CONFLICT = "LinkConflict"
    CYCLIC_DEPENDENCY = "CyclicDependency"


class ArchmanError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.BACKEND_ERROR


class InvalidManifestError(ArchmanError):
    """Raised when the desired-state model fails validation.

    Collects every problem found so the user can fix them in one pass.
    """

    kind = ErrorKind.INVALID_MANIFEST

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid manifest: " + "; ".join(self.errors))


class ObservationError(ArchmanError):
    """Raised by a backend query that could not determine current state."""

    kind = ErrorKind.OBSERVATION_FAILURE


class BackendError(ArchmanError):
    """Raised by a backend when a mutating call fails."""

    kind = ErrorKind.BACKEND_ERROR


class LinkConflictError(BackendError):
    """A non-symlink occupies the target path of a managed link."""

    kind = ErrorKind.LINK_CONFLICT

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"{path} already exists and is not a symlink; "
            "move it away to let archman manage it"
        )


class CyclicDependencyError(ArchmanError):
    """The resource kind dependency graph cannot be ordered."""

    kind = ErrorKind.CYCLIC_DEPENDENCY

    def __init__(self, remaining: list[str]):
        self.remaining = remaining
        super().__init__(f"Cyclic dependency between kinds: {', '.join(remaining)}")
