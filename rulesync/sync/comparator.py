"""Fingerprint comparison logic for sync operations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .scanner import FingerprintMap


class ChangeKind(str, Enum):
    """Classification of a path when comparing two fingerprint maps."""

    ADDED = "added"
    """Present locally only"""

    MODIFIED = "modified"
    """Present on both sides with different digests"""

    DELETED = "deleted"
    """Present remotely only (a deletion candidate)"""


@dataclass
class FileChange:
    """Represents the classification of a single path."""

    kind: ChangeKind
    relative_path: str
    reason: str
    local_digest: Optional[str] = None
    remote_digest: Optional[str] = None


@dataclass
class ChangeSet:
    """Result of comparing a local and a remote fingerprint map.

    ``to_delete`` holds deletion candidates only; whether they are executed
    is decided by the caller (see the deletion protection in the engine).
    """

    to_copy: list[str] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    added: int = 0
    modified: int = 0
    deleted: int = 0
    changes: list[FileChange] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.added + self.modified + self.deleted

    @property
    def is_empty(self) -> bool:
        return self.total == 0


@dataclass(frozen=True)
class SyncStats:
    """Read-only summary returned by every sync operation."""

    added: int = 0
    modified: int = 0
    deleted: int = 0

    @property
    def total(self) -> int:
        return self.added + self.modified + self.deleted

    def to_dict(self) -> dict:
        """Convert stats to a dictionary for JSON output."""
        return {
            "added": self.added,
            "modified": self.modified,
            "deleted": self.deleted,
            "total": self.total,
        }

    def describe(self) -> str:
        """Short human-readable summary such as ``+2 added, 1 modified``."""
        if self.total == 0:
            return "No changes"
        parts = []
        if self.added:
            parts.append(f"+{self.added} added")
        if self.modified:
            parts.append(f"{self.modified} modified")
        if self.deleted:
            parts.append(f"-{self.deleted} deleted")
        return ", ".join(parts)


class FingerprintComparator:
    """Derives added/modified/deleted sets from two fingerprint maps."""

    def compare(
        self, local_map: FingerprintMap, remote_map: FingerprintMap
    ) -> ChangeSet:
        """Compare a local map against the remote clone's map.

        Args:
            local_map: Fingerprints of the local rule tree
            remote_map: Fingerprints of the cloned remote rule tree

        Returns:
            ChangeSet; a path with equal digests on both sides appears in
            neither ``to_copy`` nor ``to_delete``
        """
        change_set = ChangeSet()

        for path in sorted(local_map):
            local_digest = local_map[path]
            if path not in remote_map:
                change_set.added += 1
                change_set.to_copy.append(path)
                change_set.changes.append(
                    FileChange(
                        kind=ChangeKind.ADDED,
                        relative_path=path,
                        reason="New local file",
                        local_digest=local_digest,
                    )
                )
            elif local_digest != remote_map[path]:
                change_set.modified += 1
                change_set.to_copy.append(path)
                change_set.changes.append(
                    FileChange(
                        kind=ChangeKind.MODIFIED,
                        relative_path=path,
                        reason="Content differs",
                        local_digest=local_digest,
                        remote_digest=remote_map[path],
                    )
                )

        for path in sorted(remote_map):
            if path not in local_map:
                change_set.deleted += 1
                change_set.to_delete.append(path)
                change_set.changes.append(
                    FileChange(
                        kind=ChangeKind.DELETED,
                        relative_path=path,
                        reason="File deleted locally",
                        remote_digest=remote_map[path],
                    )
                )

        return change_set


def compute_change_set(
    local_map: FingerprintMap, remote_map: FingerprintMap
) -> ChangeSet:
    """Convenience wrapper around :class:`FingerprintComparator`."""
    return FingerprintComparator().compare(local_map, remote_map)
