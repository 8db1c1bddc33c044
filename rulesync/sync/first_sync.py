"""First synchronization checks for a workspace.

Before the very first sync, the local rule tree and the remote may both
hold rules. The advisor inspects both sides and recommends (or applies)
a strategy instead of blindly merging them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Optional, Union

from ..utils import make_temp_clone_dir
from .comparator import SyncStats
from .scanner import FingerprintMap

if TYPE_CHECKING:
    from .engine import SyncEngine

logger = logging.getLogger(__name__)


class FirstSyncStrategy(str, Enum):
    """How to reconcile a workspace with the remote on the first run."""

    AUTO = "auto"
    LOCAL_FIRST = "local-first"
    REMOTE_FIRST = "remote-first"


class FirstSyncAction(str, Enum):
    """What :meth:`FirstSyncAdvisor.resolve` ended up doing."""

    CREATED_STRUCTURE = "created-structure"
    PUSHED = "pushed"
    PULLED = "pulled"
    NEEDS_DECISION = "needs-decision"


@dataclass(frozen=True)
class FirstSyncInfo:
    """Snapshot of both sides before the first sync."""

    is_first_sync: bool
    has_local_rules: bool
    has_remote_rules: bool
    local_rules_count: int
    remote_rules_count: int
    conflicts: list[str] = field(default_factory=list)

    @property
    def recommended_strategy(self) -> Optional[FirstSyncStrategy]:
        """Strategy that is safe without asking the user, if any."""
        if self.has_local_rules and not self.has_remote_rules:
            return FirstSyncStrategy.LOCAL_FIRST
        if self.has_remote_rules and not self.has_local_rules:
            return FirstSyncStrategy.REMOTE_FIRST
        return None

    def to_dict(self) -> dict:
        return {
            "isFirstSync": self.is_first_sync,
            "hasLocalRules": self.has_local_rules,
            "hasRemoteRules": self.has_remote_rules,
            "localRulesCount": self.local_rules_count,
            "remoteRulesCount": self.remote_rules_count,
            "conflicts": list(self.conflicts),
        }


@dataclass(frozen=True)
class FirstSyncResolution:
    """Outcome of applying a first-sync strategy."""

    action: FirstSyncAction
    info: FirstSyncInfo
    stats: SyncStats = field(default_factory=SyncStats)

    @property
    def conflicts(self) -> list[str]:
        return self.info.conflicts


def find_name_conflicts(
    local_map: FingerprintMap, remote_map: FingerprintMap
) -> list[str]:
    """Return file basenames that exist on both sides.

    Only names are compared, not relative paths or content, so two
    unrelated files sharing a name in different folders are reported.
    """
    local_names = {PurePosixPath(path).name for path in local_map}
    remote_names = {PurePosixPath(path).name for path in remote_map}
    return sorted(local_names & remote_names)


class FirstSyncAdvisor:
    """Classifies the first-sync situation and applies a strategy."""

    def __init__(self, engine: "SyncEngine"):
        """Initialize the advisor.

        Args:
            engine: Engine providing configuration, scanning and push/pull
        """
        self.engine = engine

    def assess(self, workspace_root: Union[str, Path]) -> FirstSyncInfo:
        """Inspect the local rule tree and a scratch clone of the remote.

        Args:
            workspace_root: Workspace directory

        Returns:
            FirstSyncInfo describing both sides
        """
        engine = self.engine
        engine.validate()
        root = Path(workspace_root)
        scanner = engine.make_scanner()

        local_map = scanner.build_fingerprint_map(engine.local_rules_dir(root))
        logger.info(f"Local rules: {len(local_map)} file(s)")

        scratch = make_temp_clone_dir(engine.temp_dir)
        try:
            engine.operations.clone_remote(engine.config.remote_url, scratch)
            remote_rules = scratch / engine.config.rules_path
            remote_map = scanner.build_fingerprint_map(remote_rules)
        finally:
            engine.operations.schedule_cleanup(scratch, engine.config.cleanup_delay)
        logger.info(f"Remote rules: {len(remote_map)} file(s)")

        has_local = bool(local_map)
        has_remote = bool(remote_map)
        conflicts = (
            find_name_conflicts(local_map, remote_map)
            if has_local and has_remote
            else []
        )
        if conflicts:
            logger.warning(f"Rules present on both sides: {', '.join(conflicts)}")

        return FirstSyncInfo(
            is_first_sync=not has_local and not has_remote,
            has_local_rules=has_local,
            has_remote_rules=has_remote,
            local_rules_count=len(local_map),
            remote_rules_count=len(remote_map),
            conflicts=conflicts,
        )

    def resolve(
        self,
        workspace_root: Union[str, Path],
        strategy: Union[FirstSyncStrategy, str] = FirstSyncStrategy.AUTO,
        info: Optional[FirstSyncInfo] = None,
    ) -> FirstSyncResolution:
        """Apply a first-sync strategy.

        Both sides empty: create the local rule directory. ``local-first``:
        push local rules over the remote. ``remote-first``: pull remote rules
        over the local ones. ``auto`` pushes or pulls when only one side has
        rules and otherwise returns the conflicts as a decision point.

        Args:
            workspace_root: Workspace directory
            strategy: Strategy to apply
            info: Result of a previous :meth:`assess` call (re-assessed if None)

        Returns:
            FirstSyncResolution describing what was done
        """
        strategy = FirstSyncStrategy(strategy)
        root = Path(workspace_root)
        info = info or self.assess(root)

        if info.is_first_sync:
            self.engine.local_rules_dir(root).mkdir(parents=True, exist_ok=True)
            logger.info("Both sides are empty, created the rules directory")
            return FirstSyncResolution(FirstSyncAction.CREATED_STRUCTURE, info)

        if strategy == FirstSyncStrategy.AUTO:
            strategy = info.recommended_strategy or strategy

        if strategy == FirstSyncStrategy.LOCAL_FIRST:
            stats = self.engine.push(root)
            return FirstSyncResolution(FirstSyncAction.PUSHED, info, stats)
        if strategy == FirstSyncStrategy.REMOTE_FIRST:
            stats = self.engine.pull(root)
            return FirstSyncResolution(FirstSyncAction.PULLED, info, stats)

        logger.info("Local and remote rules both exist, a decision is required")
        return FirstSyncResolution(FirstSyncAction.NEEDS_DECISION, info)
