"""Core sync engine orchestrating pull, push and bidirectional sync."""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..config import RulesSyncConfig, ensure_valid
from ..exceptions import FilesystemError, RulesSyncError
from ..git import GitClient, VersionControl
from ..gitignore import IgnoreFileManager
from ..output import OutputFormatter
from ..utils import format_commit_message, make_temp_clone_dir
from .comparator import ChangeSet, FingerprintComparator, SyncStats
from .exclusion import should_exclude
from .first_sync import (
    FirstSyncAdvisor,
    FirstSyncInfo,
    FirstSyncResolution,
    FirstSyncStrategy,
)
from .merge import FrontmatterMergeStrategy
from .operations import SyncOperations
from .retry import RetryingExecutor
from .scanner import (
    SKIPPED_DIR_NAMES,
    ExclusionPredicate,
    FingerprintMap,
    RuleEntry,
    RulesStructure,
    RuleTreeScanner,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class SyncPhase(str, Enum):
    """States traversed by a sync or push call."""

    IDLE = "idle"
    VALIDATING_CONFIG = "validating-config"
    CLONING_REMOTE = "cloning-remote"
    COMPUTING_CHANGE_SET = "computing-change-set"
    APPLYING_CHANGES = "applying-changes"
    COMMITTING = "committing"
    PULLING = "pulling"
    PUSHING = "pushing"
    CLEANING_UP = "cleaning-up"
    DONE = "done"
    ERRORED = "errored"


# Steps reported by SyncOperations.pull_and_push
STEP_PHASES = {"pull": SyncPhase.PULLING, "push": SyncPhase.PUSHING}


class SyncEngine:
    """Synchronizes a workspace rule tree with the shared rules repository.

    Every call clones the remote into a fresh temporary directory, so no
    state is carried between calls. Callers must not run two calls against
    the same workspace at the same time.

    Examples:
        >>> engine = SyncEngine(RulesSyncConfig(remote_url="git@host:rules.git"))
        >>> stats = engine.sync("/work/project")
        >>> stats.describe()
        '+1 added, 2 modified'
    """

    def __init__(
        self,
        config: RulesSyncConfig,
        vcs: Optional[VersionControl] = None,
        output: Optional[OutputFormatter] = None,
        executor: Optional[RetryingExecutor] = None,
        exclude_predicate: Optional[ExclusionPredicate] = None,
        temp_dir: Optional[PathLike] = None,
    ):
        """Initialize sync engine.

        Args:
            config: Read-only sync configuration
            vcs: Version-control client (GitPython based by default)
            output: Output formatter for user-facing messages
            executor: Retrying executor for network-bound calls
            exclude_predicate: Predicate deciding which paths stay local
            temp_dir: Parent directory for temporary clones
        """
        self.config = config
        self.output = output or OutputFormatter(quiet=True)
        self.exclude_predicate = exclude_predicate or should_exclude
        self.temp_dir = Path(temp_dir) if temp_dir is not None else None
        self.operations = SyncOperations(
            vcs or GitClient(),
            executor=executor,
            retry_config=config.retry,
        )
        self.ignore_manager = IgnoreFileManager(config.rules_path)
        self.advisor = FirstSyncAdvisor(self)
        self.last_phases: list[SyncPhase] = [SyncPhase.IDLE]

    # =========================
    # Building blocks
    # =========================

    def validate(self) -> None:
        """Fail fast on an unusable configuration.

        Raises:
            ConfigurationError: Listing every problem found
        """
        ensure_valid(self.config)

    def make_scanner(self) -> RuleTreeScanner:
        return RuleTreeScanner(self.config.exclude_patterns, self.exclude_predicate)

    def make_merge_strategy(self) -> FrontmatterMergeStrategy:
        return FrontmatterMergeStrategy(
            self.config.exclude_patterns, self.exclude_predicate
        )

    def local_rules_dir(self, workspace_root: PathLike) -> Path:
        return Path(workspace_root) / self.config.rules_path

    def get_rules_structure(self, workspace_root: PathLike) -> RulesStructure:
        """Classify the workspace's rules into local and global ones."""
        return self.make_scanner().scan(self.local_rules_dir(workspace_root))

    def get_syncable_rules(self, workspace_root: PathLike) -> list[RuleEntry]:
        return self.get_rules_structure(workspace_root).global_rules

    def wait_for_cleanup(self, timeout: Optional[float] = None) -> None:
        """Wait for scheduled temporary-clone removals to finish."""
        self.operations.wait_for_cleanup(timeout)

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug(f"Sync phase: {phase.value}")
        self.last_phases.append(phase)

    def _cleanup(self, clone_dir: Path) -> None:
        self._enter(SyncPhase.CLEANING_UP)
        self.operations.schedule_cleanup(clone_dir, self.config.cleanup_delay)

    def _prepare_workspace(self, workspace_root: Path) -> None:
        if self.config.manage_gitignore:
            self.ignore_manager.ensure_gitignore(
                workspace_root, self.config.exclude_patterns
            )

    def _workspace_label(self, workspace_root: Path) -> str:
        return self.config.workspace_label or workspace_root.resolve().name

    # =========================
    # Public operations
    # =========================

    def sync(self, workspace_root: PathLike) -> SyncStats:
        """Bidirectional sync: publish local rule changes to the remote.

        Remote files keep their metadata block when their body is updated.

        Args:
            workspace_root: Workspace directory

        Returns:
            SyncStats with executed additions, modifications and deletions
        """
        return self._publish(Path(workspace_root), retry_push=False)

    def push(self, workspace_root: PathLike) -> SyncStats:
        """Push local rules to the remote, retrying clone, pull and push.

        Args:
            workspace_root: Workspace directory

        Returns:
            SyncStats with executed additions, modifications and deletions
        """
        return self._publish(Path(workspace_root), retry_push=True)

    def pull(self, workspace_root: PathLike) -> SyncStats:
        """Replace local syncable rules with the remote's canonical copies.

        Files are overwritten byte for byte, excluded rules are left alone
        and local files missing from the remote are kept.

        Args:
            workspace_root: Workspace directory

        Returns:
            SyncStats counting files new to (added) or changed in (modified)
            the local tree
        """
        root = Path(workspace_root)
        self.last_phases = [SyncPhase.IDLE]
        clone_dir: Optional[Path] = None
        try:
            self._enter(SyncPhase.VALIDATING_CONFIG)
            self.validate()
            self._prepare_workspace(root)

            self._enter(SyncPhase.CLONING_REMOTE)
            clone_dir = make_temp_clone_dir(self.temp_dir)
            self.operations.clone_remote(self.config.remote_url, clone_dir)
            remote_rules = clone_dir / self.config.rules_path
            local_rules = self.local_rules_dir(root)

            self._enter(SyncPhase.COMPUTING_CHANGE_SET)
            scanner = self.make_scanner()
            local_map = scanner.build_fingerprint_map(local_rules)
            remote_map = scanner.build_fingerprint_map(remote_rules)
            added = len([p for p in remote_map if p not in local_map])
            modified = len(
                [
                    p
                    for p in remote_map
                    if p in local_map and local_map[p] != remote_map[p]
                ]
            )

            self._enter(SyncPhase.APPLYING_CHANGES)
            if remote_rules.is_dir():
                self._copy_remote_tree(remote_rules, local_rules)
            else:
                logger.info("Remote has no rules directory, nothing to pull")

            stats = SyncStats(added=added, modified=modified, deleted=0)
            self._cleanup(clone_dir)
            clone_dir = None
            self._enter(SyncPhase.DONE)
            logger.info(f"Pull finished: {stats.describe()}")
            return stats
        except Exception as e:
            self._enter(SyncPhase.ERRORED)
            logger.error(f"Pull failed: {e}")
            raise
        finally:
            if clone_dir is not None:
                self._cleanup(clone_dir)

    def assess_first_sync(self, workspace_root: PathLike) -> FirstSyncInfo:
        """Inspect both sides before the first sync of a workspace."""
        return self.advisor.assess(workspace_root)

    def safe_first_sync(
        self,
        workspace_root: PathLike,
        strategy: Union[FirstSyncStrategy, str] = FirstSyncStrategy.AUTO,
    ) -> FirstSyncResolution:
        """Assess the first sync and apply ``strategy``."""
        return self.advisor.resolve(workspace_root, strategy)

    def status_report(self, workspace_root: PathLike) -> str:
        """Describe local, global and syncable rules of a workspace."""
        structure = self.get_rules_structure(workspace_root)
        syncable = structure.global_rules

        lines = ["=== Rules status ===", ""]
        lines.append(f"Local rules ({len(structure.local_rules)}):")
        lines.extend(f"  - {rule.name} (excluded)" for rule in structure.local_rules)
        lines.append("")
        lines.append(f"Global rules ({len(structure.global_rules)}):")
        lines.extend(f"  - {rule.name}" for rule in structure.global_rules)
        lines.append("")
        lines.append(f"Rules to sync ({len(syncable)}):")
        lines.extend(
            f"  - {rule.name} ({len(rule.files)} file(s))" for rule in syncable
        )
        return "\n".join(lines) + "\n"

    # =========================
    # Internals
    # =========================

    def _publish(self, root: Path, retry_push: bool) -> SyncStats:
        label = "Push" if retry_push else "Sync"
        self.last_phases = [SyncPhase.IDLE]
        clone_dir: Optional[Path] = None
        try:
            self._enter(SyncPhase.VALIDATING_CONFIG)
            self.validate()
            self._prepare_workspace(root)
            logger.info(
                "Syncable rules: %s",
                [rule.name for rule in self.get_syncable_rules(root)],
            )

            self._enter(SyncPhase.CLONING_REMOTE)
            clone_dir = make_temp_clone_dir(self.temp_dir)
            self.operations.clone_remote(self.config.remote_url, clone_dir)
            remote_rules = clone_dir / self.config.rules_path
            remote_rules.mkdir(parents=True, exist_ok=True)

            self._enter(SyncPhase.COMPUTING_CHANGE_SET)
            scanner = self.make_scanner()
            local_map = scanner.build_fingerprint_map(self.local_rules_dir(root))
            remote_map = scanner.build_fingerprint_map(remote_rules)
            change_set = FingerprintComparator().compare(local_map, remote_map)
            logger.info(
                f"Change set: {change_set.added} added, "
                f"{change_set.modified} modified, "
                f"{change_set.deleted} deletion candidate(s)"
            )

            self._enter(SyncPhase.APPLYING_CHANGES)
            deleted = self._apply_deletions(change_set, local_map, remote_rules)
            self._apply_copies(change_set, self.local_rules_dir(root), remote_rules)
            stats = SyncStats(
                added=change_set.added,
                modified=change_set.modified,
                deleted=deleted,
            )

            self._enter(SyncPhase.COMMITTING)
            message = format_commit_message(self._workspace_label(root))
            if self.operations.commit_all(clone_dir, message):
                self.operations.pull_and_push(
                    retry=retry_push,
                    on_step=lambda step: self._enter(STEP_PHASES[step]),
                )

            self._cleanup(clone_dir)
            clone_dir = None
            self._enter(SyncPhase.DONE)
            logger.info(f"{label} finished: {stats.describe()}")
            return stats
        except RulesSyncError as e:
            self._enter(SyncPhase.ERRORED)
            logger.error(f"{label} failed: {e.label}: {e}")
            raise
        except Exception as e:
            self._enter(SyncPhase.ERRORED)
            logger.error(f"{label} failed: {e}", exc_info=True)
            raise
        finally:
            if clone_dir is not None:
                self._cleanup(clone_dir)

    def _apply_deletions(
        self, change_set: ChangeSet, local_map: FingerprintMap, remote_rules: Path
    ) -> int:
        """Delete remote files removed locally, unless the local tree is empty.

        An empty local map means the rule directory is missing or not yet
        materialized; deleting would wipe the shared remote tree.

        Returns:
            Number of files actually deleted
        """
        if not change_set.to_delete:
            return 0

        if not local_map:
            logger.warning(
                "Local rules directory is empty or has no syncable files; "
                f"skipping {len(change_set.to_delete)} remote deletion(s)"
            )
            for relative_path in change_set.to_delete:
                logger.warning(f"Skipping deletion of remote file: {relative_path}")
            if not self.output.quiet:
                self.output.warning(
                    "No local rules found, remote deletions were skipped to "
                    "protect the shared repository"
                )
            return 0

        deleted = 0
        for relative_path in change_set.to_delete:
            target = remote_rules / relative_path
            try:
                target.unlink()
                deleted += 1
                logger.debug(f"Deleted remote file: {relative_path}")
            except FileNotFoundError:
                logger.debug(f"Already gone: {relative_path}")
            except OSError as e:
                raise FilesystemError(
                    f"Could not delete {relative_path} from the clone: {e}"
                ) from e
            self._prune_empty_dirs(target.parent, remote_rules)
        return deleted

    @staticmethod
    def _prune_empty_dirs(directory: Path, stop_at: Path) -> None:
        while directory != stop_at and stop_at in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    def _apply_copies(
        self, change_set: ChangeSet, local_rules: Path, remote_rules: Path
    ) -> None:
        """Write new and modified files into the clone.

        A single failure aborts the whole operation; nothing is committed.
        """
        merge = self.make_merge_strategy()
        for relative_path in change_set.to_copy:
            source = local_rules / relative_path
            destination = remote_rules / relative_path
            try:
                merge.write_merged(source, destination, relative_path)
            except FilesystemError:
                raise
            except OSError as e:
                raise FilesystemError(f"Could not copy {relative_path}: {e}") from e

    def _copy_remote_tree(self, remote_rules: Path, local_rules: Path) -> None:
        merge = self.make_merge_strategy()
        scanner = self.make_scanner()
        local_rules.mkdir(parents=True, exist_ok=True)
        for item in sorted(remote_rules.iterdir(), key=lambda p: p.name):
            if item.name in SKIPPED_DIR_NAMES:
                continue
            relative_path = item.name + ("/" if item.is_dir() else "")
            if scanner.is_excluded(relative_path):
                logger.info(f"Skipping excluded rule on pull: {item.name}")
                continue
            try:
                if item.is_dir():
                    merge.copy_directory(item, local_rules / item.name)
                else:
                    merge.copy_file(item, local_rules / item.name)
            except FilesystemError:
                raise
            except OSError as e:
                raise FilesystemError(f"Could not copy {item.name}: {e}") from e
