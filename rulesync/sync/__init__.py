"""Sync engine for rulesync - pull, push and bidirectional rule sync."""

from .comparator import (
    ChangeKind,
    ChangeSet,
    FileChange,
    FingerprintComparator,
    SyncStats,
    compute_change_set,
)
from .engine import SyncEngine, SyncPhase
from .exclusion import (
    rule_name_for,
    should_exclude,
    should_exclude_from_main_project,
)
from .first_sync import (
    FirstSyncAction,
    FirstSyncAdvisor,
    FirstSyncInfo,
    FirstSyncResolution,
    FirstSyncStrategy,
    find_name_conflicts,
)
from .merge import FrontmatterMergeStrategy, split_frontmatter
from .operations import SyncOperations
from .retry import (
    ERROR_PATTERNS,
    ErrorKind,
    RetryingExecutor,
    classify_error,
    classify_operation_failure,
    classify_push_failure,
    is_retryable,
)
from .scanner import FingerprintMap, RuleEntry, RulesStructure, RuleTreeScanner

__all__ = [
    "SyncEngine",
    "SyncPhase",
    "SyncOperations",
    "RuleTreeScanner",
    "RuleEntry",
    "RulesStructure",
    "FingerprintMap",
    "FingerprintComparator",
    "ChangeKind",
    "ChangeSet",
    "FileChange",
    "SyncStats",
    "compute_change_set",
    "FrontmatterMergeStrategy",
    "split_frontmatter",
    "RetryingExecutor",
    "ErrorKind",
    "ERROR_PATTERNS",
    "classify_error",
    "classify_operation_failure",
    "classify_push_failure",
    "is_retryable",
    "FirstSyncAdvisor",
    "FirstSyncAction",
    "FirstSyncInfo",
    "FirstSyncResolution",
    "FirstSyncStrategy",
    "find_name_conflicts",
    "rule_name_for",
    "should_exclude",
    "should_exclude_from_main_project",
]
