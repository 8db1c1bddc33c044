"""rulesync - keep a local tree of rule documents in sync with a git mirror."""

from .config import RetryConfig, RulesSyncConfig, load_config, validate_config
from .exceptions import (
    ConfigurationError,
    DivergedHistoryError,
    FilesystemError,
    PermanentOperationError,
    RulesSyncError,
    TransientNetworkError,
)
from .git import GitClient, VersionControl
from .sync import FirstSyncInfo, SyncEngine, SyncStats
from .utils import calculate_file_hash

__version__ = "0.1.0"

__all__ = [
    "SyncEngine",
    "SyncStats",
    "FirstSyncInfo",
    "GitClient",
    "VersionControl",
    "RetryConfig",
    "RulesSyncConfig",
    "load_config",
    "validate_config",
    "RulesSyncError",
    "ConfigurationError",
    "TransientNetworkError",
    "DivergedHistoryError",
    "PermanentOperationError",
    "FilesystemError",
    "calculate_file_hash",
]
