"""Configuration management for rulesync."""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".rulesync.json"

DEFAULT_RULES_PATH = ".cursor/rules"
DEFAULT_EXCLUDE_PATTERNS = ["my-project"]


def get_user_config_path() -> Path:
    """Return the per-user configuration file path."""
    return Path.home() / ".config" / "rulesync" / "config.json"


@dataclass(frozen=True)
class RetryConfig:
    """Backoff settings for network-bound operations.

    Delays are expressed in milliseconds.
    """

    max_attempts: int = 3
    base_delay: int = 1000
    max_delay: int = 10000
    backoff_multiplier: float = 2.0

    @classmethod
    def from_dict(cls, data: dict) -> "RetryConfig":
        """Create RetryConfig from a dictionary (camelCase or snake_case)."""
        defaults = cls()
        return cls(
            max_attempts=int(
                _pick(data, "max_attempts", "maxAttempts", defaults.max_attempts)
            ),
            base_delay=int(
                _pick(data, "base_delay", "baseDelay", defaults.base_delay)
            ),
            max_delay=int(_pick(data, "max_delay", "maxDelay", defaults.max_delay)),
            backoff_multiplier=float(
                _pick(
                    data,
                    "backoff_multiplier",
                    "backoffMultiplier",
                    defaults.backoff_multiplier,
                )
            ),
        )


@dataclass(frozen=True)
class RulesSyncConfig:
    """Settings for synchronizing a rule tree with its remote mirror."""

    remote_url: str = ""
    """Git URL of the shared rules repository"""

    rules_path: str = DEFAULT_RULES_PATH
    """Rule root, relative to the workspace (and to the remote clone)"""

    exclude_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS)
    )
    """Top-level rule names that stay local to the workspace"""

    retry: RetryConfig = field(default_factory=RetryConfig)

    workspace_label: Optional[str] = None
    """Name embedded in commit messages (defaults to the workspace folder name)"""

    manage_gitignore: bool = True
    cleanup_delay: float = 2.0
    auto_sync_interval: int = 60

    @classmethod
    def from_dict(cls, data: dict) -> "RulesSyncConfig":
        """Create a config from a dictionary.

        Accepts both the snake_case keys used by this package and the
        camelCase keys used by editor settings (``rulesRepoUrl``,
        ``globalRulesPath``, ``excludePatterns``...).

        Args:
            data: Raw configuration mapping

        Returns:
            RulesSyncConfig instance

        Raises:
            ConfigurationError: If a value has the wrong type
        """
        exclude = _pick(
            data, "exclude_patterns", "excludePatterns", DEFAULT_EXCLUDE_PATTERNS
        )
        if isinstance(exclude, str):
            exclude = [p.strip() for p in exclude.split(",") if p.strip()]
        if not isinstance(exclude, list):
            raise ConfigurationError(
                "excludePatterns must be a list of names",
                errors=["excludePatterns must be a list of names"],
            )

        retry_data = data.get("retry", {})
        if not isinstance(retry_data, dict):
            raise ConfigurationError(
                "retry must be an object", errors=["retry must be an object"]
            )

        return cls(
            remote_url=str(
                _pick(data, "remote_url", "rulesRepoUrl", "")
                or data.get("remoteUrl", "")
            ),
            rules_path=str(
                _pick(data, "rules_path", "globalRulesPath", DEFAULT_RULES_PATH)
            ),
            exclude_patterns=[str(p) for p in exclude],
            retry=RetryConfig.from_dict(retry_data),
            workspace_label=_pick(data, "workspace_label", "workspaceLabel", None),
            manage_gitignore=bool(
                _pick(data, "manage_gitignore", "manageGitignore", True)
            ),
            cleanup_delay=float(_pick(data, "cleanup_delay", "cleanupDelay", 2.0)),
            auto_sync_interval=int(
                _pick(data, "auto_sync_interval", "autoSyncInterval", 60)
            ),
        )

    def with_env_overrides(self, environ: Optional[dict] = None) -> "RulesSyncConfig":
        """Return a copy with RULESYNC_* environment variables applied."""
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        if env.get("RULESYNC_REMOTE_URL"):
            overrides["remote_url"] = env["RULESYNC_REMOTE_URL"]
        if env.get("RULESYNC_RULES_PATH"):
            overrides["rules_path"] = env["RULESYNC_RULES_PATH"]
        if env.get("RULESYNC_EXCLUDE"):
            overrides["exclude_patterns"] = [
                p.strip() for p in env["RULESYNC_EXCLUDE"].split(",") if p.strip()
            ]
        if overrides:
            logger.debug(f"Applying environment overrides: {sorted(overrides)}")
        return replace(self, **overrides)


def _pick(data: dict, snake: str, camel: str, default: Any) -> Any:
    if snake in data:
        return data[snake]
    if camel in data:
        return data[camel]
    return default


def validate_config(config: RulesSyncConfig) -> list[str]:
    """Validate a configuration without raising.

    Args:
        config: Configuration to check

    Returns:
        List of human-readable problems (empty if the config is usable)
    """
    errors: list[str] = []
    if not config.remote_url.strip():
        errors.append("Remote repository URL is not set")
    if not config.rules_path.strip():
        errors.append("Rules path is not set")
    if not [p for p in config.exclude_patterns if p.strip()]:
        errors.append("At least one exclusion pattern is required")

    retry = config.retry
    if retry.max_attempts < 1:
        errors.append("retry.max_attempts must be at least 1")
    if retry.base_delay < 0:
        errors.append("retry.base_delay must not be negative")
    if retry.max_delay < retry.base_delay:
        errors.append("retry.max_delay must not be lower than retry.base_delay")
    if retry.backoff_multiplier < 1:
        errors.append("retry.backoff_multiplier must be at least 1")
    return errors


def ensure_valid(config: RulesSyncConfig) -> None:
    """Raise ConfigurationError if the configuration is not usable."""
    errors = validate_config(config)
    if errors:
        raise ConfigurationError(
            "Invalid configuration: " + "; ".join(errors), errors=errors
        )


def load_config(
    path: Optional[Union[str, Path]] = None,
    workspace_root: Optional[Union[str, Path]] = None,
    environ: Optional[dict] = None,
) -> RulesSyncConfig:
    """Load configuration from JSON and environment variables.

    Lookup order for the JSON file: the explicit ``path``, then
    ``<workspace_root>/.rulesync.json``, then ``~/.config/rulesync/config.json``.
    A missing file is not an error; defaults are used instead.

    Args:
        path: Explicit configuration file
        workspace_root: Workspace whose local config file should be consulted
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        RulesSyncConfig with environment overrides applied

    Raises:
        ConfigurationError: If the file is missing (explicit path only) or
            contains invalid JSON
    """
    candidates: list[Path] = []
    if path is not None:
        explicit = Path(path)
        if not explicit.exists():
            raise ConfigurationError(
                f"Configuration file not found: {explicit}",
                errors=[f"Configuration file not found: {explicit}"],
            )
        candidates.append(explicit)
    else:
        if workspace_root is not None:
            candidates.append(Path(workspace_root) / CONFIG_FILE_NAME)
        candidates.append(get_user_config_path())

    data: dict = {}
    for candidate in candidates:
        if not candidate.is_file():
            continue
        try:
            with open(candidate, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in {candidate}: {e}",
                errors=[f"Invalid JSON in {candidate}: {e}"],
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration in {candidate} must be a JSON object",
                errors=[f"Configuration in {candidate} must be a JSON object"],
            )
        logger.debug(f"Loaded configuration from {candidate}")
        break

    return RulesSyncConfig.from_dict(data).with_env_overrides(environ)
