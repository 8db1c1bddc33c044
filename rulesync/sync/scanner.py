"""Rule tree scanning utilities for sync operations."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from ..utils import calculate_file_hash
from .exclusion import rule_name_for, should_exclude

logger = logging.getLogger(__name__)

ExclusionPredicate = Callable[[str, Iterable[str]], bool]

FingerprintMap = dict[str, str]
"""Relative path (forward slashes) -> SHA-256 digest ('' if unreadable)"""

# Never descend into version-control metadata
SKIPPED_DIR_NAMES = {".git"}


@dataclass
class RuleEntry:
    """One top-level child of the rule root: a document or a directory."""

    name: str
    """Rule name used for exclusion matching"""

    path: Path
    """Absolute path to the file or directory"""

    is_directory: bool

    files: list[Path] = field(default_factory=list)
    """Every file belonging to this rule"""


@dataclass
class RulesStructure:
    """Rules of a tree split into local-only and syncable entries."""

    local_rules: list[RuleEntry] = field(default_factory=list)
    global_rules: list[RuleEntry] = field(default_factory=list)


class RuleTreeScanner:
    """Walks a rule directory and classifies its entries.

    Examples:
        >>> scanner = RuleTreeScanner(exclude_patterns=["my-project"])
        >>> structure = scanner.scan(Path("/work/.cursor/rules"))
        >>> [rule.name for rule in structure.global_rules]
        ['python', 'style']
    """

    def __init__(
        self,
        exclude_patterns: Iterable[str],
        exclude_predicate: Optional[ExclusionPredicate] = None,
    ):
        """Initialize the scanner.

        Args:
            exclude_patterns: Names of rules that stay local to the workspace
            exclude_predicate: Decides whether a path relative to the rule root
                is excluded (defaults to :func:`should_exclude`)
        """
        self.exclude_patterns = list(exclude_patterns)
        self.exclude_predicate = exclude_predicate or should_exclude

    def is_excluded(self, relative_path: str) -> bool:
        """Check a path relative to the rule root against the predicate."""
        return self.exclude_predicate(relative_path, self.exclude_patterns)

    def scan(self, rule_root: Path) -> RulesStructure:
        """Classify the immediate children of a rule root.

        A missing rule root is not an error: it yields an empty structure.

        Args:
            rule_root: Directory holding the rules

        Returns:
            RulesStructure with local and global rules
        """
        structure = RulesStructure()
        if not rule_root.is_dir():
            logger.debug(f"Rule root does not exist: {rule_root}")
            return structure

        for item in sorted(rule_root.iterdir(), key=lambda p: p.name):
            if item.is_dir():
                if item.name in SKIPPED_DIR_NAMES:
                    continue
                rule = RuleEntry(
                    name=item.name,
                    path=item,
                    is_directory=True,
                    files=self.list_files(item),
                )
            elif item.is_file():
                rule = RuleEntry(
                    name=rule_name_for(item.name),
                    path=item,
                    is_directory=False,
                    files=[item],
                )
            else:
                continue

            relative_path = item.name + ("/" if rule.is_directory else "")
            if self.is_excluded(relative_path):
                structure.local_rules.append(rule)
            else:
                structure.global_rules.append(rule)

        return structure

    def get_syncable_rules(self, rule_root: Path) -> list[RuleEntry]:
        """Return only the rules that participate in synchronization."""
        return self.scan(rule_root).global_rules

    def list_files(self, directory: Path) -> list[Path]:
        """Recursively collect every file below a directory.

        Args:
            directory: Directory to walk

        Returns:
            Sorted list of absolute file paths (empty if the directory is missing)
        """
        files: list[Path] = []
        if not directory.is_dir():
            return files

        try:
            for item in sorted(directory.iterdir(), key=lambda p: p.name):
                if item.is_dir():
                    if item.name in SKIPPED_DIR_NAMES:
                        continue
                    files.extend(self.list_files(item))
                elif item.is_file():
                    files.append(item)
        except PermissionError:
            logger.warning(f"Permission denied while listing {directory}")

        return files

    def build_fingerprint_map(self, rule_root: Path) -> FingerprintMap:
        """Hash every syncable file below a rule root.

        Excluded paths are filtered while walking, so excluded directories
        are never entered and excluded files are never hashed.

        Args:
            rule_root: Directory holding the rules

        Returns:
            Mapping of relative path to content digest
        """
        fingerprints: FingerprintMap = {}
        if rule_root.is_dir():
            self._walk(rule_root, rule_root, fingerprints)
        return fingerprints

    def _walk(self, directory: Path, rule_root: Path, result: FingerprintMap) -> None:
        try:
            items = sorted(directory.iterdir(), key=lambda p: p.name)
        except PermissionError:
            logger.warning(f"Permission denied while scanning {directory}")
            return

        for item in items:
            relative_path = item.relative_to(rule_root).as_posix()
            if item.is_dir():
                if item.name in SKIPPED_DIR_NAMES:
                    continue
                if self.is_excluded(relative_path + "/"):
                    logger.debug(f"Skipping excluded directory: {relative_path}")
                    continue
                self._walk(item, rule_root, result)
            elif item.is_file():
                if self.is_excluded(relative_path):
                    logger.debug(f"Skipping excluded file: {relative_path}")
                    continue
                try:
                    result[relative_path] = calculate_file_hash(item)
                except OSError as e:
                    logger.warning(f"Could not read {relative_path}: {e}")
                    result[relative_path] = ""
