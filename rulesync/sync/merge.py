"""Writing rule documents into a destination tree.

Two policies exist. A pull is an explicit "reset to canonical" action and
overwrites destination files byte for byte. A sync/push keeps the
destination's metadata block (frontmatter) and only replaces the body, so
per-workspace toggles such as ``alwaysApply`` survive shared body edits.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import Iterable, Optional

from ..exceptions import FilesystemError
from ..utils import is_rule_document
from .exclusion import should_exclude
from .scanner import ExclusionPredicate

logger = logging.getLogger(__name__)

FRONTMATTER_MARKER = "---"

# Opening marker line, lazily matched content, closing marker line.
# Groups: metadata block (without the closing line break), line break, body.
FRONTMATTER_RE = re.compile(
    r"\A(---[ \t]*\r?\n(?:.*?\r?\n)?---[ \t]*)(\r?\n|\Z)(.*)\Z",
    re.DOTALL,
)


def split_frontmatter(text: str) -> Optional[tuple[str, str, str]]:
    """Split a document into its metadata block and body.

    Args:
        text: Full document text

    Returns:
        ``(block, line_break, body)`` or None if the document does not start
        with a complete metadata block. The body is returned verbatim.

    Examples:
        >>> split_frontmatter("---\\nB:2\\n---\\nBODY")
        ('---\\nB:2\\n---', '\\n', 'BODY')
        >>> split_frontmatter("no metadata") is None
        True
    """
    match = FRONTMATTER_RE.match(text)
    if match is None:
        return None
    return match.group(1), match.group(2), match.group(3)


def _read_text(path: Path) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def _write_text(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


class FrontmatterMergeStrategy:
    """Decides per file whether to merge metadata or overwrite fully."""

    def __init__(
        self,
        exclude_patterns: Iterable[str],
        exclude_predicate: Optional[ExclusionPredicate] = None,
    ):
        """Initialize the strategy.

        Args:
            exclude_patterns: Names of local-only rules (always overwritten)
            exclude_predicate: Exclusion predicate (defaults to
                :func:`should_exclude`)
        """
        self.exclude_patterns = list(exclude_patterns)
        self.exclude_predicate = exclude_predicate or should_exclude

    def copy_file(self, source: Path, destination: Path) -> None:
        """Copy a file byte for byte, replacing any destination content.

        Raises:
            FilesystemError: If the source does not exist
        """
        if not source.is_file():
            raise FilesystemError(f"Source file does not exist: {source}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)

    def copy_directory(self, source: Path, destination: Path) -> int:
        """Recursively copy a directory with full overwrite.

        Args:
            source: Directory to copy
            destination: Target directory (created if missing)

        Returns:
            Number of files copied

        Raises:
            FilesystemError: If the source directory does not exist
        """
        if not source.is_dir():
            raise FilesystemError(f"Source directory does not exist: {source}")

        destination.mkdir(parents=True, exist_ok=True)
        copied = 0
        for item in sorted(source.iterdir(), key=lambda p: p.name):
            target = destination / item.name
            if item.is_dir():
                copied += self.copy_directory(item, target)
            elif item.is_file():
                self.copy_file(item, target)
                copied += 1
        return copied

    def _is_local_rule(self, destination: Path, relative_path: Optional[str]) -> bool:
        if relative_path is not None:
            return self.exclude_predicate(relative_path, self.exclude_patterns)
        # Without a rule-root relative path, look for the rule name in the path
        posix = destination.as_posix()
        return any(
            f"/{pattern}/" in posix or f"/{pattern}." in posix
            for pattern in self.exclude_patterns
        )

    def write_merged(
        self,
        source: Path,
        destination: Path,
        relative_path: Optional[str] = None,
    ) -> bool:
        """Write ``source`` to ``destination`` keeping the destination metadata.

        Falls back to a full overwrite when the destination does not exist,
        the file is not a rule document, the file belongs to a local rule, or
        either side is not UTF-8 text or lacks a parsable metadata block.

        Args:
            source: File providing the new body
            destination: File whose metadata block is preserved
            relative_path: Path relative to the rule root, used for the
                exclusion check

        Returns:
            True if a merge was performed, False for a full overwrite

        Raises:
            FilesystemError: If the source does not exist
        """
        if not source.is_file():
            raise FilesystemError(f"Source file does not exist: {source}")

        if (
            not destination.is_file()
            or not is_rule_document(source)
            or self._is_local_rule(destination, relative_path)
        ):
            self.copy_file(source, destination)
            return False

        try:
            source_parts = split_frontmatter(_read_text(source))
            destination_parts = split_frontmatter(_read_text(destination))
        except UnicodeDecodeError:
            logger.debug(f"Not valid UTF-8, overwriting {destination}")
            self.copy_file(source, destination)
            return False
        if source_parts is None or destination_parts is None:
            logger.debug(f"No metadata block to preserve, overwriting {destination}")
            self.copy_file(source, destination)
            return False

        destination_block, destination_break, _ = destination_parts
        _, source_break, source_body = source_parts
        line_break = destination_break or source_break
        _write_text(destination, destination_block + line_break + source_body)
        logger.debug(f"Merged body into {destination}, metadata preserved")
        return True
