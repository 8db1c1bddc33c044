"""Utility functions for rulesync."""

import hashlib
import random
import string
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# =============================================================================
# Constants
# =============================================================================

# Document types whose metadata block is preserved on sync
RULE_DOCUMENT_SUFFIXES: tuple[str, ...] = (".md", ".mdc")

# Prefix of the per-call temporary clone directory
TEMP_DIR_PREFIX: str = "rulesync-tmp"

# Read size when hashing files (1 MB)
HASH_CHUNK_SIZE: int = 1024 * 1024

# Commit message timestamp, part of the commit history contract
COMMIT_TIMESTAMP_FORMAT: str = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# Content fingerprints
# =============================================================================


def calculate_file_hash(file_path: Union[str, Path]) -> str:
    """Calculate the SHA-256 digest of a file's raw bytes.

    The digest is the only equality oracle used for change detection;
    sizes and modification times are never consulted.

    Args:
        file_path: File to hash

    Returns:
        64 character hex digest, or an empty string if the file is missing

    Examples:
        >>> calculate_file_hash("/does/not/exist")
        ''
    """
    path = Path(file_path)
    if not path.is_file():
        return ""

    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


# =============================================================================
# Commit messages and temporary directories
# =============================================================================


def format_commit_timestamp(moment: Optional[datetime] = None) -> str:
    """Format a timestamp as ``YYYY-MM-DD HH:MM:SS`` in local time."""
    moment = moment or datetime.now()
    return moment.strftime(COMMIT_TIMESTAMP_FORMAT)


def format_commit_message(
    workspace_label: str, moment: Optional[datetime] = None
) -> str:
    """Build the commit message for a rules update.

    Args:
        workspace_label: Name of the originating workspace
        moment: Commit time (defaults to now)

    Returns:
        Commit message string

    Examples:
        >>> format_commit_message("api", datetime(2024, 3, 5, 7, 8, 9))
        'Update rules from api at 2024-03-05 07:08:09'
    """
    return f"Update rules from {workspace_label} at {format_commit_timestamp(moment)}"


def _base36(value: int) -> str:
    alphabet = string.digits + string.ascii_lowercase
    if value == 0:
        return "0"
    chars = []
    while value:
        value, rem = divmod(value, 36)
        chars.append(alphabet[rem])
    return "".join(reversed(chars))


def make_temp_clone_dir(base_dir: Optional[Union[str, Path]] = None) -> Path:
    """Return a fresh, not yet created, directory path for a remote clone.

    The name combines the current time in milliseconds with a random
    base36 suffix so that concurrent calls never collide.
    """
    base = Path(base_dir) if base_dir is not None else Path(tempfile.gettempdir())
    millis = int(time.time() * 1000)
    suffix = _base36(random.getrandbits(52))
    return base / f"{TEMP_DIR_PREFIX}-{millis}-{suffix}"


# =============================================================================
# Document helpers
# =============================================================================


def is_rule_document(path: Union[str, Path]) -> bool:
    """Check whether a file is a recognised rule document type."""
    return Path(path).suffix.lower() in RULE_DOCUMENT_SUFFIXES
