"""Exclusion predicates deciding which rules stay local to a workspace."""

from pathlib import PurePosixPath
from typing import Iterable


def _parts(relative_path: str) -> list[str]:
    normalized = relative_path.replace("\\", "/").strip("/")
    return [p for p in PurePosixPath(normalized).parts if p not in ("", ".")]


def rule_name_for(relative_path: str) -> str:
    """Return the name of the top-level rule a path belongs to.

    For a file directly under the rule root the name is the filename up to
    its first dot (``my-project.md`` -> ``my-project``). For anything nested,
    or a path with a trailing slash (a directory), the name is the top-level
    directory.

    Examples:
        >>> rule_name_for("my-project/setup.md")
        'my-project'
        >>> rule_name_for("style.mdc")
        'style'
    """
    parts = _parts(relative_path)
    if not parts:
        return ""
    root = parts[0]
    is_directory = relative_path.replace("\\", "/").endswith("/")
    if len(parts) == 1 and not is_directory and "." in root.lstrip("."):
        prefix = "." if root.startswith(".") else ""
        return prefix + root.lstrip(".").split(".")[0]
    return root


def should_exclude(relative_path: str, exclude_patterns: Iterable[str]) -> bool:
    """Check if a path under the rule root must stay out of the rules repo.

    Args:
        relative_path: Path relative to the rule root
        exclude_patterns: Names of local-only rules

    Returns:
        True if the path belongs to an excluded rule
    """
    name = rule_name_for(relative_path)
    if not name:
        return False
    return name in set(exclude_patterns)


def should_exclude_from_main_project(
    relative_path: str, exclude_patterns: Iterable[str]
) -> bool:
    """Check if a path must stay out of the workspace's own repository.

    This is the inverse view: shared rules live in the rules repository,
    so only the local-only ones are tracked by the project itself.
    """
    if not _parts(relative_path):
        return True
    return not should_exclude(relative_path, exclude_patterns)
