"""Maintenance of the workspace .gitignore section for rule files.

Shared rules live in the rules repository, so the workspace's own
repository ignores the rule root except for the local-only rules.
"""

import logging
from pathlib import Path
from typing import Iterable, Union

logger = logging.getLogger(__name__)

GITIGNORE_FILE_NAME = ".gitignore"
SECTION_HEADER = "# Cursor Rules"
IGNORE_COMMENT = "# Ignore shared rules, they are synced with the rules repository"
ALLOW_COMMENT = "# Keep workspace-specific rules in this repository"


class IgnoreFileManager:
    """Creates or refreshes the rules section of a workspace .gitignore."""

    def __init__(self, rules_path: str = ".cursor/rules"):
        self.rules_path = rules_path.strip("/")

    def generate_section(self, exclude_patterns: Iterable[str]) -> list[str]:
        """Build the section lines for the given local-only rules.

        Examples:
            >>> IgnoreFileManager().generate_section(["my-project"])[-2:]
            ['!.cursor/rules/my-project/**', '!.cursor/rules/my-project.*']
        """
        lines = [SECTION_HEADER, IGNORE_COMMENT, f"{self.rules_path}/*"]
        patterns = list(dict.fromkeys(p for p in exclude_patterns if p))
        if patterns:
            lines.append("")
            lines.append(ALLOW_COMMENT)
            for pattern in patterns:
                lines.append(f"!{self.rules_path}/{pattern}/")
                lines.append(f"!{self.rules_path}/{pattern}/**")
                lines.append(f"!{self.rules_path}/{pattern}.*")
        return lines

    def _is_section_line(self, line: str) -> bool:
        stripped = line.strip()
        if stripped in (SECTION_HEADER, IGNORE_COMMENT, ALLOW_COMMENT):
            return True
        return stripped.lstrip("!").startswith(f"{self.rules_path}/")

    def update_content(self, content: str, exclude_patterns: Iterable[str]) -> str:
        """Return ``content`` with the rules section inserted or replaced.

        Existing section lines are removed wherever they are, the fresh
        section is placed where the old one started (or appended), and
        runs of blank lines are collapsed.
        """
        lines = content.splitlines()
        kept: list[str] = []
        insert_at = None
        for line in lines:
            if self._is_section_line(line):
                if insert_at is None:
                    insert_at = len(kept)
                continue
            kept.append(line)

        section = self.generate_section(exclude_patterns)
        if insert_at is None:
            while kept and not kept[-1].strip():
                kept.pop()
            if kept:
                kept.append("")
            kept.extend(section)
        else:
            kept[insert_at:insert_at] = section

        result: list[str] = []
        for line in kept:
            if not line.strip() and result and not result[-1].strip():
                continue
            result.append(line)
        while result and not result[-1].strip():
            result.pop()
        return "\n".join(result) + "\n"

    def ensure_gitignore(
        self, workspace_root: Union[str, Path], exclude_patterns: Iterable[str]
    ) -> bool:
        """Create or refresh the rules section of ``<workspace>/.gitignore``.

        Args:
            workspace_root: Workspace directory
            exclude_patterns: Names of local-only rules

        Returns:
            True if the file was written, False if it was already up to date
        """
        path = Path(workspace_root) / GITIGNORE_FILE_NAME
        content = path.read_text(encoding="utf-8") if path.exists() else ""
        updated = self.update_content(content, exclude_patterns)
        if updated == content:
            return False
        path.write_text(updated, encoding="utf-8")
        logger.debug(f"Updated {path}")
        return True
