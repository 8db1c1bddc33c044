"""Version-control capability used by the sync engine.

The engine only depends on the :class:`VersionControl` protocol; the
default implementation drives git through GitPython. Only one git
invocation runs at a time per client.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Protocol, Union

from git import GitCommandError, Repo

logger = logging.getLogger(__name__)


class VersionControl(Protocol):
    """Operations the engine needs from a version-control client."""

    def clone(self, url: str, dest_dir: Union[str, Path]) -> None: ...

    def cwd(self, directory: Union[str, Path]) -> None: ...

    def status(self) -> list[str]: ...

    def add(self, pattern: str) -> None: ...

    def commit(self, message: str) -> None: ...

    def pull(self) -> None: ...

    def push(self) -> None: ...


class GitClient:
    """GitPython-backed implementation of :class:`VersionControl`."""

    def __init__(self, env: Optional[dict[str, str]] = None):
        """Initialize the client.

        Args:
            env: Extra environment variables for git (e.g. GIT_SSH_COMMAND)
        """
        self._env = dict(env or {})
        self._env.setdefault("GIT_TERMINAL_PROMPT", "0")
        self._repo: Optional[Repo] = None
        self._lock = threading.Lock()

    @property
    def repo(self) -> Repo:
        if self._repo is None:
            raise RuntimeError("No working directory selected; call cwd() first")
        return self._repo

    def clone(self, url: str, dest_dir: Union[str, Path]) -> None:
        """Clone ``url`` into ``dest_dir`` and select it as working directory."""
        logger.debug(f"Cloning {url} into {dest_dir}")
        with self._lock:
            self._repo = Repo.clone_from(url, str(dest_dir), env=self._env)

    def cwd(self, directory: Union[str, Path]) -> None:
        """Select an existing repository as working directory."""
        with self._lock:
            self._repo = Repo(str(directory))

    def status(self) -> list[str]:
        """Return the paths reported by ``git status --porcelain``."""
        with self._lock:
            output = self.repo.git.status("--porcelain")
        paths = []
        for line in output.splitlines():
            if line.strip():
                paths.append(line[3:].strip())
        return paths

    def add(self, pattern: str) -> None:
        """Stage files matching ``pattern`` (including deletions)."""
        with self._lock:
            self.repo.git.add("--all", pattern)

    def commit(self, message: str) -> None:
        """Commit the staged changes."""
        with self._lock:
            self.repo.git.commit("-m", message)

    def pull(self) -> None:
        """Rebase local commits onto the tracked upstream branch.

        A failed rebase is aborted so the clone is left on its branch with
        the local commit intact.
        """
        with self._lock, self.repo.git.custom_environment(**self._env):
            try:
                self.repo.git.pull("--rebase")
            except GitCommandError:
                try:
                    self.repo.git.rebase("--abort")
                except GitCommandError:
                    logger.debug("No rebase in progress to abort")
                raise

    def push(self) -> None:
        """Push the current branch to its upstream."""
        with self._lock, self.repo.git.custom_environment(**self._env):
            self.repo.git.push()


__all__ = ["GitClient", "GitCommandError", "VersionControl"]
