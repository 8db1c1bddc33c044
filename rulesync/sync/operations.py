"""Remote operations wrapper: clone, commit, push and temp-clone cleanup."""

import logging
import shutil
import threading
from pathlib import Path
from typing import Callable, Optional

from ..config import RetryConfig
from ..git import VersionControl
from .retry import (
    RetryingExecutor,
    classify_operation_failure,
    classify_push_failure,
)

logger = logging.getLogger(__name__)


class SyncOperations:
    """Network-bound version-control calls with a common retry policy."""

    def __init__(
        self,
        vcs: VersionControl,
        executor: Optional[RetryingExecutor] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        """Initialize sync operations.

        Args:
            vcs: Version-control client
            executor: Retrying executor (created from ``retry_config`` if omitted)
            retry_config: Backoff settings for the default executor
        """
        self.vcs = vcs
        self.executor = executor or RetryingExecutor(retry_config)
        self._cleanup_timers: list[threading.Timer] = []

    def clone_remote(self, url: str, dest_dir: Path) -> None:
        """Clone the remote into ``dest_dir``, retrying transient failures.

        Raises:
            RulesSyncError: Classified failure once retries are exhausted
        """
        try:
            self.executor.run(lambda: self.vcs.clone(url, dest_dir), label="clone")
            self.vcs.cwd(dest_dir)
        except Exception as e:
            raise classify_operation_failure(e, "Clone") from e

    def commit_all(self, clone_dir: Path, message: str) -> bool:
        """Stage everything in the clone and commit it.

        Args:
            clone_dir: Working directory of the clone
            message: Commit message

        Returns:
            True if a commit was created, False if there was nothing to commit

        Raises:
            RulesSyncError: If staging or committing fails
        """
        try:
            self.vcs.cwd(clone_dir)
            logger.debug(f"Status before add: {self.vcs.status()}")
            self.vcs.add(".")
            pending = self.vcs.status()
            if not pending:
                logger.info("Nothing to commit")
                return False
            logger.debug(f"Committing {len(pending)} change(s)")
            self.vcs.commit(message)
        except Exception as e:
            raise classify_operation_failure(e, "Commit") from e
        return True

    def try_pull(self) -> bool:
        """Opportunistically rebase onto the remote before pushing.

        Failures are logged and swallowed; the push that follows is the
        authoritative conflict signal.

        Returns:
            True if the pull succeeded
        """
        try:
            self.vcs.pull()
            return True
        except Exception as e:
            logger.warning(f"Pull before push failed, pushing anyway: {e}")
            return False

    def pull_and_push(
        self,
        retry: bool = False,
        on_step: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Rebase onto the remote, then push.

        With ``retry`` both steps form a single retried unit: a push
        rejected because the remote moved ahead can only succeed after
        pulling the new commits again.

        Args:
            retry: Run pull and push inside the retrying executor
            on_step: Called with ``"pull"`` or ``"push"`` before each step

        Raises:
            DivergedHistoryError: If the remote has commits we do not have
            PermanentOperationError: For any other push failure
        """

        def _attempt() -> None:
            if on_step is not None:
                on_step("pull")
            self.try_pull()
            if on_step is not None:
                on_step("push")
            self.vcs.push()

        try:
            if retry:
                self.executor.run(_attempt, label="push")
            else:
                _attempt()
        except Exception as e:
            raise classify_push_failure(e) from e

    def schedule_cleanup(self, directory: Path, delay: float = 2.0) -> None:
        """Remove a temporary clone in the background after ``delay`` seconds.

        Cleanup is best effort: failures are logged, never raised.
        """

        def _remove() -> None:
            try:
                shutil.rmtree(directory)
                logger.debug(f"Removed temporary clone {directory}")
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove temporary clone {directory}: {e}")

        timer = threading.Timer(delay, _remove)
        timer.daemon = True
        self._cleanup_timers = [t for t in self._cleanup_timers if t.is_alive()]
        self._cleanup_timers.append(timer)
        timer.start()

    def wait_for_cleanup(self, timeout: Optional[float] = None) -> None:
        """Block until scheduled cleanups have finished."""
        for timer in list(self._cleanup_timers):
            timer.join(timeout)
        self._cleanup_timers = [t for t in self._cleanup_timers if t.is_alive()]
