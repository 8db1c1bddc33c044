"""Retry handling for fallible version-control operations.

Git reports failures as human-readable text only, so errors are classified
by substring matching against a single table. Extend ``ERROR_PATTERNS``
rather than matching strings at call sites.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional, TypeVar

from ..config import RetryConfig
from ..exceptions import (
    DivergedHistoryError,
    PermanentOperationError,
    RulesSyncError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Classification of a failed operation."""

    TRANSIENT = "transient"
    """Network trouble expected to clear up on its own"""

    DIVERGED = "diverged"
    """Push rejected because the remote moved ahead"""

    PERMANENT = "permanent"
    """Authentication, permission or missing repository"""

    UNKNOWN = "unknown"
    """Anything else; never retried"""


# (lower-case substring, kind). First match wins.
ERROR_PATTERNS: tuple[tuple[str, ErrorKind], ...] = (
    # Server-side refusals (protected branches, hooks) look like rejections
    ("remote rejected", ErrorKind.PERMANENT),
    ("hook declined", ErrorKind.PERMANENT),
    ("non-fast-forward", ErrorKind.DIVERGED),
    ("fetch first", ErrorKind.DIVERGED),
    ("updates were rejected", ErrorKind.DIVERGED),
    ("[rejected]", ErrorKind.DIVERGED),
    ("timeout", ErrorKind.TRANSIENT),
    ("timed out", ErrorKind.TRANSIENT),
    ("could not resolve host", ErrorKind.TRANSIENT),
    ("enotfound", ErrorKind.TRANSIENT),
    ("name or service not known", ErrorKind.TRANSIENT),
    ("temporary failure in name resolution", ErrorKind.TRANSIENT),
    ("econnreset", ErrorKind.TRANSIENT),
    ("connection reset", ErrorKind.TRANSIENT),
    ("connection refused", ErrorKind.TRANSIENT),
    ("network", ErrorKind.TRANSIENT),
    ("early eof", ErrorKind.TRANSIENT),
    ("the remote end hung up unexpectedly", ErrorKind.TRANSIENT),
    ("authentication failed", ErrorKind.PERMANENT),
    ("permission denied", ErrorKind.PERMANENT),
    ("could not read username", ErrorKind.PERMANENT),
    ("repository not found", ErrorKind.PERMANENT),
    ("' not found", ErrorKind.PERMANENT),
    ("does not appear to be a git repository", ErrorKind.PERMANENT),
)

# Kinds the executor retries. Auth and permission failures are included
# because credential helpers and hosting providers fail transiently too.
RETRYABLE_KINDS = frozenset(
    {ErrorKind.TRANSIENT, ErrorKind.DIVERGED, ErrorKind.PERMANENT}
)


def classify_error(error: BaseException) -> ErrorKind:
    """Classify an exception by its message.

    Args:
        error: Exception raised by a version-control call

    Returns:
        Matching ErrorKind, or ``ErrorKind.UNKNOWN``
    """
    if isinstance(error, TransientNetworkError):
        return ErrorKind.TRANSIENT
    if isinstance(error, DivergedHistoryError):
        return ErrorKind.DIVERGED
    if isinstance(error, PermanentOperationError):
        return ErrorKind.PERMANENT

    message = str(error).lower()
    for substring, kind in ERROR_PATTERNS:
        if substring in message:
            return kind
    return ErrorKind.UNKNOWN


def is_retryable(error: BaseException) -> bool:
    """Check whether the executor should retry after this error."""
    return classify_error(error) in RETRYABLE_KINDS


def classify_push_failure(error: BaseException) -> RulesSyncError:
    """Turn a failed push into a user-facing error.

    Args:
        error: Exception raised while pushing

    Returns:
        DivergedHistoryError when the remote is ahead, otherwise a
        PermanentOperationError; typed rulesync errors pass through
    """
    if isinstance(error, (DivergedHistoryError, PermanentOperationError)):
        return error
    if classify_error(error) == ErrorKind.DIVERGED:
        return DivergedHistoryError(f"Push rejected by the remote: {error}")
    return PermanentOperationError(f"Push failed: {error}")


def classify_operation_failure(error: BaseException, action: str) -> RulesSyncError:
    """Turn a failed clone, commit or other git call into a user-facing error.

    Args:
        error: Exception raised by the version-control client
        action: Short name of the failed step, used in the message

    Returns:
        TransientNetworkError, PermanentOperationError or
        DivergedHistoryError by classification, a plain RulesSyncError for
        anything unclassified; typed rulesync errors pass through
    """
    if isinstance(error, RulesSyncError):
        return error
    kind = classify_error(error)
    message = f"{action} failed: {error}"
    if kind == ErrorKind.TRANSIENT:
        return TransientNetworkError(message)
    if kind == ErrorKind.PERMANENT:
        return PermanentOperationError(message)
    if kind == ErrorKind.DIVERGED:
        return DivergedHistoryError(message)
    return RulesSyncError(message)


class RetryingExecutor:
    """Runs an operation with exponential backoff on transient failures.

    Each call to :meth:`run` is independent: there is no jitter and no
    state shared between calls.

    Examples:
        >>> executor = RetryingExecutor(RetryConfig(max_attempts=3))
        >>> executor.run(lambda: "done", label="noop")
        'done'
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the executor.

        Args:
            config: Backoff settings (delays in milliseconds)
            sleep: Function used to wait, receives seconds
        """
        self.config = config or RetryConfig()
        self._sleep = sleep

    @staticmethod
    def compute_delay(attempt: int, config: RetryConfig) -> int:
        """Delay in milliseconds after a failed attempt (attempts start at 1).

        Examples:
            >>> cfg = RetryConfig(base_delay=1000, max_delay=10000)
            >>> [RetryingExecutor.compute_delay(n, cfg) for n in (1, 2, 3, 5)]
            [1000, 2000, 4000, 10000]
        """
        delay = config.base_delay * (config.backoff_multiplier ** (attempt - 1))
        return int(min(delay, config.max_delay))

    def run(
        self,
        operation: Callable[[], T],
        config: Optional[RetryConfig] = None,
        label: str = "operation",
    ) -> T:
        """Run ``operation`` until it succeeds or retries are exhausted.

        Args:
            operation: Zero-argument callable to execute
            config: Overrides the executor's configuration for this call
            label: Name used in log messages

        Returns:
            Whatever ``operation`` returns

        Raises:
            Exception: The last error, once it is not retryable or the final
                attempt failed
        """
        config = config or self.config
        attempt = 1
        while True:
            try:
                return operation()
            except Exception as e:
                kind = classify_error(e)
                if kind not in RETRYABLE_KINDS or attempt >= config.max_attempts:
                    logger.error(
                        f"{label} failed after {attempt} attempt(s) "
                        f"({kind.value}): {e}"
                    )
                    raise
                delay = self.compute_delay(attempt, config)
                logger.warning(
                    f"{label} failed (attempt {attempt}/{config.max_attempts}, "
                    f"{kind.value}), retrying in {delay}ms: {e}"
                )
                self._sleep(delay / 1000)
                attempt += 1
