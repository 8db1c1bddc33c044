"""Exception hierarchy for rulesync.

Every error that reaches a user carries a short ``label`` and a longer
``remediation`` paragraph so front-ends can show both.
"""

from typing import Optional


class RulesSyncError(Exception):
    """Base exception for all rulesync errors."""

    label = "Sync error"
    remediation = (
        "The operation failed. Re-run it with --verbose to see the full "
        "diagnostic trace."
    )

    def __init__(self, message: str, remediation: Optional[str] = None):
        super().__init__(message)
        if remediation is not None:
            self.remediation = remediation

    def describe(self) -> str:
        """Return the label, message and remediation as one block of text."""
        return f"{self.label}: {self}\n\n{self.remediation}"


class ConfigurationError(RulesSyncError):
    """A required setting is missing or invalid. Never retried."""

    label = "Configuration error"
    remediation = (
        "Check the remote URL, the rules path and the exclusion patterns in "
        "your rulesync configuration file or RULESYNC_* environment variables."
    )

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        remediation: Optional[str] = None,
    ):
        super().__init__(message, remediation)
        self.errors = list(errors or [])


class TransientNetworkError(RulesSyncError):
    """A network failure that is expected to go away on its own."""

    label = "Network error"
    remediation = (
        "The remote could not be reached. Check your network connection and "
        "try again; rulesync already retried the operation with backoff."
    )


class DivergedHistoryError(RulesSyncError):
    """Push rejected because the remote has commits we do not have."""

    label = "Remote has diverged"
    remediation = (
        "Another workspace pushed rule changes in the meantime. Pull the "
        "remote rules first and retry the push, or simply re-run sync, which "
        "starts from a fresh clone of the remote."
    )


class PermanentOperationError(RulesSyncError):
    """Authentication, permission or repository-not-found failures."""

    label = "Remote operation failed"
    remediation = (
        "Verify that the rules repository URL is correct, that the repository "
        "exists, and that your git credentials grant push access to it."
    )


class FilesystemError(RulesSyncError):
    """A local file or directory required by the operation is missing."""

    label = "Filesystem error"
    remediation = (
        "A source file or directory disappeared while syncing. Make sure the "
        "rules directory is not being modified by another process and retry."
    )
