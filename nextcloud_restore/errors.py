# ==========================================================
# 🚨  errors.py — Failure classes for the restore CLI
# ==========================================================
# Every fatal condition raises a RestoreError subclass.
# cli.main() turns them into a logged line and exit code 1.
# Best-effort steps never raise; they only log a warning.
# ==========================================================


class RestoreError(Exception):
    """Base class for fatal restore failures."""


class ConfigurationError(RestoreError):
    """Required settings are missing or invalid."""


class ResolutionError(RestoreError):
    """No backup matches the requested kind / timestamp."""


# Name used in the operator docs for the only resolution failure.
NoBackupsFound = ResolutionError


class TransferError(RestoreError):
    """Listing, download or mirror sync against the bucket failed."""


class RestoreExecutionError(RestoreError):
    """Applying a downloaded backup (SQL import, archive extraction) failed."""
