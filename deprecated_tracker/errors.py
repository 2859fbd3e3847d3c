"""Scan-level exceptions."""


class ScanError(Exception):
    """A scan could not run: missing or unreadable root, or an invalid scope."""


class ScanCancelledError(ScanError):
    """The scan was cancelled before it completed; no results were produced."""
