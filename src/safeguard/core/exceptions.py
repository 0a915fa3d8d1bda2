"""
Custom exceptions for the safeguard reconciliation engine.
"""

from typing import List


class SafeguardError(Exception):
    """Base exception for all safeguard errors."""
    pass


class ConfigurationError(SafeguardError):
    """
    Error in safeguard configuration.

    Raised when:
    - Configuration file cannot be parsed
    - A section has the wrong shape or an unknown backend is named
    - A protected table or key column is not a safe SQL identifier
    """
    pass


class FatalInitError(SafeguardError):
    """
    Required state could not be established at start-up.

    Raised when:
    - The database is unreachable while bootstrapping
    - The baseline snapshot for a restore reconciler cannot be captured

    This is the only error class that terminates the process.
    """
    pass


class CycleError(SafeguardError):
    """
    A single reconciliation cycle failed.

    The cycle is abandoned and retried with fresh state at the next tick.
    """

    def __init__(self, message: str, reconciler: str = None):
        super().__init__(message)
        self.reconciler = reconciler


class DirectorySyncError(CycleError):
    """
    Listing, copying or deleting a file failed during a directory sync.

    Failing to stat or hash a single file is not an error; that case
    is resolved by copying the file. Per-file copy or delete failures are
    collected in `failures` and raised once the whole pass has run.
    """

    def __init__(self, message: str, path: str = None, failures: List[str] = None):
        super().__init__(message)
        self.path = path
        self.failures = failures or []


class SnapshotError(CycleError):
    """
    A table snapshot could not be captured or is malformed.

    Raised when:
    - The query fails
    - The key column is missing from the result set
    - Two rows share a key value
    """

    def __init__(self, message: str, table: str = None):
        super().__init__(message)
        self.table = table


class UnsupportedValueError(SnapshotError):
    """A column value has a type outside the supported scalar kinds."""
    pass


class SchemaDriftError(CycleError):
    """
    The live table's column set no longer matches the baseline.

    Restoration is refused rather than guessed at.
    """

    def __init__(self, message: str, missing: tuple = (), extra: tuple = ()):
        super().__init__(message)
        self.missing = tuple(missing)
        self.extra = tuple(extra)


class TransactionError(CycleError):
    """
    A statement in a corrective batch failed and the batch was rolled back.
    """

    def __init__(self, message: str, table: str = None, key=None):
        super().__init__(message)
        self.table = table
        self.key = key
