# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync Exceptions - Custom exceptions for the snapsync package.
"""


class SnapSyncError(Exception):
    """Base exception for all snapsync errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(SnapSyncError):
    """Raised when configuration is invalid."""

    pass


class BackupError(SnapSyncError):
    """Raised when backup creation or upload fails."""

    pass


class BackupExistsError(BackupError):
    """Raised when a backup with the requested name is already tracked."""

    pass


class BackupInProgressError(BackupError):
    """Raised when a backup is requested while another one is running."""

    pass


class BackupNotFoundError(SnapSyncError):
    """Raised when an operation targets an unknown backup id."""

    pass


class RestoreError(SnapSyncError):
    """Raised when restore or download operations fail."""

    pass


class LedgerError(SnapSyncError):
    """Raised when the local ledger cannot be loaded or saved."""

    pass


class SnapshotClientError(SnapSyncError):
    """Raised when a snapshot system call fails."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, details)


class SnapshotNotFoundError(SnapshotClientError):
    """Raised when the snapshot system does not know the requested slug."""

    pass


class StorageError(SnapSyncError):
    """Raised when object store operations fail."""

    pass
