# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation. Runtime edits
(interval, retention limits, name format) produce a new instance through
with_updates() and are published by the options service.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import re

DEFAULT_NAME_FORMAT = "Full Backup {year}-{month}-{day} {hr24}:{min}:{sec}"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class StorageBackend(str, Enum):
    """Object store backend type."""

    S3 = "s3"
    STORJ = "storj"  # Storj through its S3-compatible gateway


STORJ_GATEWAY_URL = "https://gateway.storjshare.io"


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate a bucket name according to S3 rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def _validate_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


@dataclass(frozen=True)
class SnapSyncConfig:
    """
    Immutable configuration for the backup engine and its collaborators.
    """

    # Required: bucket that holds the long-term copies
    bucket: str

    # Object store backend (S3 or Storj gateway)
    storage_backend: StorageBackend = StorageBackend.S3

    # AWS region (default: us-east-1)
    region: str = "us-east-1"

    # Custom endpoint for S3-compatible stores (None = AWS)
    endpoint_url: str | None = None

    # Credentials; None falls back to the botocore credential chain
    access_key_id: str | None = None
    secret_access_key: str | None = None

    # Snapshot system (Home Assistant Supervisor) API
    supervisor_url: str = "http://supervisor"
    supervisor_token: str = ""

    # Where the ledger and runtime options are stored
    data_directory: Path = field(default_factory=lambda: Path("/data"))

    # Where the snapshot system keeps its archives (<slug>.tar)
    backup_directory: Path = field(default_factory=lambda: Path("/backup"))

    # Template for generated backup names
    backup_name_format: str = DEFAULT_NAME_FORMAT

    # Days between scheduled backups
    backup_interval: int = 3

    # Retention limits, 0 disables enforcement for that store
    backups_in_snapshot: int = 0
    backups_in_store: int = 0

    # Seconds between reconciliation passes
    sync_interval: float = 60.0

    # IANA timezone used for generated names and dates
    timezone: str = "UTC"

    log_level: str = "INFO"

    # Per-request timeout for the snapshot system client (seconds)
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_bucket_name(self.bucket):
            errors.append(f"Invalid bucket name: {self.bucket}")

        if self.backup_interval < 1:
            errors.append(f"backup_interval must be >= 1, got {self.backup_interval}")

        if self.backups_in_snapshot < 0:
            errors.append(
                f"backups_in_snapshot must be >= 0, got {self.backups_in_snapshot}"
            )

        if self.backups_in_store < 0:
            errors.append(f"backups_in_store must be >= 0, got {self.backups_in_store}")

        if self.sync_interval <= 0:
            errors.append(f"sync_interval must be > 0, got {self.sync_interval}")

        if not self.backup_name_format.strip():
            from snapsync.errors import explain_invalid_name_format

            errors.append(explain_invalid_name_format(self.backup_name_format))

        if not _validate_timezone(self.timezone):
            errors.append(f"Unknown timezone: {self.timezone}")

        if self.log_level.upper() not in LOG_LEVELS:
            errors.append(f"Invalid log_level: {self.log_level}")

        if bool(self.access_key_id) != bool(self.secret_access_key):
            errors.append("access_key_id and secret_access_key must be set together")

        if errors:
            from snapsync.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def ledger_path(self) -> Path:
        return self.data_directory / "backups.json"

    @property
    def options_path(self) -> Path:
        return self.data_directory / "options.json"

    @property
    def backup_interval_delta(self) -> timedelta:
        return timedelta(days=self.backup_interval)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def resolved_endpoint_url(self) -> str | None:
        """Endpoint to hand to the S3 client, filling in the Storj gateway."""
        if self.endpoint_url:
            return self.endpoint_url
        if self.storage_backend == StorageBackend.STORJ:
            return STORJ_GATEWAY_URL
        return None

    def with_updates(self, **kwargs) -> "SnapSyncConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return SnapSyncConfig(**current)
