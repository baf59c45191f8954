# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync Builder - Functional builder pattern for configuration.

This module provides pure functions for building SnapSyncConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from snapsync.config import DEFAULT_NAME_FORMAT, SnapSyncConfig, StorageBackend


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial empty configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "bucket": "",
        "storage_backend": StorageBackend.S3,
        "region": "us-east-1",
        "endpoint_url": None,
        "access_key_id": None,
        "secret_access_key": None,
        "supervisor_url": "http://supervisor",
        "supervisor_token": "",
        "data_directory": Path("/data"),
        "backup_directory": Path("/backup"),
        "backup_name_format": DEFAULT_NAME_FORMAT,
        "backup_interval": 3,
        "backups_in_snapshot": 0,
        "backups_in_store": 0,
        "sync_interval": 60.0,
        "timezone": "UTC",
        "log_level": "INFO",
        "request_timeout": 30.0,
    }


def with_bucket(config: ConfigDict, bucket_name: str) -> ConfigDict:
    """
    Set the object store bucket name.

    Args:
        config: Current configuration dictionary
        bucket_name: Name of the bucket holding long-term copies

    Returns:
        New configuration dictionary with bucket set
    """
    return {**config, "bucket": bucket_name}


def with_storage_backend(
    config: ConfigDict,
    backend: StorageBackend | str,
    endpoint_url: str | None = None,
) -> ConfigDict:
    """
    Select the object store backend.

    Args:
        config: Current configuration dictionary
        backend: 's3' or 'storj'
        endpoint_url: Optional custom endpoint (MinIO, Storj gateway, ...)

    Returns:
        New configuration dictionary with the backend set
    """
    if isinstance(backend, str):
        backend = StorageBackend(backend.lower())
    return {**config, "storage_backend": backend, "endpoint_url": endpoint_url}


def with_credentials(
    config: ConfigDict,
    access_key_id: str,
    secret_access_key: str,
) -> ConfigDict:
    """
    Set static object store credentials.

    Returns:
        New configuration dictionary with credentials set
    """
    return {
        **config,
        "access_key_id": access_key_id,
        "secret_access_key": secret_access_key,
    }


def with_supervisor(config: ConfigDict, url: str, token: str) -> ConfigDict:
    """
    Point the snapshot client at a Supervisor API.

    Args:
        config: Current configuration dictionary
        url: Base URL of the Supervisor API
        token: Bearer token for the Supervisor API

    Returns:
        New configuration dictionary with the Supervisor set
    """
    return {**config, "supervisor_url": url.rstrip("/"), "supervisor_token": token}


def with_directories(
    config: ConfigDict,
    data_directory: Path | str,
    backup_directory: Path | str | None = None,
) -> ConfigDict:
    """
    Set the ledger directory and, optionally, the archive directory.
    """
    updated = {**config, "data_directory": Path(data_directory)}
    if backup_directory is not None:
        updated["backup_directory"] = Path(backup_directory)
    return updated


def backup_every(config: ConfigDict, days: int) -> ConfigDict:
    """
    Set the number of days between scheduled backups.

    Args:
        config: Current configuration dictionary
        days: Interval in days

    Returns:
        New configuration dictionary with the interval set
    """
    if days < 1:
        raise ValueError(f"backup interval must be >= 1 day, got {days}")
    return {**config, "backup_interval": days}


def keep_in_snapshot(config: ConfigDict, limit: int) -> ConfigDict:
    """
    Set how many backups to keep in the snapshot system (0 = unlimited).
    """
    if limit < 0:
        raise ValueError(f"backups_in_snapshot must be >= 0, got {limit}")
    return {**config, "backups_in_snapshot": limit}


def keep_in_store(config: ConfigDict, limit: int) -> ConfigDict:
    """
    Set how many backups to keep in the object store (0 = unlimited).
    """
    if limit < 0:
        raise ValueError(f"backups_in_store must be >= 0, got {limit}")
    return {**config, "backups_in_store": limit}


def with_name_format(config: ConfigDict, name_format: str) -> ConfigDict:
    """
    Set the template used for generated backup names.

    Supported placeholders: {year}, {month}, {day}, {hr24}, {min}, {sec}.
    """
    return {**config, "backup_name_format": name_format}


def with_timezone(config: ConfigDict, timezone: str) -> ConfigDict:
    """Set the IANA timezone used for generated names."""
    return {**config, "timezone": timezone}


def sync_every(config: ConfigDict, seconds: float) -> ConfigDict:
    """
    Set the reconciliation ticker interval in seconds.
    """
    if seconds <= 0:
        raise ValueError(f"sync_interval must be > 0, got {seconds}")
    return {**config, "sync_interval": float(seconds)}


def build_config(config_dict: ConfigDict) -> SnapSyncConfig:
    """
    Validate and build an immutable SnapSyncConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable SnapSyncConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("bucket"):
        from snapsync.exceptions import ConfigurationError

        raise ConfigurationError("bucket is required")

    return SnapSyncConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

        config = pipe(
            lambda c: with_bucket(c, "ha-backups"),
            lambda c: keep_in_store(c, 10),
        )(create_empty_config())
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def create_config(
    bucket: str,
    *,
    storage_backend: str | StorageBackend = "s3",
    region: str = "us-east-1",
    endpoint_url: str | None = None,
    data_directory: str | Path | None = None,
    backup_directory: str | Path | None = None,
    backup_interval: int = 3,
    backups_in_snapshot: int = 0,
    backups_in_store: int = 0,
    backup_name_format: str | None = None,
    timezone: str = "UTC",
    **kwargs: Any,
) -> SnapSyncConfig:
    """
    Create snapsync configuration from simple parameters.

    This is the recommended programmatic API for creating configurations.

    Args:
        bucket: Object store bucket name (required)
        storage_backend: "s3" or "storj" (default: "s3")
        region: AWS region (default: "us-east-1")
        endpoint_url: Custom S3-compatible endpoint (optional)
        data_directory: Directory for the ledger and options (default: "/data")
        backup_directory: Directory holding snapshot archives (default: "/backup")
        backup_interval: Days between scheduled backups (default: 3)
        backups_in_snapshot: Snapshot system retention limit, 0 = unlimited
        backups_in_store: Object store retention limit, 0 = unlimited
        backup_name_format: Template for generated names (optional)
        timezone: IANA timezone for generated names (default: "UTC")
        **kwargs: Additional configuration options

    Returns:
        Validated, immutable SnapSyncConfig instance

    Example:
        config = create_config(
            bucket="ha-backups",
            backups_in_snapshot=3,
            backups_in_store=10,
            data_directory="/data",
        )
    """
    config_dict = create_empty_config()
    config_dict = with_bucket(config_dict, bucket)
    config_dict = with_storage_backend(config_dict, storage_backend, endpoint_url)

    if region:
        config_dict["region"] = region

    if data_directory is not None:
        config_dict = with_directories(config_dict, data_directory, backup_directory)
    elif backup_directory is not None:
        config_dict["backup_directory"] = Path(backup_directory)

    config_dict = backup_every(config_dict, backup_interval)
    config_dict = keep_in_snapshot(config_dict, backups_in_snapshot)
    config_dict = keep_in_store(config_dict, backups_in_store)

    if backup_name_format:
        config_dict = with_name_format(config_dict, backup_name_format)

    config_dict = with_timezone(config_dict, timezone)

    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
