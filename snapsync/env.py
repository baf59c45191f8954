# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

The add-on container passes everything through environment variables; this
module reads them and hands the values to create_config().
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from snapsync.builder import create_config
from snapsync.config import DEFAULT_NAME_FORMAT, SnapSyncConfig, StorageBackend
from snapsync.errors import (
    explain_invalid_backend_env,
    explain_invalid_int_env,
    explain_invalid_timezone_env,
    explain_missing_bucket_env,
)
from snapsync.exceptions import ConfigurationError


def _parse_backend(value: str | None) -> StorageBackend:
    if not value:
        return StorageBackend.S3
    try:
        return StorageBackend(value.lower())
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_backend_env(value)) from exc


def _parse_int(name: str, value: str | None, default: int, minimum: int = 0) -> int:
    if not value:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_int_env(name, value)) from exc
    if number < minimum:
        raise ConfigurationError(explain_invalid_int_env(name, value))
    return number


def _parse_float(name: str, value: str | None, default: float) -> float:
    if not value:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_int_env(name, value)) from exc
    if number <= 0:
        raise ConfigurationError(explain_invalid_int_env(name, value))
    return number


def _parse_timezone(value: str | None) -> str:
    from snapsync.config import _validate_timezone

    if not value:
        return "UTC"
    if not _validate_timezone(value):
        raise ConfigurationError(explain_invalid_timezone_env(value))
    return value


def create_config_from_env(environ: Mapping[str, str] | None = None) -> SnapSyncConfig:
    """
    Create a SnapSyncConfig from environment variables.

    Required:
        - S3_BUCKET (or STORJ_BUCKET when STORAGE_BACKEND=storj)

    Optional environment variables:
        - STORAGE_BACKEND: 's3' | 'storj' (default: s3)
        - S3_ENDPOINT, AWS_REGION, S3_ACCESS_KEY_ID, S3_SECRET_ACCESS_KEY
        - STORJ_ACCESS_KEY_ID, STORJ_SECRET_ACCESS_KEY
        - SUPERVISOR_URL (default: http://supervisor), SUPERVISOR_TOKEN
        - DATA_DIRECTORY (default: /data), BACKUP_DIRECTORY (default: /backup)
        - BACKUP_INTERVAL: days between backups (default: 3)
        - BACKUPS_IN_HA: snapshot retention limit (default: 0, unlimited)
        - BACKUPS_IN_STORAGE: object store retention limit (default: 0, unlimited)
        - BACKUP_NAME_FORMAT: name template
        - SYNC_INTERVAL: seconds between reconciliation passes (default: 60)
        - TZ: IANA timezone (default: UTC)
        - LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
    """

    env = os.environ if environ is None else environ

    backend = _parse_backend(env.get("STORAGE_BACKEND"))
    if backend == StorageBackend.STORJ:
        bucket = env.get("STORJ_BUCKET") or env.get("S3_BUCKET")
        access_key_id = env.get("STORJ_ACCESS_KEY_ID")
        secret_access_key = env.get("STORJ_SECRET_ACCESS_KEY")
    else:
        bucket = env.get("S3_BUCKET")
        access_key_id = env.get("S3_ACCESS_KEY_ID")
        secret_access_key = env.get("S3_SECRET_ACCESS_KEY")

    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env(backend.value))

    return create_config(
        bucket=bucket,
        storage_backend=backend,
        region=env.get("AWS_REGION", "us-east-1"),
        endpoint_url=env.get("S3_ENDPOINT") or None,
        access_key_id=access_key_id or None,
        secret_access_key=secret_access_key or None,
        supervisor_url=env.get("SUPERVISOR_URL", "http://supervisor").rstrip("/"),
        supervisor_token=env.get("SUPERVISOR_TOKEN", ""),
        data_directory=Path(env.get("DATA_DIRECTORY", "/data")),
        backup_directory=Path(env.get("BACKUP_DIRECTORY", "/backup")),
        backup_interval=_parse_int(
            "BACKUP_INTERVAL", env.get("BACKUP_INTERVAL"), 3, minimum=1
        ),
        backups_in_snapshot=_parse_int("BACKUPS_IN_HA", env.get("BACKUPS_IN_HA"), 0),
        backups_in_store=_parse_int(
            "BACKUPS_IN_STORAGE", env.get("BACKUPS_IN_STORAGE"), 0
        ),
        backup_name_format=env.get("BACKUP_NAME_FORMAT") or DEFAULT_NAME_FORMAT,
        sync_interval=_parse_float("SYNC_INTERVAL", env.get("SYNC_INTERVAL"), 60.0),
        timezone=_parse_timezone(env.get("TZ")),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
