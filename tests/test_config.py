# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Configuration Tests.

Covers validation, the functional builder, environment parsing and the
runtime options service.
"""

import json
from datetime import timedelta
from pathlib import Path

import pytest

from snapsync.config import (
    DEFAULT_NAME_FORMAT,
    STORJ_GATEWAY_URL,
    SnapSyncConfig,
    StorageBackend,
)
from snapsync.exceptions import ConfigurationError


# ============================================================================
# Validation
# ============================================================================

def test_config_validation():
    with pytest.raises(ConfigurationError) as exc_info:
        SnapSyncConfig(bucket="INVALID_BUCKET")

    assert "Invalid bucket name" in str(exc_info.value)

    with pytest.raises(ConfigurationError) as exc_info:
        SnapSyncConfig(bucket="valid-bucket", backup_interval=0)

    assert "backup_interval" in str(exc_info.value)

    with pytest.raises(ConfigurationError) as exc_info:
        SnapSyncConfig(bucket="valid-bucket", timezone="Mars/Olympus")

    assert "timezone" in str(exc_info.value)

    with pytest.raises(ConfigurationError) as exc_info:
        SnapSyncConfig(bucket="valid-bucket", backup_name_format="  ")

    assert "name format" in str(exc_info.value)


def test_validation_collects_every_error():
    with pytest.raises(ConfigurationError) as exc_info:
        SnapSyncConfig(bucket="x", backups_in_snapshot=-1, backups_in_store=-2)

    errors = exc_info.value.details["errors"]
    assert len(errors) == 3


def test_credentials_must_come_in_pairs():
    with pytest.raises(ConfigurationError):
        SnapSyncConfig(bucket="valid-bucket", access_key_id="AKIA")


def test_derived_properties(temp_dir: Path):
    config = SnapSyncConfig(bucket="ha-backups", data_directory=temp_dir, backup_interval=4)

    assert config.ledger_path == temp_dir / "backups.json"
    assert config.options_path == temp_dir / "options.json"
    assert config.backup_interval_delta == timedelta(days=4)
    assert config.resolved_endpoint_url is None


def test_storj_uses_gateway_endpoint():
    config = SnapSyncConfig(bucket="ha-backups", storage_backend=StorageBackend.STORJ)

    assert config.resolved_endpoint_url == STORJ_GATEWAY_URL

    custom = config.with_updates(endpoint_url="https://gateway.example.com")
    assert custom.resolved_endpoint_url == "https://gateway.example.com"


def test_with_updates_revalidates():
    config = SnapSyncConfig(bucket="ha-backups")

    updated = config.with_updates(backups_in_store=5)
    assert updated.backups_in_store == 5
    assert config.backups_in_store == 0

    with pytest.raises(ConfigurationError):
        config.with_updates(backup_interval=0)


# ============================================================================
# Builder
# ============================================================================

def test_builder_fluent_api():
    from snapsync.builder import (
        backup_every,
        build_config,
        create_empty_config,
        keep_in_snapshot,
        keep_in_store,
        pipe,
        sync_every,
        with_bucket,
        with_credentials,
        with_storage_backend,
        with_supervisor,
    )

    config = build_config(
        pipe(
            lambda c: with_bucket(c, "ha-backups"),
            lambda c: with_storage_backend(c, "storj"),
            lambda c: with_credentials(c, "key", "secret"),
            lambda c: with_supervisor(c, "http://supervisor/", "token"),
            lambda c: backup_every(c, 7),
            lambda c: keep_in_snapshot(c, 2),
            lambda c: keep_in_store(c, 10),
            lambda c: sync_every(c, 30),
        )(create_empty_config())
    )

    assert config.bucket == "ha-backups"
    assert config.storage_backend == StorageBackend.STORJ
    assert config.supervisor_url == "http://supervisor"
    assert config.backup_interval == 7
    assert config.backups_in_snapshot == 2
    assert config.backups_in_store == 10
    assert config.sync_interval == 30.0
    assert config.backup_name_format == DEFAULT_NAME_FORMAT


def test_builder_rejects_bad_values():
    from snapsync.builder import backup_every, build_config, create_empty_config, keep_in_store

    with pytest.raises(ValueError):
        backup_every(create_empty_config(), 0)

    with pytest.raises(ValueError):
        keep_in_store(create_empty_config(), -1)

    with pytest.raises(ConfigurationError):
        build_config(create_empty_config())


def test_create_config(temp_dir: Path):
    from snapsync.builder import create_config

    config = create_config(
        "ha-backups",
        data_directory=temp_dir,
        backups_in_store=3,
        timezone="Europe/Berlin",
        sync_interval=15.0,
    )

    assert config.data_directory == temp_dir
    assert config.backup_directory == Path("/backup")
    assert config.backups_in_store == 3
    assert config.timezone == "Europe/Berlin"
    assert config.sync_interval == 15.0


# ============================================================================
# Environment
# ============================================================================

def test_config_from_env():
    from snapsync.env import create_config_from_env

    config = create_config_from_env(
        {
            "S3_BUCKET": "ha-backups",
            "S3_ACCESS_KEY_ID": "key",
            "S3_SECRET_ACCESS_KEY": "secret",
            "S3_ENDPOINT": "http://minio:9000",
            "SUPERVISOR_TOKEN": "token",
            "BACKUP_INTERVAL": "5",
            "BACKUPS_IN_HA": "2",
            "BACKUPS_IN_STORAGE": "8",
            "TZ": "Europe/Berlin",
            "DATA_DIRECTORY": "/tmp/snapsync",
            "LOG_LEVEL": "debug",
        }
    )

    assert config.bucket == "ha-backups"
    assert config.access_key_id == "key"
    assert config.endpoint_url == "http://minio:9000"
    assert config.supervisor_token == "token"
    assert config.backup_interval == 5
    assert config.backups_in_snapshot == 2
    assert config.backups_in_store == 8
    assert config.timezone == "Europe/Berlin"
    assert config.data_directory == Path("/tmp/snapsync")
    assert config.log_level == "DEBUG"


def test_env_defaults():
    from snapsync.env import create_config_from_env

    config = create_config_from_env({"S3_BUCKET": "ha-backups"})

    assert config.storage_backend == StorageBackend.S3
    assert config.backup_interval == 3
    assert config.backups_in_snapshot == 0
    assert config.backups_in_store == 0
    assert config.backup_name_format == DEFAULT_NAME_FORMAT
    assert config.timezone == "UTC"
    assert config.sync_interval == 60.0


def test_env_storj_backend():
    from snapsync.env import create_config_from_env

    config = create_config_from_env(
        {
            "STORAGE_BACKEND": "storj",
            "STORJ_BUCKET": "storj-backups",
            "STORJ_ACCESS_KEY_ID": "key",
            "STORJ_SECRET_ACCESS_KEY": "secret",
        }
    )

    assert config.storage_backend == StorageBackend.STORJ
    assert config.bucket == "storj-backups"
    assert config.resolved_endpoint_url == STORJ_GATEWAY_URL


@pytest.mark.parametrize(
    "environ, message",
    [
        ({}, "S3_BUCKET"),
        ({"STORAGE_BACKEND": "storj"}, "STORJ_BUCKET"),
        ({"S3_BUCKET": "ha-backups", "STORAGE_BACKEND": "ftp"}, "STORAGE_BACKEND"),
        ({"S3_BUCKET": "ha-backups", "BACKUP_INTERVAL": "0"}, "BACKUP_INTERVAL"),
        ({"S3_BUCKET": "ha-backups", "BACKUPS_IN_HA": "many"}, "BACKUPS_IN_HA"),
        ({"S3_BUCKET": "ha-backups", "TZ": "Nowhere/City"}, "TZ"),
    ],
)
def test_env_errors_are_explained(environ, message):
    from snapsync.env import create_config_from_env

    with pytest.raises(ConfigurationError) as exc_info:
        create_config_from_env(environ)

    assert message in str(exc_info.value)


# ============================================================================
# Runtime options
# ============================================================================

@pytest.mark.asyncio
async def test_options_update_is_persisted_and_published(test_config):
    from snapsync.options import OptionsService

    options = OptionsService(test_config)

    updated = await options.update(backups_in_store=4, backup_interval=2)

    assert updated.backups_in_store == 4
    assert options.options["backup_interval"] == 2
    assert options.changes.get_nowait() is updated

    saved = json.loads(test_config.options_path.read_text())
    assert saved["backups_in_store"] == 4
    assert saved["backup_interval"] == 2


@pytest.mark.asyncio
async def test_options_reject_invalid_values(test_config):
    from snapsync.options import OptionsService

    options = OptionsService(test_config)

    with pytest.raises(ConfigurationError):
        await options.update(backup_interval=0)

    with pytest.raises(ConfigurationError):
        await options.update(bucket="other-bucket")

    assert options.config is test_config
    assert options.changes.empty()
    assert not test_config.options_path.exists()


@pytest.mark.asyncio
async def test_saved_options_override_environment(test_config):
    from snapsync.options import OptionsService

    test_config.data_directory.mkdir(parents=True)
    test_config.options_path.write_text(
        json.dumps({"backups_in_snapshot": 6, "unknown": True})
    )

    loaded = await OptionsService(test_config).load()

    assert loaded.backups_in_snapshot == 6
    assert loaded.bucket == test_config.bucket
