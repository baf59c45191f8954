# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Store Clients - snapshot system and object store adapters.
"""

from snapsync.clients.base import ObjectStore, SnapshotClient
from snapsync.clients.s3 import S3ObjectStore
from snapsync.clients.supervisor import SupervisorClient
from snapsync.config import SnapSyncConfig, StorageBackend


def create_object_store(config: SnapSyncConfig) -> ObjectStore:
    """
    Build the object store adapter selected by configuration.

    S3 and Storj both speak the S3 protocol; Storj only differs by the
    gateway endpoint resolved in the config.
    """
    if config.storage_backend in (StorageBackend.S3, StorageBackend.STORJ):
        return S3ObjectStore(config)

    from snapsync.exceptions import ConfigurationError

    raise ConfigurationError(
        f"Unsupported storage backend: {config.storage_backend}",
        details={"backend": str(config.storage_backend)},
    )


__all__ = [
    "ObjectStore",
    "SnapshotClient",
    "S3ObjectStore",
    "SupervisorClient",
    "create_object_store",
]
