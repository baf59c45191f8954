# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Capability interfaces the engine consumes.

The engine only ever sees these two protocols; which snapshot system or
object store sits behind them is decided at startup by configuration.
"""

from pathlib import Path
from typing import AsyncIterator, List, Protocol, runtime_checkable

from snapsync.models import SnapshotInfo, StoredObject


@runtime_checkable
class SnapshotClient(Protocol):
    """Creates, lists, restores and deletes full backups in the snapshot system."""

    async def create_full(self, name: str) -> str:
        """Create a full backup and return its slug."""
        ...

    async def get(self, slug: str) -> SnapshotInfo:
        ...

    async def list(self) -> List[SnapshotInfo]:
        ...

    async def delete(self, slug: str) -> None:
        ...

    async def restore(self, slug: str) -> None:
        ...

    async def upload(self, stream: AsyncIterator[bytes]) -> None:
        """Push a backup archive back into the snapshot system."""
        ...

    def archive_path(self, slug: str) -> Path:
        """Local path of the archive the snapshot system wrote for `slug`."""
        ...


@runtime_checkable
class ObjectStore(Protocol):
    """Uploads, downloads, lists and deletes backup archives by key."""

    async def upload(self, key: str, local_path: Path) -> str:
        """Upload a local file and return the remote key."""
        ...

    def download(self, key: str) -> AsyncIterator[bytes]:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def stat(self, key: str) -> StoredObject:
        ...

    async def list(self) -> List[StoredObject]:
        ...
