# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for snapsync tests.

Provides in-memory snapshot system and object store fakes, a manual clock,
and test configuration helpers.
"""

import asyncio
import tempfile
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import AsyncIterator, Dict, Generator, List, Tuple

import httpx
import pytest
import pytest_asyncio
from aiobotocore.session import get_session
from moto.server import ThreadedMotoServer

from snapsync.config import SnapSyncConfig
from snapsync.exceptions import SnapshotClientError, SnapshotNotFoundError, StorageError
from snapsync.models import SnapshotInfo, StoredObject, backup_name_from_key

START = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


class ManualClock:
    """Clock whose time only moves when a test calls advance()."""

    def __init__(self, start: datetime = START):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


async def settle(rounds: int = 50) -> None:
    """Let pending tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_for(predicate, timeout: float = 5.0) -> None:
    """Poll until predicate() is true; ledger writes go through a thread pool."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class FakeSnapshotClient:
    """In-memory snapshot system."""

    def __init__(self, clock: ManualClock, archive_dir: Path):
        self.clock = clock
        self.archive_dir = archive_dir
        self.snapshots: Dict[str, SnapshotInfo] = {}
        self.deleted: List[str] = []
        self.restored: List[str] = []
        self.uploaded: List[bytes] = []
        self.fail_create = False
        self.fail_delete = False
        self.fail_list = False
        self.create_gate: asyncio.Event | None = None
        self._counter = 0

    def add(self, name: str, date: datetime, size: float = 10.0, type: str = "full") -> str:
        self._counter += 1
        slug = f"slug{self._counter:04d}"
        self.snapshots[slug] = SnapshotInfo(slug=slug, name=name, date=date, size=size, type=type)
        return slug

    async def create_full(self, name: str) -> str:
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create:
            raise SnapshotClientError("Supervisor returned HTTP 500", status_code=500)
        return self.add(name, self.clock.now())

    async def get(self, slug: str) -> SnapshotInfo:
        if slug not in self.snapshots:
            raise SnapshotNotFoundError("Backup not found in snapshot system")
        return self.snapshots[slug]

    async def list(self) -> List[SnapshotInfo]:
        if self.fail_list:
            raise SnapshotClientError("Supervisor request failed")
        return list(self.snapshots.values())

    async def delete(self, slug: str) -> None:
        if self.fail_delete:
            raise SnapshotClientError("Supervisor returned HTTP 500", status_code=500)
        if slug not in self.snapshots:
            raise SnapshotNotFoundError("Backup not found in snapshot system", status_code=404)
        del self.snapshots[slug]
        self.deleted.append(slug)

    async def restore(self, slug: str) -> None:
        if slug not in self.snapshots:
            raise SnapshotNotFoundError("Backup not found in snapshot system", status_code=404)
        self.restored.append(slug)

    async def upload(self, stream: AsyncIterator[bytes]) -> None:
        data = b"".join([chunk async for chunk in stream])
        self.uploaded.append(data)
        # The fake store's archives carry the backup name as their content
        self.add(data.decode(), self.clock.now())

    def archive_path(self, slug: str) -> Path:
        return self.archive_dir / f"{slug}.tar"

    def names(self) -> List[str]:
        return sorted(s.name for s in self.snapshots.values())


class FakeObjectStore:
    """In-memory object store."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.objects: Dict[str, StoredObject] = {}
        self.uploads: List[Tuple[str, Path]] = []
        self.deleted: List[str] = []
        self.fail_upload = False
        self.fail_delete = False
        self.fail_list = False

    def add(self, key: str, modified: datetime, size: float = 10.0) -> None:
        self.objects[key] = StoredObject(key=key, size=size, modified=modified)

    async def upload(self, key: str, local_path: Path) -> str:
        if self.fail_upload:
            raise StorageError("Failed to upload object", details={"key": key})
        self.uploads.append((key, local_path))
        self.add(key, self.clock.now())
        return key

    async def download(self, key: str) -> AsyncIterator[bytes]:
        if key not in self.objects:
            raise StorageError("Failed to download object", details={"key": key})
        yield backup_name_from_key(key).encode()

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StorageError("Failed to delete object", details={"key": key})
        self.objects.pop(key, None)
        self.deleted.append(key)

    async def stat(self, key: str) -> StoredObject:
        if key not in self.objects:
            raise StorageError("Failed to stat object", details={"key": key})
        return self.objects[key]

    async def list(self) -> List[StoredObject]:
        if self.fail_list:
            raise StorageError("Failed to list objects")
        return list(self.objects.values())

    def names(self) -> List[str]:
        return sorted(backup_name_from_key(k) for k in self.objects)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def snapshots(clock: ManualClock, temp_dir: Path) -> FakeSnapshotClient:
    return FakeSnapshotClient(clock, temp_dir / "backup")


@pytest.fixture
def store(clock: ManualClock) -> FakeObjectStore:
    return FakeObjectStore(clock)


@pytest.fixture
def test_config(temp_dir: Path) -> SnapSyncConfig:
    """Create a test configuration."""
    return SnapSyncConfig(
        bucket="test-bucket",
        region="us-east-1",
        supervisor_token="test-token",
        data_directory=temp_dir / "data",
        backup_directory=temp_dir / "backup",
        backup_name_format="B-{year}-{month}-{day} {hr24}:{min}:{sec}",
        backup_interval=3,
        sync_interval=60.0,
    )


@pytest_asyncio.fixture
async def engine(test_config, snapshots, store, clock):
    """Engine wired to the fakes. Not started; tests call sync_backups directly."""
    from snapsync.engine import BackupEngine

    engine = BackupEngine(test_config, snapshots, store, clock=clock)
    yield engine
    if engine.scheduler.running:
        await engine.stop()


def days_ago(days: float) -> datetime:
    return START - timedelta(days=days)


@pytest.fixture(scope="session")
def moto_endpoint() -> Generator[str, None, None]:
    """
    Run a moto S3 server for the whole session.

    aiobotocore talks to it over HTTP like it would to any S3-compatible
    endpoint.
    """
    server = ThreadedMotoServer(ip_address="127.0.0.1", port=0, verbose=False)
    server.start()
    host, port = server.get_host_and_port()
    yield f"http://{host}:{port}"
    server.stop()


@pytest_asyncio.fixture
async def s3_config(test_config: SnapSyncConfig, moto_endpoint: str) -> SnapSyncConfig:
    """Test configuration pointing at a fresh moto bucket."""
    async with httpx.AsyncClient() as client:
        await client.post(f"{moto_endpoint}/moto-api/reset")

    config = test_config.with_updates(
        endpoint_url=moto_endpoint,
        access_key_id="testing",
        secret_access_key="testing",
    )

    session = get_session()
    async with session.create_client(
        "s3",
        region_name=config.region,
        endpoint_url=moto_endpoint,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    ) as client:
        await client.create_bucket(Bucket=config.bucket)

    return config
