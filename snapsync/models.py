# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync Models - Backup records and the metadata reported by each store.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict

# Object keys are "<name>.tar"; the suffix is stripped to get the join name
OBJECT_SUFFIX = ".tar"


class BackupStatus(str, Enum):
    """Lifecycle state of a tracked backup."""

    PENDING = "PENDING"  # Created, no external action yet
    RUNNING = "RUNNING"  # Snapshot creation requested
    SYNCING = "SYNCING"  # Upload to the object store in progress
    SYNCED = "SYNCED"  # Present in both stores
    FAILED = "FAILED"  # Last attempt failed, see error_message
    HAONLY = "HAONLY"  # Present only in the snapshot system
    STORAGEONLY = "STORAGEONLY"  # Present only in the object store
    DELETING = "DELETING"  # Deletion in progress
    DOWNLOADING = "DOWNLOADING"  # Copying from the object store to the snapshot system


@dataclass(frozen=True)
class SnapshotInfo:
    """A backup as reported by the snapshot system."""

    slug: str
    name: str
    date: datetime
    size: float  # MB
    type: str = "full"

    @property
    def is_partial(self) -> bool:
        return self.type == "partial"


@dataclass(frozen=True)
class StoredObject:
    """An object as reported by the object store."""

    key: str
    size: float  # MB
    modified: datetime

    @property
    def name(self) -> str:
        return backup_name_from_key(self.key)


def object_key_for(name: str) -> str:
    return f"{name}{OBJECT_SUFFIX}"


def backup_name_from_key(key: str) -> str:
    if key.endswith(OBJECT_SUFFIX):
        return key[: -len(OBJECT_SUFFIX)]
    return key


@dataclass
class BackupRecord:
    """
    A backup tracked in the local ledger.

    `slug` and `storage_ref` are empty until the respective store reports
    the backup; `keep_in_snapshot`/`keep_in_store` hold the desired presence
    decided by the retention policy.
    """

    id: str
    name: str
    date: datetime = field(default_factory=lambda: datetime.now(UTC))
    status: BackupStatus = BackupStatus.PENDING
    slug: str = ""
    storage_ref: str = ""
    size: float = 0.0
    keep_in_snapshot: bool = True
    keep_in_store: bool = True
    pinned: bool = False
    error_message: str = ""

    @property
    def in_snapshot(self) -> bool:
        return bool(self.slug)

    @property
    def in_store(self) -> bool:
        return bool(self.storage_ref)

    def update_status(self, status: BackupStatus) -> None:
        self.status = status

    def fail(self, message: str) -> None:
        self.status = BackupStatus.FAILED
        self.error_message = message

    def pin(self) -> None:
        self.pinned = True
        self.keep_in_snapshot = True
        self.keep_in_store = True

    def apply_snapshot(self, snapshot: SnapshotInfo) -> None:
        """Attach snapshot system metadata to this record."""
        self.slug = snapshot.slug
        self.date = snapshot.date
        self.size = snapshot.size

    def apply_stored_object(self, obj: StoredObject, keep_date: bool = False) -> None:
        """
        Attach object store metadata to this record.

        The modification time is the upload time, so callers keep the
        snapshot date when the snapshot system also holds the backup.
        """
        self.storage_ref = obj.key
        self.size = obj.size
        if not keep_date:
            self.date = obj.modified

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "date": self.date.isoformat(),
            "status": self.status.value,
            "slug": self.slug,
            "storageRef": self.storage_ref,
            "size": self.size,
            "keepInSnapshot": self.keep_in_snapshot,
            "keepInStore": self.keep_in_store,
            "pinned": self.pinned,
            "errorMessage": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupRecord":
        date = datetime.fromisoformat(data["date"])
        if date.tzinfo is None:
            date = date.replace(tzinfo=UTC)
        return cls(
            id=data["id"],
            name=data["name"],
            date=date,
            status=BackupStatus(data.get("status", BackupStatus.PENDING.value)),
            slug=data.get("slug", ""),
            storage_ref=data.get("storageRef", ""),
            size=float(data.get("size", 0.0)),
            keep_in_snapshot=bool(data.get("keepInSnapshot", True)),
            keep_in_store=bool(data.get("keepInStore", True)),
            pinned=bool(data.get("pinned", False)),
            error_message=data.get("errorMessage", ""),
        )
