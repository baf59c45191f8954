# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Retention policy - decides which backups each store should stop keeping.

The policy is a pure function over the ledger: it never talks to a store.
The engine applies the resulting plan by recomputing keep_in_snapshot /
keep_in_store, and the next reconciliation pass performs the deletions.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

import structlog

from snapsync.models import BackupRecord, BackupStatus

logger = structlog.get_logger()


@dataclass
class RetentionPlan:
    """Ids of records that should no longer be kept, per store."""

    drop_from_snapshot: List[str] = field(default_factory=list)
    drop_from_store: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.drop_from_snapshot and not self.drop_from_store


def _eligible(records: Iterable[BackupRecord]) -> List[BackupRecord]:
    """Non-pinned, non-failed records, oldest first."""
    candidates = [
        r for r in records if not r.pinned and r.status != BackupStatus.FAILED
    ]
    return sorted(candidates, key=lambda r: r.date)


def _oldest_excess(group: Sequence[BackupRecord], limit: int) -> List[str]:
    if limit <= 0:
        return []
    excess = len(group) - limit
    if excess <= 0:
        return []
    return [r.id for r in group[:excess]]


def plan_retention(
    records: Sequence[BackupRecord],
    snapshot_limit: int,
    store_limit: int,
) -> RetentionPlan:
    """
    Compute which records exceed each store's retention limit.

    The snapshot group holds the eligible records currently present in the
    snapshot system. The store group holds every eligible record, since any
    of them ends up in the object store once uploaded. A limit of 0 disables
    enforcement for that store.

    Args:
        records: Current ledger
        snapshot_limit: Backups to keep in the snapshot system
        store_limit: Backups to keep in the object store

    Returns:
        RetentionPlan listing the ids to drop per store
    """
    eligible = _eligible(records)
    snapshot_group = [r for r in eligible if r.in_snapshot]

    return RetentionPlan(
        drop_from_snapshot=_oldest_excess(snapshot_group, snapshot_limit),
        drop_from_store=_oldest_excess(eligible, store_limit),
    )


def apply_retention(records: Sequence[BackupRecord], plan: RetentionPlan) -> None:
    """
    Recompute the keep flags of every eligible record from the plan.

    Flags are derived fresh on each pass, so a record trimmed earlier is
    kept again once it is back within the limit (after a deletion or a
    raised limit). Pinned and failed records are left untouched.
    """
    snapshot_ids = set(plan.drop_from_snapshot)
    store_ids = set(plan.drop_from_store)

    for record in records:
        if record.pinned or record.status == BackupStatus.FAILED:
            continue

        keep_in_snapshot = record.id not in snapshot_ids
        if record.keep_in_snapshot and not keep_in_snapshot:
            logger.debug("marked_for_snapshot_deletion", name=record.name)
        record.keep_in_snapshot = keep_in_snapshot

        keep_in_store = record.id not in store_ids
        if record.keep_in_store and not keep_in_store:
            logger.debug("marked_for_store_deletion", name=record.name)
        record.keep_in_store = keep_in_store
