# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync Engine - Backup creation and three-way reconciliation.

The engine keeps the local ledger, the snapshot system and the object
store converging:

1. Backups are created in the snapshot system and uploaded to the store.
2. Reconciliation passes discover untracked backups in either store,
   enforce retention, upload snapshot-only backups and persist the ledger.

All shared state (ledger records, in-flight set) is guarded by one
asyncio.Lock that is never held across a network call. A reconciliation
pass is skipped entirely while any backup operation is in flight.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterator, List, Set, Tuple

import structlog

from snapsync.clients.base import ObjectStore, SnapshotClient
from snapsync.clock import Clock, SystemClock
from snapsync.config import SnapSyncConfig
from snapsync.exceptions import (
    BackupError,
    BackupExistsError,
    BackupInProgressError,
    BackupNotFoundError,
    RestoreError,
    SnapshotNotFoundError,
    StorageError,
)
from snapsync.ledger import LedgerStore
from snapsync.models import (
    BackupRecord,
    BackupStatus,
    SnapshotInfo,
    StoredObject,
    object_key_for,
)
from snapsync.naming import generate_backup_id, generate_backup_name
from snapsync.retention import apply_retention, plan_retention
from snapsync.scheduler import Scheduler

logger = structlog.get_logger()


class InFlightSet:
    """Ids of backups with an operation in progress."""

    def __init__(self) -> None:
        self._ids: Set[str] = set()

    def add(self, backup_id: str) -> None:
        self._ids.add(backup_id)

    def discard(self, backup_id: str) -> None:
        self._ids.discard(backup_id)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, backup_id: object) -> bool:
        return backup_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(set(self._ids))


@dataclass
class _PassPlan:
    """Network actions decided while holding the lock."""

    snapshot_deletes: List[Tuple[BackupRecord, str]] = field(default_factory=list)
    store_deletes: List[Tuple[BackupRecord, str]] = field(default_factory=list)
    discovered: int = 0
    failed: Set[str] = field(default_factory=set)


class BackupEngine:
    """
    Creates backups and reconciles the ledger with both external stores.
    """

    def __init__(
        self,
        config: SnapSyncConfig,
        snapshots: SnapshotClient,
        store: ObjectStore,
        ledger: LedgerStore | None = None,
        clock: Clock | None = None,
        config_changes: "asyncio.Queue[SnapSyncConfig] | None" = None,
    ):
        self.config = config
        self.snapshots = snapshots
        self.store = store
        self.ledger = ledger or LedgerStore(config.ledger_path)
        self.clock = clock or SystemClock()
        self.config_changes = config_changes

        self.backups: List[BackupRecord] = []
        self.in_flight = InFlightSet()

        self._lock = asyncio.Lock()
        self._sync_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._config_listener: asyncio.Task | None = None

        self.scheduler = Scheduler(
            clock=self.clock,
            sync_interval=config.sync_interval,
            on_backup_due=self._scheduled_backup,
            on_sync_due=self._scheduled_sync,
            compute_backup_delay=self._next_backup_delay,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load the ledger, reconcile once, then start the timers."""
        async with self._lock:
            self.backups = await self.ledger.load()

        try:
            await self.sync_backups()
        except Exception as e:
            logger.error("initial_sync_failed", error=str(e))

        self.scheduler.start()

        if self.config_changes is not None:
            self._config_listener = asyncio.create_task(
                self.listen_for_config_changes(self.config_changes)
            )

        logger.info("engine_started", backups=len(self.backups))

    async def stop(self) -> None:
        """Stop the timers and wait for running backup tasks to finish."""
        await self.scheduler.stop()

        if self._config_listener is not None:
            self._config_listener.cancel()
            await asyncio.gather(self._config_listener, return_exceptions=True)
            self._config_listener = None

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        logger.info("engine_stopped")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_backups(self) -> List[BackupRecord]:
        return list(self.backups)

    def time_until_next_backup(self) -> timedelta:
        return self.scheduler.time_until_next_backup()

    def name_exists(self, name: str | None) -> bool:
        generated = self._generate_name(name)
        return any(r.name == generated for r in self.backups)

    def get_backup(self, backup_id: str) -> BackupRecord:
        for record in self.backups:
            if record.id == backup_id:
                return record
        raise BackupNotFoundError(
            "Backup not found",
            details={"id": backup_id},
        )

    # ------------------------------------------------------------------
    # Backup creation
    # ------------------------------------------------------------------

    def start_backup(self, name: str | None = None) -> asyncio.Task:
        """
        Run perform_backup in its own task so the caller is not blocked.

        Name collisions and a busy engine are reported synchronously.
        """
        if self.in_flight:
            raise BackupInProgressError("Another backup is already in progress")
        if self.name_exists(name):
            raise BackupExistsError(
                "A backup with this name already exists",
                details={"name": self._generate_name(name)},
            )

        task = asyncio.create_task(self._run_backup_task(name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_backup_task(self, name: str | None) -> None:
        try:
            await self.perform_backup(name)
        except Exception as e:
            logger.error("backup_task_failed", name=name, error=str(e))

    async def perform_backup(self, name: str | None = None) -> BackupRecord:
        """
        Create a full backup and upload it to the object store.

        PENDING -> RUNNING -> SYNCING -> SYNCED, or FAILED at the failing
        step. The record stays in the ledger either way.

        Raises:
            BackupInProgressError: Another backup is running
            BackupExistsError: The name is already tracked
            BackupError: The snapshot or upload step failed
        """
        async with self._lock:
            if self.in_flight:
                raise BackupInProgressError("Another backup is already in progress")

            now = self._local_now()
            backup_name = generate_backup_name(name, self.config.backup_name_format, now)
            if any(r.name == backup_name for r in self.backups):
                raise BackupExistsError(
                    "A backup with this name already exists",
                    details={"name": backup_name},
                )

            record = BackupRecord(id=self._new_id(), name=backup_name, date=now)
            self.backups.insert(0, record)
            self.in_flight.add(record.id)

        logger.info("backup_started", name=record.name, id=record.id)

        try:
            await self._create_and_upload(record)
        finally:
            async with self._lock:
                self.in_flight.discard(record.id)
            self.scheduler.reset_backup_timer()

        logger.info("backup_completed", name=record.name, status=record.status.value)

        try:
            await self.sync_backups()
        except Exception as e:
            logger.error("post_backup_sync_failed", error=str(e))

        return record

    async def _create_and_upload(self, record: BackupRecord) -> None:
        record.update_status(BackupStatus.RUNNING)

        try:
            slug = await self.snapshots.create_full(record.name)
        except Exception as e:
            await self._fail(record, e, "snapshot_create")
            raise BackupError(
                f"Backup creation in snapshot system failed: {e}",
                details={"name": record.name},
            ) from e

        async with self._lock:
            record.slug = slug
            record.update_status(BackupStatus.SYNCING)
            await self._save_locked()

        logger.debug("snapshot_created", name=record.name, slug=slug)

        try:
            snapshot = await self.snapshots.get(slug)
            async with self._lock:
                record.apply_snapshot(snapshot)

            key = await self.store.upload(
                object_key_for(record.name), self.snapshots.archive_path(slug)
            )
        except Exception as e:
            await self._fail(record, e, "upload")
            raise BackupError(
                f"Upload to object store failed: {e}",
                details={"name": record.name, "slug": slug},
            ) from e

        async with self._lock:
            record.storage_ref = key
            record.error_message = ""
            record.update_status(BackupStatus.SYNCED)
            self.in_flight.discard(record.id)
            await self._save_locked()

    async def _fail(self, record: BackupRecord, error: Exception, stage: str) -> None:
        """Mark a record failed, release it and persist the ledger."""
        logger.error("backup_step_failed", name=record.name, stage=stage, error=str(error))
        async with self._lock:
            record.fail(str(error))
            self.in_flight.discard(record.id)
            await self._save_locked()

    # ------------------------------------------------------------------
    # Deletion, restore, download, pinning
    # ------------------------------------------------------------------

    async def delete_backup(self, backup_id: str) -> None:
        """
        Delete a backup from both stores and drop it from the ledger.

        A snapshot-system not-found is expected for store-only backups and
        is ignored.

        Raises:
            BackupNotFoundError: Unknown id
            BackupError: A store refused the deletion; the record is kept as FAILED
        """
        async with self._lock:
            record = self.get_backup(backup_id)
            if backup_id in self.in_flight:
                raise BackupInProgressError(
                    "Backup has an operation in progress",
                    details={"id": backup_id},
                )
            self.in_flight.add(record.id)
            record.update_status(BackupStatus.DELETING)

        logger.info("backup_deletion_started", name=record.name, id=record.id)

        try:
            if record.slug:
                try:
                    await self.snapshots.delete(record.slug)
                    logger.info("deleted_from_snapshot_system", name=record.name)
                except SnapshotNotFoundError:
                    logger.debug("snapshot_already_absent", name=record.name)
                except Exception as e:
                    await self._fail(record, e, "snapshot_delete")
                    raise BackupError(
                        f"Failed to delete backup in snapshot system: {e}",
                        details={"id": backup_id},
                    ) from e
                record.slug = ""

            if record.storage_ref:
                try:
                    await self.store.delete(record.storage_ref)
                    logger.info("deleted_from_object_store", name=record.name)
                except Exception as e:
                    await self._fail(record, e, "store_delete")
                    raise BackupError(
                        f"Failed to delete backup from object store: {e}",
                        details={"id": backup_id},
                    ) from e
                record.storage_ref = ""

            async with self._lock:
                self.backups = [r for r in self.backups if r.id != record.id]
                self.in_flight.discard(record.id)
                await self._save_locked()
        finally:
            async with self._lock:
                self.in_flight.discard(record.id)
            self.scheduler.reset_backup_timer()

        logger.info("backup_deleted", name=record.name)

        try:
            await self.sync_backups()
        except Exception as e:
            logger.error("post_delete_sync_failed", error=str(e))

    async def restore_backup(self, backup_id: str) -> None:
        """
        Ask the snapshot system to restore a backup it holds.

        Raises:
            BackupNotFoundError: Unknown id
            RestoreError: Not in the snapshot system, or the restore call failed
        """
        record = self.get_backup(backup_id)
        if not record.slug:
            raise RestoreError(
                "Backup is not present in the snapshot system; download it first",
                details={"id": backup_id, "name": record.name},
            )

        logger.info("restore_started", name=record.name, slug=record.slug)
        try:
            await self.snapshots.restore(record.slug)
        except Exception as e:
            raise RestoreError(
                f"Failed to restore backup in snapshot system: {e}",
                details={"id": backup_id},
            ) from e

        logger.info("restore_completed", name=record.name)

    async def download_backup(self, backup_id: str) -> None:
        """
        Copy a backup from the object store back into the snapshot system.

        Raises:
            BackupNotFoundError: Unknown id
            RestoreError: Not in the object store, or the transfer failed
        """
        async with self._lock:
            record = self.get_backup(backup_id)
            if not record.storage_ref:
                raise RestoreError(
                    "Backup is not present in the object store",
                    details={"id": backup_id, "name": record.name},
                )
            if self.in_flight:
                raise BackupInProgressError("Another backup operation is in progress")
            self.in_flight.add(record.id)
            previous = record.status
            record.update_status(BackupStatus.DOWNLOADING)

        logger.info("download_started", name=record.name, key=record.storage_ref)

        try:
            await self.snapshots.upload(self.store.download(record.storage_ref))
        except Exception as e:
            logger.error("download_failed", name=record.name, error=str(e))
            async with self._lock:
                record.update_status(previous)
                record.error_message = str(e)
                self.in_flight.discard(record.id)
            raise RestoreError(
                f"Failed to copy backup into snapshot system: {e}",
                details={"id": backup_id},
            ) from e

        async with self._lock:
            record.keep_in_snapshot = True
            record.error_message = ""
            self.in_flight.discard(record.id)
            await self._save_locked()

        logger.info("download_completed", name=record.name)
        await self.sync_backups()

    async def pin_backup(self, backup_id: str) -> None:
        async with self._lock:
            record = self.get_backup(backup_id)
            record.pin()
            await self._save_locked()
        logger.info("backup_pinned", name=record.name)

    async def unpin_backup(self, backup_id: str) -> None:
        async with self._lock:
            record = self.get_backup(backup_id)
            record.pinned = False
            await self._save_locked()
        logger.info("backup_unpinned", name=record.name)

    async def reset_all(self) -> None:
        """Forget every tracked backup and rebuild the ledger from the stores."""
        async with self._lock:
            if self.in_flight:
                raise BackupInProgressError("Cannot reset while a backup is in progress")
            self.backups = []
            await self.ledger.reset()

        logger.info("ledger_reset")
        await self.sync_backups()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def sync_backups(self) -> bool:
        """
        Run one reconciliation pass, then re-arm the backup timer.

        Retention is decided before both listings are matched, so records
        discovered during a pass are only counted against the limits from
        the next pass on. A first pass over three untracked snapshot-only
        backups with a store limit of 2 therefore uploads the two oldest,
        and the following pass swaps the oldest for the newest.

        Returns:
            False if the pass was skipped because a backup is in flight

        Raises:
            SnapshotClientError / StorageError: A store could not be listed;
                nothing is changed in that case
            LedgerError: The ledger could not be saved
        """
        try:
            return await self._run_sync_pass()
        finally:
            self.scheduler.reset_backup_timer()

    async def _run_sync_pass(self) -> bool:
        async with self._sync_lock:
            async with self._lock:
                if self.in_flight:
                    logger.info("sync_skipped_operation_in_progress", ongoing=len(self.in_flight))
                    return False

            snapshots = [s for s in await self.snapshots.list() if not s.is_partial]
            objects = await self.store.list()

            async with self._lock:
                plan = self._reconcile_locked(snapshots, objects)

            await self._execute_deletions(plan)

            async with self._lock:
                self._drop_absent_locked()
                stored = self._recompute_statuses_locked(plan.failed)
                uploads = self._select_uploads_locked(stored)

            for record in uploads:
                await self._upload_record(record)

            async with self._lock:
                self.backups.sort(key=lambda r: r.date, reverse=True)
                await self._save_locked()

        logger.info(
            "sync_completed",
            backups=len(self.backups),
            discovered=plan.discovered,
            deleted_in_snapshot=len(plan.snapshot_deletes),
            deleted_in_store=len(plan.store_deletes),
            uploaded=len(uploads),
        )
        return True

    def _reconcile_locked(
        self, snapshots: List[SnapshotInfo], objects: List[StoredObject]
    ) -> _PassPlan:
        """Retention, tombstoning and matching of both listings by name."""
        plan = _PassPlan()
        settled = [r for r in self.backups if r.id not in self.in_flight]

        retention = plan_retention(
            settled, self.config.backups_in_snapshot, self.config.backups_in_store
        )
        apply_retention(settled, retention)

        for record in settled:
            record.slug = ""
            record.storage_ref = ""

        by_name: Dict[str, BackupRecord] = {r.name: r for r in self.backups}

        for snapshot in snapshots:
            name = snapshot.name or snapshot.slug
            record = by_name.get(name)
            if record is None:
                logger.info("untracked_snapshot_found", name=name)
                record = self._discover(name)
                record.apply_snapshot(snapshot)
                by_name[name] = record
                plan.discovered += 1
            elif record.id in self.in_flight:
                continue
            elif not record.keep_in_snapshot and not record.pinned:
                plan.snapshot_deletes.append((record, snapshot.slug))
            else:
                record.apply_snapshot(snapshot)

        for obj in objects:
            record = by_name.get(obj.name)
            if record is None:
                logger.info("untracked_object_found", key=obj.key)
                record = self._discover(obj.name)
                record.apply_stored_object(obj)
                by_name[obj.name] = record
                plan.discovered += 1
            elif record.id in self.in_flight:
                continue
            elif not record.keep_in_store and not record.pinned:
                plan.store_deletes.append((record, obj.key))
            else:
                record.apply_stored_object(obj, keep_date=record.in_snapshot)

        return plan

    def _discover(self, name: str) -> BackupRecord:
        record = BackupRecord(id=self._new_id(), name=name, date=self._local_now())
        self.backups.append(record)
        return record

    async def _execute_deletions(self, plan: _PassPlan) -> None:
        for record, slug in plan.snapshot_deletes:
            try:
                await self.snapshots.delete(slug)
                logger.info("deleted_from_snapshot_system", name=record.name)
            except SnapshotNotFoundError:
                logger.debug("snapshot_already_absent", name=record.name)
            except Exception as e:
                logger.error("snapshot_delete_failed", name=record.name, error=str(e))
                async with self._lock:
                    record.slug = slug
                    record.fail(str(e))
                plan.failed.add(record.id)

        for record, key in plan.store_deletes:
            try:
                await self.store.delete(key)
                logger.info("deleted_from_object_store", name=record.name)
            except Exception as e:
                logger.error("store_delete_failed", name=record.name, error=str(e))
                async with self._lock:
                    record.storage_ref = key
                    record.fail(str(e))
                plan.failed.add(record.id)

    def _drop_absent_locked(self) -> None:
        """Forget records no store holds any more."""
        kept: List[BackupRecord] = []
        for record in self.backups:
            absent = not record.in_snapshot and not record.in_store
            if (
                absent
                and record.status != BackupStatus.FAILED
                and record.id not in self.in_flight
            ):
                logger.info("backup_forgotten", name=record.name)
                continue
            kept.append(record)
        self.backups = kept

    def _recompute_statuses_locked(self, failed: Set[str]) -> int:
        """Set status from reference presence; return non-pinned records in the store."""
        stored = 0
        for record in self.backups:
            if record.id in self.in_flight:
                continue

            # a delete that failed in this pass keeps its FAILED status
            if record.id not in failed:
                if record.in_snapshot and record.in_store:
                    record.update_status(BackupStatus.SYNCED)
                    record.error_message = ""
                elif record.in_snapshot:
                    record.update_status(BackupStatus.HAONLY)
                    record.error_message = ""
                elif record.in_store:
                    record.update_status(BackupStatus.STORAGEONLY)
                    record.error_message = ""

            if record.in_store and not record.pinned:
                stored += 1
        return stored

    def _select_uploads_locked(self, stored: int) -> List[BackupRecord]:
        """Oldest snapshot-only records needed to reach the store limit."""
        candidates = sorted(
            (
                r
                for r in self.backups
                if r.status == BackupStatus.HAONLY
                and r.keep_in_store
                and r.id not in self.in_flight
            ),
            key=lambda r: r.date,
        )

        limit = self.config.backups_in_store
        if limit > 0:
            needed = limit - stored
            if needed <= 0:
                return []
            candidates = candidates[:needed]

        for record in candidates:
            record.update_status(BackupStatus.SYNCING)
        return candidates

    async def _upload_record(self, record: BackupRecord) -> None:
        key = object_key_for(record.name)
        logger.info("uploading_backup", name=record.name, key=key)

        try:
            await self.store.upload(key, self.snapshots.archive_path(record.slug))
        except Exception as e:
            logger.error("upload_failed", name=record.name, error=str(e))
            async with self._lock:
                record.fail(str(e))
            return

        try:
            obj = await self.store.stat(key)
        except StorageError as e:
            logger.warning("uploaded_object_stat_failed", key=key, error=str(e))
            obj = None

        async with self._lock:
            if obj is not None:
                record.apply_stored_object(obj, keep_date=record.in_snapshot)
            else:
                record.storage_ref = key
            record.keep_in_store = True
            record.error_message = ""
            record.update_status(BackupStatus.SYNCED)

    # ------------------------------------------------------------------
    # Configuration changes
    # ------------------------------------------------------------------

    async def apply_config(self, new_config: SnapSyncConfig) -> None:
        """React to a runtime configuration change."""
        old = self.config
        self.config = new_config

        if new_config.backup_name_format != old.backup_name_format:
            logger.info("backup_name_format_updated", value=new_config.backup_name_format)

        if new_config.sync_interval != old.sync_interval:
            self.scheduler.set_sync_interval(new_config.sync_interval)

        if new_config.backup_interval != old.backup_interval:
            logger.info("backup_interval_updated", days=new_config.backup_interval)
            self.scheduler.reset_backup_timer()

        if (
            new_config.backups_in_snapshot != old.backups_in_snapshot
            or new_config.backups_in_store != old.backups_in_store
        ):
            logger.info(
                "retention_updated",
                backups_in_snapshot=new_config.backups_in_snapshot,
                backups_in_store=new_config.backups_in_store,
            )
            await self.sync_backups()

    async def listen_for_config_changes(
        self, changes: "asyncio.Queue[SnapSyncConfig]"
    ) -> None:
        while True:
            new_config = await changes.get()
            try:
                await self.apply_config(new_config)
            except Exception as e:
                logger.error("config_change_failed", error=str(e))
            finally:
                changes.task_done()

    # ------------------------------------------------------------------
    # Scheduler callbacks and helpers
    # ------------------------------------------------------------------

    async def _scheduled_backup(self) -> None:
        await self.perform_backup(None)

    async def _scheduled_sync(self) -> None:
        await self.sync_backups()

    def _next_backup_delay(self) -> timedelta:
        if not self.backups:
            return timedelta(0)
        latest = max(r.date for r in self.backups)
        elapsed = self.clock.now() - latest
        return self.config.backup_interval_delta - elapsed

    def _local_now(self):
        return self.clock.now().astimezone(self.config.tz)

    def _generate_name(self, name: str | None) -> str:
        return generate_backup_name(name, self.config.backup_name_format, self._local_now())

    def _new_id(self) -> str:
        """Timestamp id; bumped by a microsecond on the rare collision."""
        now = self.clock.now()
        existing = {r.id for r in self.backups}
        backup_id = generate_backup_id(now)
        while backup_id in existing:
            now += timedelta(microseconds=1)
            backup_id = generate_backup_id(now)
        return backup_id

    async def _save_locked(self) -> None:
        await self.ledger.save(self.backups)
