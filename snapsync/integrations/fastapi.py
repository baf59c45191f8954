# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync FastAPI Integration - HTTP API over the backup engine.

This module provides:
- Backup endpoints (list, create, delete, restore, download, pin)
- Runtime options endpoints
- Health check
- A lifespan context manager that starts and stops the engine
"""

from contextlib import asynccontextmanager
from datetime import datetime, UTC

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from snapsync.engine import BackupEngine
from snapsync.exceptions import (
    BackupExistsError,
    BackupInProgressError,
    BackupNotFoundError,
    ConfigurationError,
    SnapSyncError,
)
from snapsync.options import OptionsService

logger = structlog.get_logger()


class BackupRequest(BaseModel):
    """Body of POST /backups. Without a name the configured template is used."""

    name: str | None = None


class OptionsUpdate(BaseModel):
    """Body of PATCH /config. Omitted fields are left unchanged."""

    backup_name_format: str | None = None
    backup_interval: int | None = Field(default=None, ge=1)
    backups_in_snapshot: int | None = Field(default=None, ge=0)
    backups_in_store: int | None = Field(default=None, ge=0)


def _status_for(exc: SnapSyncError) -> int:
    if isinstance(exc, BackupNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (BackupExistsError, BackupInProgressError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ConfigurationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_snapsync_routes(
    app: FastAPI,
    engine: BackupEngine,
    options: OptionsService,
    prefix: str = "/api",
) -> None:
    """
    Register snapsync endpoints on a FastAPI app.

    Args:
        app: FastAPI application
        engine: Running backup engine
        options: Runtime options service
        prefix: URL prefix for endpoints (default: /api)
    """

    @app.exception_handler(SnapSyncError)
    async def snapsync_error_handler(_request: Request, exc: SnapSyncError):
        code = _status_for(exc)
        if code >= 500:
            logger.error("request_failed", error=str(exc))
        return JSONResponse(
            status_code=code,
            content={"detail": exc.message, "details": exc.details},
        )

    @app.get(f"{prefix}/backups")
    async def list_backups() -> list:
        """All tracked backups, newest first."""
        return [record.to_dict() for record in engine.list_backups()]

    @app.post(f"{prefix}/backups", status_code=status.HTTP_202_ACCEPTED)
    async def create_backup(request: BackupRequest | None = None) -> dict:
        """
        Start a backup in the background.

        Returns 409 when the name is already tracked or a backup is running.
        """
        name = request.name if request else None
        if engine.name_exists(name):
            raise BackupExistsError(
                "A backup with this name already exists",
                details={"name": name},
            )

        engine.start_backup(name)
        return {"status": "started", "name": name}

    @app.get(f"{prefix}/backups/next")
    async def next_backup() -> dict:
        """Milliseconds until the scheduled backup fires."""
        remaining = engine.time_until_next_backup()
        return {"milliseconds": int(remaining.total_seconds() * 1000)}

    @app.post(f"{prefix}/backups/reset")
    async def reset_backups() -> dict:
        """Forget every tracked backup and rebuild the ledger from both stores."""
        await engine.reset_all()
        return {"status": "reset", "backups": len(engine.list_backups())}

    @app.delete(f"{prefix}/backups/{{backup_id}}")
    async def delete_backup(backup_id: str) -> dict:
        await engine.delete_backup(backup_id)
        return {"status": "deleted", "id": backup_id}

    @app.post(f"{prefix}/backups/{{backup_id}}/restore")
    async def restore_backup(backup_id: str) -> dict:
        await engine.restore_backup(backup_id)
        return {"status": "restored", "id": backup_id}

    @app.post(f"{prefix}/backups/{{backup_id}}/download")
    async def download_backup(backup_id: str) -> dict:
        """Copy a backup from the object store into the snapshot system."""
        await engine.download_backup(backup_id)
        return {"status": "downloaded", "id": backup_id}

    @app.post(f"{prefix}/backups/{{backup_id}}/pin")
    async def pin_backup(backup_id: str) -> dict:
        await engine.pin_backup(backup_id)
        return engine.get_backup(backup_id).to_dict()

    @app.post(f"{prefix}/backups/{{backup_id}}/unpin")
    async def unpin_backup(backup_id: str) -> dict:
        await engine.unpin_backup(backup_id)
        return engine.get_backup(backup_id).to_dict()

    @app.get(f"{prefix}/config")
    async def get_config() -> dict:
        """Current runtime options."""
        return options.options

    @app.patch(f"{prefix}/config")
    async def update_config(update: OptionsUpdate) -> dict:
        """
        Change runtime options.

        The engine picks the change up from the options queue.
        """
        changes = update.model_dump(exclude_none=True)
        if changes:
            await options.update(**changes)
        return options.options

    @app.get(f"{prefix}/health")
    async def health_check() -> dict:
        return {
            "status": "healthy" if engine.scheduler.running else "starting",
            "backups": len(engine.list_backups()),
            "in_flight": len(engine.in_flight),
            "timestamp": datetime.now(UTC).isoformat(),
        }


@asynccontextmanager
async def snapsync_lifespan(app: FastAPI, engine: BackupEngine):
    """
    Lifespan context manager that runs the engine with the app.

        app = FastAPI(lifespan=lambda app: snapsync_lifespan(app, engine))

    Args:
        app: FastAPI application
        engine: Backup engine to start and stop
    """
    logger.info("snapsync_lifespan_starting")

    app.state.snapsync_engine = engine
    await engine.start()

    logger.info("snapsync_lifespan_started")

    try:
        yield
    finally:
        logger.info("snapsync_lifespan_stopping")
        await engine.stop()
        logger.info("snapsync_lifespan_stopped")


def get_engine(app: FastAPI) -> BackupEngine:
    """
    Get the backup engine from a FastAPI app.

    Raises:
        RuntimeError: If the engine was not started through snapsync_lifespan
    """
    engine = getattr(app.state, "snapsync_engine", None)
    if not engine:
        raise RuntimeError("snapsync not initialized. Use snapsync_lifespan first.")
    return engine
