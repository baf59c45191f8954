# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync service entry point.

Run with:
    snapsync

or:
    uvicorn snapsync.app:create_app --factory --port 8099

Configuration comes from environment variables, see
snapsync.env.create_config_from_env.
"""

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from snapsync import __version__
from snapsync.clients import ObjectStore, SnapshotClient, SupervisorClient, create_object_store
from snapsync.clock import Clock
from snapsync.config import SnapSyncConfig
from snapsync.engine import BackupEngine
from snapsync.env import create_config_from_env
from snapsync.errors import explain_missing_supervisor_token
from snapsync.integrations.fastapi import register_snapsync_routes, snapsync_lifespan
from snapsync.logging import configure_logging
from snapsync.options import OptionsService

logger = structlog.get_logger()

DEFAULT_PORT = 8099


def create_app(
    config: SnapSyncConfig | None = None,
    snapshots: SnapshotClient | None = None,
    store: ObjectStore | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """
    Build the FastAPI application with its engine.

    Collaborators default to the production clients selected by `config`;
    tests pass fakes instead.
    """
    if config is None:
        config = create_config_from_env()

    if not config.supervisor_token and snapshots is None:
        logger.warning("supervisor_token_missing", hint=explain_missing_supervisor_token())

    owns_snapshots = snapshots is None
    snapshots = snapshots or SupervisorClient(config)
    store = store or create_object_store(config)

    options = OptionsService(config)
    engine = BackupEngine(
        config,
        snapshots,
        store,
        clock=clock,
        config_changes=options.changes,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Options saved by a previous run win over the environment
        engine.config = await options.load()
        engine.scheduler.set_sync_interval(engine.config.sync_interval)

        try:
            async with snapsync_lifespan(app, engine):
                yield
        finally:
            if owns_snapshots:
                await snapshots.aclose()

    app = FastAPI(
        title="snapsync",
        description="Backup scheduling and reconciliation between the snapshot system and an object store",
        version=__version__,
        lifespan=lifespan,
    )
    register_snapsync_routes(app, engine, options)

    return app


def main() -> None:
    import uvicorn

    config = create_config_from_env()
    configure_logging(config.log_level, json_output=os.getenv("LOG_FORMAT") == "json")

    logger.info(
        "snapsync_starting",
        bucket=config.bucket,
        backend=config.storage_backend.value,
        interval_days=config.backup_interval,
    )

    uvicorn.run(
        create_app(config),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", str(DEFAULT_PORT))),
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
