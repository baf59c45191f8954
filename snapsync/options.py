# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync Options - Runtime-editable subset of the configuration.

Only the backup name format, the backup interval and the two retention
limits can change while the service runs. Edits are validated by building
a new SnapSyncConfig, persisted to options.json in the data directory and
published on a queue the engine listens to.
"""

import asyncio
import json
import os
from typing import Any, Dict

import aiofiles
import structlog

from snapsync.config import SnapSyncConfig
from snapsync.exceptions import ConfigurationError

logger = structlog.get_logger()

EDITABLE_OPTIONS = (
    "backup_name_format",
    "backup_interval",
    "backups_in_snapshot",
    "backups_in_store",
)


def options_from_config(config: SnapSyncConfig) -> Dict[str, Any]:
    return {name: getattr(config, name) for name in EDITABLE_OPTIONS}


class OptionsService:
    """Holds the current config and publishes every accepted change."""

    def __init__(self, config: SnapSyncConfig):
        self.config = config
        self.changes: "asyncio.Queue[SnapSyncConfig]" = asyncio.Queue()

    @property
    def options(self) -> Dict[str, Any]:
        return options_from_config(self.config)

    async def load(self) -> SnapSyncConfig:
        """
        Overlay options saved by a previous run onto the current config.

        Missing file means nothing was ever edited. Unknown keys are ignored.
        """
        path = self.config.options_path
        if not path.exists():
            return self.config

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                saved = json.loads(await f.read() or "{}")
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                f"Failed to read saved options: {e}",
                details={"path": str(path)},
            )

        overrides = {k: v for k, v in saved.items() if k in EDITABLE_OPTIONS}
        if overrides:
            self.config = self.config.with_updates(**overrides)
            logger.info("saved_options_loaded", **overrides)

        return self.config

    async def update(self, **changes: Any) -> SnapSyncConfig:
        """
        Apply, persist and publish an options change.

        Raises:
            ConfigurationError: Unknown option or a value that fails validation
        """
        unknown = sorted(set(changes) - set(EDITABLE_OPTIONS))
        if unknown:
            raise ConfigurationError(
                "Option cannot be changed at runtime",
                details={"options": unknown},
            )

        new_config = self.config.with_updates(**changes)
        await self._save(new_config)

        self.config = new_config
        await self.changes.put(new_config)

        logger.info("options_updated", **changes)
        return new_config

    async def _save(self, config: SnapSyncConfig) -> None:
        path = config.options_path
        temp_path = path.with_name(path.name + ".tmp")
        payload = json.dumps(options_from_config(config), indent=2)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
            os.replace(temp_path, path)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save options: {e}",
                details={"path": str(path)},
            )
