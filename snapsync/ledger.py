# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync Ledger - Local persisted list of tracked backups.

The ledger is a single JSON array of BackupRecord documents. Every save
rewrites the whole file; there is no append log and no schema version.
"""

import json
import os
from pathlib import Path
from typing import List, Sequence

import aiofiles
import structlog

from snapsync.exceptions import LedgerError
from snapsync.models import BackupRecord

logger = structlog.get_logger()


class LedgerStore:
    """Loads and saves the ledger file at a fixed path."""

    def __init__(self, path: Path):
        self.path = Path(path)

    async def load(self) -> List[BackupRecord]:
        """
        Read the ledger.

        A missing file is a first run and yields an empty list.

        Raises:
            LedgerError: If the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            logger.info("ledger_not_found", path=str(self.path))
            return []

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise LedgerError(
                f"Failed to read ledger: {e}",
                details={"path": str(self.path)},
            )

        if not content.strip():
            return []

        try:
            records = [BackupRecord.from_dict(item) for item in json.loads(content)]
        except (ValueError, KeyError, TypeError) as e:
            raise LedgerError(
                f"Ledger file is corrupt: {e}",
                details={"path": str(self.path)},
            )

        logger.debug("ledger_loaded", path=str(self.path), count=len(records))
        return records

    async def save(self, records: Sequence[BackupRecord]) -> None:
        """
        Overwrite the ledger with `records`.

        The file is written atomically (write to temp, then rename) so a
        crash mid-write leaves the previous ledger intact.

        Raises:
            LedgerError: If the file cannot be written
        """
        payload = json.dumps([r.to_dict() for r in records], indent=2)
        temp_path = self.path.with_name(self.path.name + ".tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
            os.replace(temp_path, self.path)
        except OSError as e:
            raise LedgerError(
                f"Failed to save ledger: {e}",
                details={"path": str(self.path), "count": len(records)},
            )

        logger.debug("ledger_saved", path=str(self.path), count=len(records))

    async def reset(self) -> None:
        """Truncate the ledger to an empty list."""
        await self.save([])
