# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapsync - Backup scheduling and reconciliation for Home Assistant.

Creates full backups through the Supervisor, copies them to an S3 (or Storj)
bucket and keeps a local ledger reconciled with both stores, enforcing
per-store retention limits. Package name: snapsync.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from snapsync.builder import create_config
from snapsync.env import create_config_from_env

# Engine
from snapsync.engine import BackupEngine, InFlightSet
from snapsync.ledger import LedgerStore
from snapsync.models import BackupRecord, BackupStatus
from snapsync.scheduler import Scheduler

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    # Engine and data model
    "BackupEngine",
    "InFlightSet",
    "LedgerStore",
    "BackupRecord",
    "BackupStatus",
    "Scheduler",
]
