# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Clock abstraction used by the engine and scheduler.

Production code runs on SystemClock; tests inject a clock they can move by
hand so backup dates and timer delays are deterministic.
"""

from datetime import datetime, UTC
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current aware datetime."""
        ...


class SystemClock:
    """Wall clock backed by datetime.now."""

    def now(self) -> datetime:
        return datetime.now(UTC)
