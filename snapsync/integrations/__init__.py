# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI routes and lifespan for the engine.
"""

from snapsync.integrations.fastapi import (
    get_engine,
    register_snapsync_routes,
    snapsync_lifespan,
)

__all__ = [
    "get_engine",
    "register_snapsync_routes",
    "snapsync_lifespan",
]
