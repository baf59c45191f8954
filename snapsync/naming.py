# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup identity and naming.

IDs are derived from the creation instant and sort lexicographically in
creation order. Names are either supplied by the caller or rendered from
the configured template.
"""

from datetime import datetime

_PLACEHOLDERS = {
    "{year}": "%Y",
    "{month}": "%m",
    "{day}": "%d",
    "{hr24}": "%H",
    "{min}": "%M",
    "{sec}": "%S",
}


def generate_backup_id(now: datetime) -> str:
    """
    Format an instant as a fixed-width sortable id.

    Example: 2024-05-01 13:45:10.123456 -> "20240501134510.123456000"
    """
    return now.strftime("%Y%m%d%H%M%S") + f".{now.microsecond:06d}000"


def generate_backup_name(requested: str | None, template: str, now: datetime) -> str:
    """
    Return the requested name verbatim, or render the template at `now`.

    Args:
        requested: Caller supplied name; used as-is when non-empty
        template: Format with {year} {month} {day} {hr24} {min} {sec}
        now: Instant to render, already in the configured timezone
    """
    if requested:
        return requested

    name = template
    for placeholder, directive in _PLACEHOLDERS.items():
        name = name.replace(placeholder, now.strftime(directive))
    return name
