# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for snapsync.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_bucket_env(backend: str) -> str:
    """
    Explain that the bucket environment variable for a backend is missing.
    """

    variable = "STORJ_BUCKET" if backend == "storj" else "S3_BUCKET"
    return (
        f"Object store bucket is not configured for the {backend!r} backend. "
        f"Set the {variable} environment variable or pass bucket=... to create_config()."
    )


def explain_missing_supervisor_token() -> str:
    """
    Explain that the Supervisor token is missing.
    """

    return (
        "SUPERVISOR_TOKEN is not set. "
        "The snapshot system cannot be reached without it; "
        "run inside the add-on container or export the token manually."
    )


def explain_invalid_int_env(name: str, value: str | None) -> str:
    """
    Explain that an integer environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "It must be a non-negative integer."
    )


def explain_invalid_backend_env(value: str | None) -> str:
    """
    Explain that STORAGE_BACKEND is invalid.
    """

    return (
        f"Invalid STORAGE_BACKEND value: {value!r}. "
        "Expected 's3' or 'storj'."
    )


def explain_invalid_timezone_env(value: str | None) -> str:
    """
    Explain that TZ does not name a known timezone.
    """

    return (
        f"Invalid TZ value: {value!r}. "
        "Use an IANA timezone name such as 'Europe/Berlin' or 'UTC'."
    )


def explain_invalid_name_format(value: str) -> str:
    """
    Explain that a backup name format produces an empty name.
    """

    return (
        f"Invalid backup name format: {value!r}. "
        "The format must not be empty; placeholders are "
        "{year}, {month}, {day}, {hr24}, {min} and {sec}."
    )
