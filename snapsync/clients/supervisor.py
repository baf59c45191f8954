# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Home Assistant Supervisor client - the snapshot system adapter.

Talks to the Supervisor REST API with a bearer token. Backup creation is a
long blocking call on the Supervisor side, so it runs without a read
timeout; every other call uses the configured request timeout.
"""

import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List

import aiofiles
import httpx
import structlog

from snapsync.config import SnapSyncConfig
from snapsync.exceptions import SnapshotClientError, SnapshotNotFoundError
from snapsync.models import SnapshotInfo

logger = structlog.get_logger()


def _parse_date(value: str | None) -> datetime:
    if not value:
        return datetime.now(UTC)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _to_snapshot(data: Dict[str, Any]) -> SnapshotInfo:
    return SnapshotInfo(
        slug=data["slug"],
        name=data.get("name", ""),
        date=_parse_date(data.get("date")),
        size=float(data.get("size") or 0.0),
        type=data.get("type", "full"),
    )


class SupervisorClient:
    """Async client for the Supervisor backups API."""

    def __init__(
        self,
        config: SnapSyncConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.backup_directory = config.backup_directory
        self._timeout = config.request_timeout
        self._http = httpx.AsyncClient(
            base_url=config.supervisor_url,
            headers={"Authorization": f"Bearer {config.supervisor_token}"},
            timeout=config.request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise SnapshotClientError(
                f"Supervisor request failed: {e}",
                details={"method": method, "path": path},
            ) from e

        if response.status_code == 404:
            raise SnapshotNotFoundError(
                "Backup not found in snapshot system",
                details={"path": path},
                status_code=404,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or body.get("result") == "error":
            raise SnapshotClientError(
                body.get("message") or f"Supervisor returned HTTP {response.status_code}",
                details={"method": method, "path": path},
                status_code=response.status_code,
            )

        return body.get("data") or {}

    async def create_full(self, name: str) -> str:
        logger.debug("supervisor_backup_requested", name=name)
        data = await self._request(
            "POST",
            "/backups/new/full",
            json={"name": name},
            timeout=httpx.Timeout(self._timeout, read=None),
        )
        slug = data.get("slug")
        if not slug:
            raise SnapshotClientError(
                "Supervisor did not return a backup slug",
                details={"name": name},
            )
        return slug

    async def get(self, slug: str) -> SnapshotInfo:
        data = await self._request("GET", f"/backups/{slug}/info")
        return _to_snapshot(data)

    async def list(self) -> List[SnapshotInfo]:
        data = await self._request("GET", "/backups")
        return [_to_snapshot(item) for item in data.get("backups", [])]

    async def delete(self, slug: str) -> None:
        await self._request("DELETE", f"/backups/{slug}")

    async def restore(self, slug: str) -> None:
        await self._request(
            "POST",
            f"/backups/{slug}/restore/full",
            timeout=httpx.Timeout(self._timeout, read=None),
        )

    async def upload(self, stream: AsyncIterator[bytes]) -> None:
        """
        Upload an archive to the Supervisor.

        The stream is spooled to a temporary file first because the
        multipart encoder needs a seekable file.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            spool = Path(tmpdir) / "upload.tar"
            async with aiofiles.open(spool, "wb") as f:
                async for chunk in stream:
                    await f.write(chunk)

            with spool.open("rb") as fh:
                await self._request(
                    "POST",
                    "/backups/new/upload",
                    files={"file": ("backup.tar", fh, "application/x-tar")},
                    timeout=httpx.Timeout(self._timeout, read=None, write=None),
                )

    def archive_path(self, slug: str) -> Path:
        return self.backup_directory / f"{slug}.tar"
