"""
Object storage backends for uploaded attachments.

Removal is idempotent across all backends: paths that are already gone are
simply absent from the list of removed paths, they are never an error.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from ..exceptions import StorageError

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Abstract bucket/path blob store."""

    def __init__(self, public_url_base: str):
        self.public_url_base = public_url_base.rstrip("/")

    @abstractmethod
    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        """Store an object and return its public URL."""
        pass

    @abstractmethod
    async def remove(self, bucket: str, paths: Sequence[str]) -> List[str]:
        """
        Remove objects from a bucket.

        Returns:
            The paths that were actually removed

        Raises:
            StorageError: On any failure other than a missing object
        """
        pass

    @abstractmethod
    async def exists(self, bucket: str, path: str) -> bool:
        """Check whether an object is still stored."""
        pass

    def public_url(self, bucket: str, path: str) -> str:
        """Resolve the public URL of an object."""
        return f"{self.public_url_base}/{bucket}/{quote(path)}"


class LocalObjectStore(ObjectStore):
    """Filesystem-backed store laid out as ``<root>/<bucket>/<path>``."""

    def __init__(self, root: str, public_url_base: str):
        super().__init__(public_url_base)
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        base = (self.root / bucket).resolve()
        target = (base / path).resolve()
        if base != target and base not in target.parents:
            raise StorageError(f"Path escapes bucket: {path}", bucket=bucket, paths=[path])
        return target

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        target = self._resolve(bucket, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(
                f"Failed to store {bucket}/{path}: {e}", bucket=bucket, paths=[path]
            ) from e
        return self.public_url(bucket, path)

    async def remove(self, bucket: str, paths: Sequence[str]) -> List[str]:
        removed = []
        for path in paths:
            target = self._resolve(bucket, path)
            try:
                target.unlink()
            except FileNotFoundError:
                logger.debug(f"Object {bucket}/{path} already absent")
                continue
            except OSError as e:
                raise StorageError(
                    f"Failed to remove {bucket}/{path}: {e}",
                    bucket=bucket,
                    paths=[path],
                ) from e
            removed.append(path)
        return removed

    async def exists(self, bucket: str, path: str) -> bool:
        return self._resolve(bucket, path).is_file()


class HTTPObjectStore(ObjectStore):
    """Client for a Supabase-compatible storage REST API.

    Example:
        >>> store = HTTPObjectStore(
        ...     api_url="https://project.supabase.co",
        ...     api_key=service_key,
        ... )
        >>> await store.remove("booking-documents", ["receipts/a.png"])
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        public_url_base: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        super().__init__(
            public_url_base or f"{self.api_url}/storage/v1/object/public"
        )
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _send(
        self, bucket: str, paths: Sequence[str], method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise StorageError(
                f"Storage request to {bucket} failed: {e}",
                bucket=bucket,
                paths=list(paths),
            ) from e

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        resp = await self._send(
            bucket,
            [path],
            "POST",
            f"/storage/v1/object/{bucket}/{quote(path)}",
            content=data,
            headers={"x-upsert": "false", "cache-control": "3600"},
        )
        if resp.status_code >= 400:
            raise StorageError(
                f"Upload of {bucket}/{path} failed: HTTP {resp.status_code}",
                bucket=bucket,
                paths=[path],
            )
        return self.public_url(bucket, path)

    async def remove(self, bucket: str, paths: Sequence[str]) -> List[str]:
        if not paths:
            return []
        resp = await self._send(
            bucket,
            paths,
            "DELETE",
            f"/storage/v1/object/{bucket}",
            json={"prefixes": list(paths)},
        )
        if resp.status_code == 404:
            return []
        if resp.status_code >= 400:
            raise StorageError(
                f"Removal from {bucket} failed: HTTP {resp.status_code}",
                bucket=bucket,
                paths=list(paths),
            )
        removed = {item.get("name") for item in resp.json() or []}
        return [path for path in paths if path in removed]

    async def exists(self, bucket: str, path: str) -> bool:
        resp = await self._send(
            bucket, [path], "HEAD", f"/storage/v1/object/{bucket}/{quote(path)}"
        )
        if resp.status_code in (400, 404):
            return False
        if resp.status_code >= 400:
            raise StorageError(
                f"Lookup of {bucket}/{path} failed: HTTP {resp.status_code}",
                bucket=bucket,
                paths=[path],
            )
        return True
