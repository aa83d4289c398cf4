"""Blob storage for uploaded CSV files.
Author: Sunil Paudel

Two backends share one shape: download(bucket, path) -> bytes and
upload(bucket, path, data). The local one is used by the UI and tests;
the HTTP one talks to an object-storage REST endpoint.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import requests

from .errors import BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)


class LocalBlobStorage:
    """Buckets are sub-directories of `root`."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        base = (self.root / bucket).resolve()
        target = (base / path.lstrip("/")).resolve()
        if base != target and base not in target.parents:
            raise StorageError(f"Path escapes bucket: {path}")
        return target

    def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise BlobNotFoundError(f"{bucket}/{path}")
        return target.read_bytes()

    def upload(self, bucket: str, path: str, data: bytes) -> str:
        target = self._resolve(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("stored %d bytes at %s/%s", len(data), bucket, path)
        return f"{bucket}/{path}"


class HttpBlobStorage:
    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: int = 25) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"User-Agent": "rto-import/1.0"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    def _url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/object/{bucket}/{path.lstrip('/')}"

    def download(self, bucket: str, path: str) -> bytes:
        try:
            r = requests.get(self._url(bucket, path), headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise StorageError(f"download {bucket}/{path}: {exc}") from exc
        if r.status_code == 404:
            raise BlobNotFoundError(f"{bucket}/{path}")
        try:
            r.raise_for_status()
        except requests.HTTPError as exc:
            raise StorageError(f"download {bucket}/{path}: {exc}") from exc
        return r.content

    def upload(self, bucket: str, path: str, data: bytes) -> str:
        headers = self._headers()
        headers["Content-Type"] = "text/csv"
        headers["x-upsert"] = "true"
        try:
            r = requests.post(self._url(bucket, path), data=data, headers=headers, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as exc:
            raise StorageError(f"upload {bucket}/{path}: {exc}") from exc
        return f"{bucket}/{path}"


def storage_from_settings(settings) -> "LocalBlobStorage | HttpBlobStorage":
    if settings.storage_url:
        return HttpBlobStorage(settings.storage_url, settings.storage_key)
    return LocalBlobStorage(settings.storage_root)
