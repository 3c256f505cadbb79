"""
Thin client for the object store holding product images.

Talks to the Supabase Storage REST API over requests. Only three calls are
needed: put an object, build its public URL, delete it.
"""
import logging
from typing import Optional
from urllib.parse import quote

import requests

from .config import STORAGE_URL, STORAGE_KEY, STORAGE_BUCKET, STORAGE_TIMEOUT
from .errors import StorageError

logger = logging.getLogger(__name__)


class StorageClient:

    def __init__(self, base_url: str, api_key: str, bucket: str, timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "apikey": api_key,
        })

    def _object_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(key)}"

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(key)}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Upload (or overwrite) an object and return its public URL."""
        try:
            resp = self.session.post(
                self._object_url(key),
                data=data,
                headers={"Content-Type": content_type, "x-upsert": "true"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageError(f"upload of '{key}' failed: {e}") from e

        if not resp.ok:
            raise StorageError(f"upload of '{key}' failed: HTTP {resp.status_code} {resp.text[:200]}")

        logger.debug(f"Stored object {key} ({len(data)} bytes)")
        return self.public_url(key)

    def delete(self, key: str) -> None:
        """Delete an object. A missing object counts as deleted."""
        try:
            resp = self.session.delete(self._object_url(key), timeout=self.timeout)
        except requests.RequestException as e:
            raise StorageError(f"delete of '{key}' failed: {e}") from e

        if resp.status_code == 404:
            logger.info(f"Object {key} already gone")
            return
        if not resp.ok:
            raise StorageError(f"delete of '{key}' failed: HTTP {resp.status_code} {resp.text[:200]}")


_client: Optional[StorageClient] = None


def get_storage() -> StorageClient:
    global _client
    if _client is None:
        if not STORAGE_URL or not STORAGE_KEY:
            logging.warning("⚠️ STORAGE_URL / STORAGE_KEY not set, image uploads will fail")
        _client = StorageClient(STORAGE_URL, STORAGE_KEY, STORAGE_BUCKET, STORAGE_TIMEOUT)
        logger.info(f"✅ Using storage bucket: {STORAGE_BUCKET}")
    return _client
