"""Key-value storage gateways.

The core only needs two async operations from a store:

    get(key) -> Optional[str]
    put(key, value, *, expire_after_seconds=None) -> None

No transactions, range queries or cross-key ordering are assumed. Three
backends are provided:

- :class:`MemoryStore` keeps everything in a dict (tests, local dev)
- :class:`DiskStore` keeps one JSON file per key under a data directory
- :class:`CloudflareKVStore` talks to a Workers KV namespace over its REST API
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import re
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple
from urllib.parse import quote

import httpx

from .errors import StorageError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def put(self, key: str, value: str, *, expire_after_seconds: Optional[int] = None) -> None:
        ...


# -----------------------------
# Helpers
# -----------------------------
_SAFE_KEY = re.compile(r"^[\w.\-@]{1,128}$")


def _safe_filename(key: str) -> str:
    # Plain ids map straight to file names; anything else gets a readable
    # prefix plus a digest so distinct keys never share a file.
    if _SAFE_KEY.match(key):
        return key
    readable = re.sub(r"[^\w.\-@]+", "_", key.strip())[:96] or "key"
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
    return f"{readable}-{digest}"


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(path.parent)) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    os.replace(tmp_name, path)


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, obj: Any) -> None:
    _atomic_write_text(path, json.dumps(obj, ensure_ascii=False))


def _expiry(now: float, expire_after_seconds: Optional[int]) -> Optional[float]:
    if expire_after_seconds is None:
        return None
    return now + max(0, int(expire_after_seconds))


# -----------------------------
# MemoryStore
# -----------------------------
class MemoryStore:
    """Dict-backed store with TTL support.

    ``clock`` returns seconds; tests pass a fake clock to move time forward.
    """

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.gets = 0
        self.puts = 0

    async def get(self, key: str) -> Optional[str]:
        self.gets += 1
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, *, expire_after_seconds: Optional[int] = None) -> None:
        self.puts += 1
        self._data[key] = (value, _expiry(self._clock(), expire_after_seconds))

    def __len__(self) -> int:
        return len(self._data)


# -----------------------------
# DiskStore
# -----------------------------
class DiskStore:
    """JSON-file-per-key store with atomic writes and lazy expiry.

    Layout:
        data_dir/
          <key>.json    # {"value": str, "expires_at": float | null}

    Expired entries read as absent and are removed on access. Unreadable
    files are renamed to ``*.corrupt.json`` and read as absent too.
    """

    def __init__(self, data_dir: str, *, clock: Clock = time.time) -> None:
        self.root = Path(data_dir)
        self.root.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.RLock()

    # --------- paths ----------
    def _path(self, key: str) -> Path:
        return self.root / f"{_safe_filename(key)}.json"

    # --------- sync core ----------
    def _get_sync(self, key: str) -> Optional[str]:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                entry = _read_json(path)
                value = entry["value"]
                expires_at = entry.get("expires_at")
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Corrupt store entry %s (%s); moving aside", path.name, e)
                try:
                    path.rename(path.with_suffix(".corrupt.json"))
                except OSError as rename_err:
                    logger.warning("Could not move corrupt entry %s: %s", path.name, rename_err)
                return None
            if expires_at is not None and self._clock() >= float(expires_at):
                path.unlink(missing_ok=True)
                return None
            return str(value)

    def _put_sync(self, key: str, value: str, expire_after_seconds: Optional[int]) -> None:
        entry = {"value": value, "expires_at": _expiry(self._clock(), expire_after_seconds)}
        with self._lock:
            _write_json(self._path(key), entry)

    # --------- async API ----------
    async def get(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._get_sync, key)
        except OSError as e:
            raise StorageError(f"Failed to read {key!r}: {e}") from e

    async def put(self, key: str, value: str, *, expire_after_seconds: Optional[int] = None) -> None:
        try:
            await asyncio.to_thread(self._put_sync, key, value, expire_after_seconds)
        except OSError as e:
            raise StorageError(f"Failed to write {key!r}: {e}") from e


# -----------------------------
# CloudflareKVStore
# -----------------------------
CLOUDFLARE_API = "https://api.cloudflare.com/client/v4"
# Workers KV rejects expiration_ttl below 60 seconds.
KV_MIN_TTL = 60


class CloudflareKVStore:
    """Workers KV namespace accessed through the Cloudflare REST API."""

    def __init__(
        self,
        account_id: str,
        namespace_id: str,
        api_token: str,
        *,
        base_url: str = CLOUDFLARE_API,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not (account_id and namespace_id and api_token):
            raise ValueError("account_id, namespace_id and api_token are required")
        self._prefix = f"/accounts/{account_id}/storage/kv/namespaces/{namespace_id}/values/"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_token}"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def _url(self, key: str) -> str:
        return self._prefix + quote(key, safe="")

    async def get(self, key: str) -> Optional[str]:
        try:
            resp = await self._client.get(self._url(key))
        except httpx.HTTPError as e:
            raise StorageError(f"KV read failed for {key!r}: {e}") from e
        if resp.status_code == 404:
            return None
        if resp.is_error:
            raise StorageError(f"KV read failed for {key!r}: HTTP {resp.status_code}")
        return resp.text

    async def put(self, key: str, value: str, *, expire_after_seconds: Optional[int] = None) -> None:
        params = {}
        if expire_after_seconds is not None:
            params["expiration_ttl"] = str(max(KV_MIN_TTL, int(expire_after_seconds)))
        try:
            resp = await self._client.put(
                self._url(key),
                params=params,
                content=value.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
            )
        except httpx.HTTPError as e:
            raise StorageError(f"KV write failed for {key!r}: {e}") from e
        if resp.is_error:
            raise StorageError(f"KV write failed for {key!r}: HTTP {resp.status_code}")

    async def aclose(self) -> None:
        await self._client.aclose()


# -----------------------------
# Factory
# -----------------------------
def create_store(cfg: Dict[str, Any]) -> KeyValueStore:
    """Build the store named by ``cfg["storage"]["backend"]`` (default ``disk``)."""
    st_cfg = cfg.get("storage", {}) or {}
    backend = str(st_cfg.get("backend", "disk")).lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "disk":
        return DiskStore(str(st_cfg.get("data_dir") or "data"))
    if backend == "cloudflare":
        cf = st_cfg.get("cloudflare", {}) or {}
        return CloudflareKVStore(
            account_id=str(cf.get("account_id") or os.environ.get("CF_ACCOUNT_ID", "")),
            namespace_id=str(cf.get("namespace_id") or os.environ.get("CF_KV_NAMESPACE_ID", "")),
            api_token=str(cf.get("api_token") or os.environ.get("CF_API_TOKEN", "")),
            timeout=float(cf.get("timeout", 10.0)),
        )
    raise ValueError(f"Unknown storage backend: {backend!r}")
