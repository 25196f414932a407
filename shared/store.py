"""
Document store adapters.

Every backend persists the same document (see ``StoreState``) behind one
contract:

1. ``open()`` once at startup and ``close()`` on shutdown
2. ``load()`` returns the whole state
3. ``save(state)`` replaces the whole state

Backends raise ``StoreError`` for any I/O, network or decoding failure.
"""
import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import pydantic
from redis import asyncio as aioredis
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import Settings
from .errors import StoreError
from .models import StoreState

logger = logging.getLogger(__name__)


def parse_state(document: Any, source: str) -> StoreState:
    """Validate a decoded document, wrapping failures in StoreError."""
    if not isinstance(document, dict):
        raise StoreError(f"Malformed data in {source}: expected a JSON object")
    try:
        return StoreState.from_document(document)
    except pydantic.ValidationError as e:
        raise StoreError(f"Malformed data in {source}: {e}") from e


class DocumentStore(ABC):
    """Persistence boundary for shipments and tracking events."""

    async def open(self):
        """Acquire backend resources."""

    async def close(self):
        """Release backend resources."""

    @abstractmethod
    async def load(self) -> StoreState:
        """Load the whole state."""
        raise NotImplementedError

    @abstractmethod
    async def save(self, state: StoreState):
        """Persist the whole state."""
        raise NotImplementedError


class JsonFileStore(DocumentStore):
    """State kept in a JSON file on local disk."""

    def __init__(self, path: str):
        self.path = Path(path)

    async def load(self) -> StoreState:
        return await asyncio.to_thread(self._read)

    async def save(self, state: StoreState):
        await asyncio.to_thread(self._write, state.to_document())

    def _read(self) -> StoreState:
        if not self.path.exists():
            return StoreState()
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreError(f"Failed to read {self.path}: {e}") from e
        return parse_state(document, str(self.path))

    def _write(self, document: Dict[str, Any]):
        # Write beside the target, then swap it in so readers never see a partial file
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreError(f"Failed to write {self.path}: {e}") from e


class GistStore(DocumentStore):
    """State kept as one JSON file inside a GitHub Gist."""

    api_url = "https://api.github.com"

    def __init__(
        self,
        token: str,
        gist_id: str,
        filename: str = "initial-db.json",
        timeout: float = 30.0,
        max_attempts: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Gist store.

        Args:
            token: GitHub token with gist scope
            gist_id: Identifier of the gist holding the database
            filename: File inside the gist holding the JSON document
            timeout: Request timeout in seconds
            max_attempts: Attempts per request on transport errors
            client: Preconfigured HTTP client (owned by the caller)
        """
        self.token = token
        self.gist_id = gist_id
        self.filename = filename
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.client = client
        self._owns_client = client is None

    async def open(self):
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout)
        logger.info(f"Gist store ready (gist={self.gist_id}, file={self.filename})")

    async def close(self):
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"token {self.token}",
            "User-Agent": "shipment-tracker",
            "Accept": "application/vnd.github.v3+json",
        }

    async def _request(self, method: str, body: Optional[dict] = None) -> dict:
        if self.client is None:
            raise RuntimeError("Gist store not opened")

        url = f"{self.api_url}/gists/{self.gist_id}"
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await self.client.request(
                        method, url, json=body, headers=self.headers
                    )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Gist request failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"Gist request failed: {e}") from e
        except ValueError as e:
            raise StoreError(f"Gist returned invalid JSON: {e}") from e

    async def load(self) -> StoreState:
        gist = await self._request("GET")
        files = gist.get("files") if isinstance(gist, dict) else None
        file_info = (files or {}).get(self.filename)
        if not file_info or file_info.get("content") is None:
            raise StoreError(f"Gist has no file named {self.filename}")
        try:
            document = json.loads(file_info["content"])
        except ValueError as e:
            raise StoreError(f"Gist file {self.filename} is not valid JSON: {e}") from e
        return parse_state(document, f"gist file {self.filename}")

    async def save(self, state: StoreState):
        content = json.dumps(state.to_document(), indent=2)
        await self._request("PATCH", {"files": {self.filename: {"content": content}}})


class RedisStore(DocumentStore):
    """State kept as a JSON string under a single Redis key."""

    def __init__(self, redis_url: str, key: str, client: Optional[aioredis.Redis] = None):
        self.redis_url = redis_url
        self.key = key
        self.client = client
        self._owns_client = client is None

    async def open(self):
        if self.client is None:
            self.client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
        logger.info(f"Redis store ready (key={self.key})")

    async def close(self):
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def load(self) -> StoreState:
        if self.client is None:
            raise RuntimeError("Redis store not opened")
        try:
            raw = await self.client.get(self.key)
        except RedisError as e:
            raise StoreError(f"Redis read failed: {e}") from e

        if raw is None:
            return StoreState()
        try:
            document = json.loads(raw)
        except ValueError as e:
            raise StoreError(f"Redis key {self.key} is not valid JSON: {e}") from e
        return parse_state(document, f"redis key {self.key}")

    async def save(self, state: StoreState):
        if self.client is None:
            raise RuntimeError("Redis store not opened")
        try:
            await self.client.set(self.key, json.dumps(state.to_document()))
        except RedisError as e:
            raise StoreError(f"Redis write failed: {e}") from e


def create_store(settings: Settings) -> DocumentStore:
    """Build the store selected by ``settings.storage_backend``."""
    backend = settings.storage_backend.lower()

    if backend == "file":
        return JsonFileStore(settings.data_file)
    if backend == "gist":
        if not settings.github_token or not settings.gist_id:
            raise ValueError("Gist backend requires GITHUB_TOKEN and GIST_ID")
        return GistStore(
            token=settings.github_token,
            gist_id=settings.gist_id,
            filename=settings.gist_filename,
            timeout=settings.http_timeout,
            max_attempts=settings.http_max_attempts,
        )
    if backend == "redis":
        return RedisStore(settings.redis_url, settings.redis_key)
    if backend == "sql":
        from .database import SQLStore
        return SQLStore(settings.database_url)

    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
