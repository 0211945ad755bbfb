"""Async key-value storage for on-device style string blobs."""

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Interface for a simple async key to string store."""

    async def get_item(self, key: str) -> str | None:
        """Return the stored value, or None when absent."""

    async def set_item(self, key: str, value: str) -> None:
        """Store a value under a key."""

    async def remove_item(self, key: str) -> None:
        """Remove a key if present."""

    async def remove_items(self, keys: list[str]) -> None:
        """Remove several keys at once."""

    async def get_all_keys(self) -> list[str]:
        """Return every stored key."""


@dataclass
class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store, mostly for tests and ephemeral sessions."""

    items: dict[str, str] = field(default_factory=dict)

    async def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    async def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    async def remove_items(self, keys: list[str]) -> None:
        for key in keys:
            self.items.pop(key, None)

    async def get_all_keys(self) -> list[str]:
        return list(self.items)


@dataclass
class JsonFileKeyValueStore(KeyValueStore):
    """Store persisted as a single JSON object on disk.

    Reads are served from memory after the first load. Every write rewrites
    the file through a temporary file and an atomic replace.
    """

    path: Path
    _items: dict[str, str] | None = field(default=None, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    async def get_item(self, key: str) -> str | None:
        async with self._lock:
            items = await self._load()
        return items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            items = await self._load()
            items[key] = value
            await asyncio.to_thread(self._write, dict(items))

    async def remove_item(self, key: str) -> None:
        await self.remove_items([key])

    async def remove_items(self, keys: list[str]) -> None:
        async with self._lock:
            items = await self._load()
            removed = [key for key in keys if items.pop(key, None) is not None]
            if removed:
                await asyncio.to_thread(self._write, dict(items))

    async def get_all_keys(self) -> list[str]:
        async with self._lock:
            items = await self._load()
        return list(items)

    async def _load(self) -> dict[str, str]:
        """Return the in-memory items; callers hold the lock."""
        if self._items is None:
            self._items = await asyncio.to_thread(self._read)
        return self._items

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.warning("Storage file unreadable, starting empty: %s", self.path)
            return {}
        if not isinstance(payload, dict):
            _logger.warning("Storage file has unexpected shape: %s", self.path)
            return {}
        return {str(key): str(value) for key, value in payload.items()}

    def _write(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
