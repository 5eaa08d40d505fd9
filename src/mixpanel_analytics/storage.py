"""Key-value storage used to persist the batch queue.

The queue only needs two calls: read a string blob by key and write one.
``JsonFileStorage`` keeps every key in a single JSON object on disk,
following the file-store pattern used for the performance metrics.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Default store path
DEFAULT_STORE_PATH = Path.home() / ".mixpanel-analytics" / "queue.json"


@runtime_checkable
class KeyValueStorage(Protocol):
    """Protocol for durable string storage."""

    async def get_string(self, key: str) -> Optional[str]:
        ...

    async def set_string(self, key: str, value: str) -> bool:
        ...


class InMemoryStorage:
    """Non-durable storage, useful for tests and short-lived processes."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})

    async def get_string(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set_string(self, key: str, value: str) -> bool:
        self.values[key] = value
        return True


class JsonFileStorage:
    """Stores all keys in one JSON object file.

    Writes go to a temporary sibling file that then replaces the target, so
    a crash mid-write leaves the previous contents intact. Blocking file
    I/O runs in a worker thread.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else DEFAULT_STORE_PATH

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            content = f.read()
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object in {self.path}")
        return data

    def _write_key(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)
        logger.debug(f"Wrote {len(value)} chars under '{key}' to {self.path}")

    async def get_string(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set_string(self, key: str, value: str) -> bool:
        await asyncio.to_thread(self._write_key, key, value)
        return True


async def open_default_storage(path: Optional[Path] = None) -> KeyValueStorage:
    """Open the storage used when none was injected."""
    return JsonFileStorage(path)
