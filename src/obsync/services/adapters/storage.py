"""Key/value storage adapters."""

import asyncio
import json
import os
import tempfile
from pathlib import Path

from obsync.exceptions import IoError
from obsync.logger import get_logger

from .base import StorageAdapter

logger = get_logger(__name__)


class MemoryStorage(StorageAdapter):
    """Dict-backed storage for ephemeral runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileStorage(StorageAdapter):
    """Storage persisted as a single JSON document.

    Every write rewrites the document through a temporary file and
    ``os.replace``, so a crash leaves either the old or the new document.
    """

    def __init__(self, file_path: Path) -> None:
        self.file_path = file_path
        self._lock = asyncio.Lock()
        self._cache: dict[str, str] | None = None

    def _read_file(self) -> dict[str, str]:
        if not self.file_path.exists():
            return {}
        with open(self.file_path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("storage document is not an object")
        return {str(k): str(v) for k, v in data.items()}

    def _write_file(self, data: dict[str, str]) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.file_path.parent, prefix=f".{self.file_path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.file_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def _load(self, key: str) -> dict[str, str]:
        if self._cache is None:
            try:
                self._cache = await asyncio.to_thread(self._read_file)
            except (OSError, ValueError) as e:
                raise IoError("storage.read_failed", key=key, error=str(e)) from e
        return self._cache

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await self._load(key)
            return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = dict(await self._load(key))
            data[key] = value
            await self._commit(key, data)

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await self._load(key)
            if key not in data:
                return
            data = dict(data)
            del data[key]
            await self._commit(key, data)

    async def _commit(self, key: str, data: dict[str, str]) -> None:
        try:
            await asyncio.to_thread(self._write_file, data)
        except OSError as e:
            logger.error(f"Failed to persist storage file {self.file_path}: {e}")
            raise IoError("storage.write_failed", key=key, error=str(e)) from e
        # Only publish the new state once it is on disk
        self._cache = data
