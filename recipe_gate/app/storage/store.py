"""Key/value persistence backing the usage and entitlement records."""
from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class DurableStore(Protocol):
    """Async key/value store. No cross-key transactions are implied."""

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def set(self, key: str, value: bytes) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryDurableStore:
    """Process-local store suitable for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None) -> None:
        self._entries: Dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> Optional[bytes]:
        return self._entries.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._entries[key] = bytes(value)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._entries)


class FileDurableStore:
    """Stores each key as a file inside ``directory``.

    Writes go to a temporary file in the same directory followed by
    ``os.replace`` so a crash never leaves a half-written value behind.
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Unsupported storage key: {key!r}")
        return self._directory / f"{key}.json"

    async def get(self, key: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set(self, key: str, value: bytes) -> None:
        await asyncio.to_thread(self._write, self._path(key), bytes(value))

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, self._path(key))

    @staticmethod
    def _read(path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    @staticmethod
    def _write(path: Path, value: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        logger.debug("Persisted %s (%d bytes)", path.name, len(value))

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


__all__ = ["DurableStore", "FileDurableStore", "InMemoryDurableStore"]
