"""Binding store abstraction + JSON file implementation."""

import asyncio
import contextlib
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from keyguard.bindings.models import DeviceBinding, utcnow
from keyguard.errors import StoreError

Clock = Callable[[], datetime]


class BindingStore(ABC):
    """Abstract base for API key -> device binding persistence.

    Mutations on a key are linearizable. Backends raise StoreError when
    the underlying storage fails.
    """

    @abstractmethod
    async def get(self, api_key: str) -> DeviceBinding | None:
        """Return the binding for an API key, or None."""
        ...

    @abstractmethod
    async def save(self, api_key: str, device_id: str, device_type: str, ip: str = "") -> None:
        """Create or overwrite a binding. Resets timestamps and ban state."""
        ...

    @abstractmethod
    async def update_last_seen(self, api_key: str, ip: str) -> None:
        """Record an accepted request. No-op for unknown keys."""
        ...

    @abstractmethod
    async def ban(self, api_key: str, reason: str) -> None:
        ...

    @abstractmethod
    async def unban(self, api_key: str) -> None:
        ...

    @abstractmethod
    async def delete(self, api_key: str) -> bool:
        """Remove a binding. Returns True if one existed."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    @abstractmethod
    async def get_all(self) -> dict[str, DeviceBinding]:
        """Snapshot of all bindings, safe to iterate without locking."""
        ...


class JSONBindingStore(BindingStore):
    """File-backed binding store. path=None keeps bindings in memory only.

    Every mutation builds the new mapping, persists it, then swaps it in
    under a single lock, so a failed write leaves the store unchanged.

    Each mutation rewrites the whole file, so cost grows with the number of
    bindings and every accepted request pays it through update_last_seen.
    File-backed mutations run in a worker thread to keep that I/O off the
    event loop. Large or multi-instance deployments should use DynamoDB.
    """

    def __init__(self, path: str | None = None, clock: Clock = utcnow):
        self._path = path
        self._clock = clock
        self._lock = threading.Lock()
        self._bindings: dict[str, DeviceBinding] = {}
        self._load()

    def _load(self) -> None:
        if not self._path or not os.path.isfile(self._path):
            return

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            self._bindings = {
                key: DeviceBinding.from_dict(entry)
                for key, entry in (data.get("bindings") or {}).items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise StoreError(f"Failed to load device bindings from {self._path}: {e}") from e

    def _write(self, bindings: dict[str, DeviceBinding]) -> None:
        """Atomically replace the backing file (temp file + rename)."""
        payload = {"bindings": {key: b.to_dict() for key, b in bindings.items()}}
        directory = os.path.dirname(os.path.abspath(self._path))

        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".bindings-", suffix=".tmp")
        except OSError as e:
            raise StoreError(f"Failed to write device bindings: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as e:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise StoreError(f"Failed to write device bindings: {e}") from e

    def _commit(self, bindings: dict[str, DeviceBinding]) -> None:
        # Caller holds self._lock
        if self._path:
            self._write(bindings)
        self._bindings = bindings

    async def _run(self, func, *args):
        # In-memory mode has no I/O to offload
        if self._path:
            return await asyncio.to_thread(func, *args)
        return func(*args)

    def _mutate(self, api_key: str, change: Callable[[DeviceBinding, datetime], DeviceBinding]) -> None:
        with self._lock:
            binding = self._bindings.get(api_key)
            if binding is None:
                return
            updated = dict(self._bindings)
            updated[api_key] = change(binding, self._clock())
            self._commit(updated)

    # Published mappings are replaced, never mutated, so reads take no lock
    async def get(self, api_key: str) -> DeviceBinding | None:
        return self._bindings.get(api_key)

    async def save(self, api_key: str, device_id: str, device_type: str, ip: str = "") -> None:
        await self._run(self._save, api_key, device_id, device_type, ip)

    def _save(self, api_key: str, device_id: str, device_type: str, ip: str) -> None:
        with self._lock:
            now = self._clock()
            updated = dict(self._bindings)
            updated[api_key] = DeviceBinding(
                device_id=device_id,
                type=device_type,
                first_seen=now,
                last_seen=now,
                last_ip=ip,
            )
            self._commit(updated)

    async def update_last_seen(self, api_key: str, ip: str) -> None:
        await self._run(self._mutate, api_key, lambda b, now: replace(b, last_seen=now, last_ip=ip))

    async def ban(self, api_key: str, reason: str) -> None:
        await self._run(
            self._mutate,
            api_key,
            lambda b, now: replace(b, banned=True, ban_reason=reason, banned_at=now),
        )

    async def unban(self, api_key: str) -> None:
        await self._run(
            self._mutate,
            api_key,
            lambda b, now: replace(b, banned=False, ban_reason="", banned_at=None),
        )

    async def delete(self, api_key: str) -> bool:
        return await self._run(self._delete, api_key)

    def _delete(self, api_key: str) -> bool:
        with self._lock:
            if api_key not in self._bindings:
                return False
            updated = dict(self._bindings)
            del updated[api_key]
            self._commit(updated)
            return True

    async def clear(self) -> None:
        await self._run(self._clear)

    def _clear(self) -> None:
        with self._lock:
            self._commit({})

    async def get_all(self) -> dict[str, DeviceBinding]:
        return dict(self._bindings)
