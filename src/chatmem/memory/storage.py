"""Storage port for the in-process memory tiers.

The session and profile stores only talk to their backing map through this
narrow get/put/delete interface, so a deployment can swap the in-memory map
for an external cache without touching the stores or the orchestrator.
"""

import threading
from collections.abc import Hashable, Iterator
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StoragePort(Protocol):
    def get(self, key: Hashable) -> Any | None: ...

    def put(self, key: Hashable, value: Any) -> None: ...

    def delete(self, key: Hashable) -> bool: ...

    def items(self) -> list[tuple[Hashable, Any]]: ...


class InMemoryStoragePort:
    """Process-local map guarded by a lock."""

    def __init__(self) -> None:
        self._data: dict[Hashable, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: Hashable) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def items(self) -> list[tuple[Hashable, Any]]:
        with self._lock:
            return list(self._data.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __iter__(self) -> Iterator[Hashable]:
        return iter([k for k, _ in self.items()])
