"""Per-browser key/value storage.

A ClientStorage is the server-side counterpart of the browser's persisted
storage: string keys to string values, shared by every tab of one browser.
BrowserStateMiddleware loads it before a request and afterwards writes back
only the keys the request set or removed, each key on its own, so two
overlapping requests from the same browser never drop each other's keys.

With a backend attached, pop() removes the key in the backend at once. Of
two requests popping the same key only one receives the value.
"""

from typing import Optional, Protocol


class StorageBackend(Protocol):
    """Durable store behind a ClientStorage."""

    def pop_browser_storage_key(self, device_id: str, key: str) -> Optional[str]:
        """Remove one key and return its value, or None if it was absent."""
        ...


class ClientStorage:
    """String-valued storage for one browser, with per-key change tracking."""

    def __init__(
        self,
        device_id: str,
        data: dict[str, str] | None = None,
        backend: Optional[StorageBackend] = None,
    ) -> None:
        self.device_id = device_id
        self._data: dict[str, str] = dict(data or {})
        self._backend = backend
        # Key -> new value, None for a removal
        self._changes: dict[str, Optional[str]] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be strings, got {type(value).__name__}")
        if self._data.get(key) != value:
            self._data[key] = value
            self._changes[key] = value

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._changes[key] = None

    def pop(self, key: str) -> str | None:
        """Read a key and remove it in one step."""
        if self._backend is None or key in self._changes:
            # Written by this request and not saved yet
            value = self._data.get(key)
            self.remove(key)
            return value

        self._data.pop(key, None)
        return self._backend.pop_browser_storage_key(self.device_id, key)

    def pending_changes(self) -> dict[str, Optional[str]]:
        """Keys written since the last save: new value, or None if removed."""
        return dict(self._changes)

    @property
    def dirty(self) -> bool:
        return bool(self._changes)

    def mark_saved(self) -> None:
        self._changes.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)
