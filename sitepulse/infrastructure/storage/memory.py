# ==============================================================================
# In-Memory Context Storage
# ==============================================================================
"""
Dict-backed ContextStorage for a single process-local browsing context.
"""

from sitepulse.base.storage import ContextStorage
from sitepulse.core.errors import StorageUnavailableError


class MemoryContextStorage(ContextStorage):
    """
    In-memory implementation of ContextStorage.

    Constructed with blocked=True it behaves like a browser with storage
    disabled: every call raises StorageUnavailableError.
    """

    def __init__(self, blocked: bool = False):
        self._items: dict[str, str] = {}
        self.blocked = blocked

    def _check(self) -> None:
        if self.blocked:
            raise StorageUnavailableError("context storage is disabled")

    def get_item(self, key: str) -> str | None:
        self._check()
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check()
        self._items[key] = value

    def remove_item(self, key: str) -> bool:
        self._check()
        return self._items.pop(key, None) is not None
