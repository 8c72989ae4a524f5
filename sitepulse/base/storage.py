# ==============================================================================
# Context Storage Abstract Base Class
# ==============================================================================
"""
Abstract interface for browsing-context storage (sessionStorage semantics).

This is NOT a repository. Values are short-lived strings scoped to one
browsing context: they survive navigations within the tab and are expected,
but not guaranteed, to disappear when the tab closes.

Implementations: in-memory, Valkey/Redis with TTL.
"""

from abc import ABC, abstractmethod


class ContextStorage(ABC):
    """
    Key-value storage scoped to a single browsing context.

    Implementations raise StorageUnavailableError when the store is blocked,
    disabled or unreachable; callers degrade to in-memory values.
    """

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """
        Get a stored value.

        Args:
            key: Storage key

        Returns:
            Stored string, or None if not set
        """
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """
        Store a value.

        Args:
            key: Storage key
            value: String value
        """
        ...

    @abstractmethod
    def remove_item(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if key was deleted, False if not found
        """
        ...
