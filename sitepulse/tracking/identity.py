# ==============================================================================
# Session Identity Manager
# ==============================================================================
"""
Obtains or mints the session identifier of a browsing context.

The identifier lives in context-scoped storage (sessionStorage-like) so it
survives navigations within a tab. When that storage is blocked the minted
value is kept on the manager instead, which degrades identity to one session
per page load.
"""

import logging
import secrets
import string
import time
from collections.abc import Callable

from sitepulse.base.storage import ContextStorage
from sitepulse.core.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "analytics_session_id"

SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 9


def mint_session_id(timestamp: float) -> str:
    """Build session_<epochMillis>_<random9> with a base-36 suffix."""
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"session_{int(timestamp * 1000)}_{suffix}"


class SessionIdentityManager:
    """
    Session id source for one browsing context.

    Args:
        storage: Context-scoped storage shared by every page load of the tab
        clock: Epoch-seconds clock used when minting
    """

    def __init__(self, storage: ContextStorage, clock: Callable[[], float] = time.time):
        self._storage = storage
        self._clock = clock
        self._session_id: str | None = None

    def get_session_id(self) -> str:
        """Return the session id, minting and persisting one on first use."""
        if self._session_id is not None:
            return self._session_id

        try:
            stored = self._storage.get_item(SESSION_STORAGE_KEY)
        except StorageUnavailableError as e:
            logger.debug("Session storage unavailable, using in-memory id: %s", e)
            self._session_id = mint_session_id(self._clock())
            return self._session_id

        if stored:
            self._session_id = stored
            return stored

        minted = mint_session_id(self._clock())
        try:
            self._storage.set_item(SESSION_STORAGE_KEY, minted)
        except StorageUnavailableError as e:
            logger.debug("Could not persist session id: %s", e)
        self._session_id = minted
        logger.debug("Started session %s", minted)
        return minted
