"""Port definition for the key-value store that holds historical data."""

from typing import Optional, Protocol, Sequence


class KeyValueBackend(Protocol):
    """Backend interface that adapters can implement for any key-value store."""

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value`` under ``key``, expiring after ``ttl_seconds``."""

    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key``, or ``None`` on a miss."""

    async def list_keys(self, pattern: str) -> list[str]:
        """Return every key matching a glob-style ``pattern``."""

    async def multi_get(self, keys: Sequence[str]) -> list[Optional[str]]:
        """Return values for ``keys`` in order, ``None`` for each miss."""
