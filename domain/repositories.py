from __future__ import annotations

from typing import Optional, Protocol


class KeyValueStorage(Protocol):
    """
    Abstraction over the client-side storage that holds the session record.

    Implementations are responsible for:
    - Scoping keys to a single client (browser profile, chat, user).
    - Hiding any SQL / driver details from the application layer.
    """

    def get(self, key: str) -> Optional[str]:
        """Return the raw text stored under `key`, or None if absent."""

        ...

    def set(self, key: str, value: str) -> None:
        """Store `value` under `key`, replacing any previous value."""

        ...

    def delete(self, key: str) -> None:
        ...
