"""Idempotency store mapping issuer user ids to their working card id."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Optional


class CardStore(ABC):
    """Key-value record of the card issued to each user.

    The provisioning workflow only talks to this interface, so a persistent
    backend can replace the in-memory one without workflow changes.
    """

    @abstractmethod
    async def get(self, user_id: str) -> Optional[str]:
        """Return the cached card id for the user, if any."""
        ...

    @abstractmethod
    async def set(self, user_id: str, card_id: str) -> None:
        """Record the card id issued to the user."""
        ...


class InMemoryCardStore(CardStore):
    """Process-local store (swap for a persistent one in production)."""

    def __init__(self) -> None:
        self._cards: dict[str, str] = {}
        self._lock = threading.Lock()

    async def get(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._cards.get(user_id)

    async def set(self, user_id: str, card_id: str) -> None:
        with self._lock:
            self._cards[user_id] = card_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._cards)


__all__ = ["CardStore", "InMemoryCardStore"]
