from __future__ import annotations

import asyncio
from dataclasses import dataclass


class CancelToken:
    """Cooperative cancellation flag, checked by stream loops between chunks."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ChatChunk:
    # reply so far, not just the new piece
    text: str
    delta: str
