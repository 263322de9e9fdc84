"""Port interface for the now-playing indicator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...domain.playback.entities import QueueItem


class NowPlayingIndicator(ABC):
    """Shows what is currently playing (bot presence, status message, ...)."""

    @abstractmethod
    async def show(self, item: QueueItem) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...
