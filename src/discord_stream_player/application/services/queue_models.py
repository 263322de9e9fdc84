"""DTOs for the queue application service."""

from __future__ import annotations

from pydantic import BaseModel

from ...domain.playback.entities import QueueItem
from ...domain.shared.types import NonNegativeInt


class EnqueueResult(BaseModel):
    item: QueueItem
    position: NonNegativeInt
    queue_length: NonNegativeInt
    started_playback: bool = False


class QueueSnapshot(BaseModel):

    current_item: QueueItem | None
    upcoming_items: list[QueueItem]
    total_length: NonNegativeInt
    total_duration_seconds: NonNegativeInt | None

    @property
    def is_empty(self) -> bool:
        return self.current_item is None and not self.upcoming_items
