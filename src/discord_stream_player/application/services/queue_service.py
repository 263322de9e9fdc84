"""Queue Application Service - manages queue operations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ...domain.playback.entities import QueueItem
from ...domain.shared.events import EventBus, TrackQueued, get_event_bus
from ...domain.shared.messages import LogTemplates
from ...domain.shared.types import ChannelIdField, DiscordSnowflake, QueueIndex
from .queue_models import EnqueueResult, QueueSnapshot

if TYPE_CHECKING:
    from ...config.settings import QueueSettings
    from .playback_service import PlaybackApplicationService
    from .session_registry import ActivityLedger, SessionRegistry

logger = logging.getLogger(__name__)


class QueueApplicationService:
    """Manages queue operations (add, remove, clear, shuffle) for guilds.

    Every operation counts as activity for the idle reaper. Enqueueing also
    makes sure the guild's playback loop is running.
    """

    def __init__(
        self,
        *,
        session_registry: SessionRegistry,
        activity_ledger: ActivityLedger,
        playback_service: PlaybackApplicationService,
        settings: QueueSettings,
        event_bus: EventBus | None = None,
    ) -> None:
        self._registry = session_registry
        self._ledger = activity_ledger
        self._playback = playback_service
        self._settings = settings
        self._event_bus = event_bus or get_event_bus()

    async def enqueue(
        self,
        guild_id: DiscordSnowflake,
        channel_id: ChannelIdField,
        item: QueueItem,
    ) -> EnqueueResult:
        """Append ``item`` and start playback if the guild is idle.

        Raises:
            QueueFullError: If the queue already holds ``max_queue_size`` items.
        """
        return await self.enqueue_with_metadata(guild_id, channel_id, item)

    async def enqueue_with_metadata(
        self,
        guild_id: DiscordSnowflake,
        channel_id: ChannelIdField,
        item: QueueItem,
        **extra: Any,
    ) -> EnqueueResult:
        state = await self._registry.get_or_create(guild_id)
        self._ledger.touch(guild_id)

        if extra:
            item = item.with_metadata(**extra)
        position = await state.add(item, limit=self._settings.max_queue_size)
        queue_length = await state.size()
        logger.info(LogTemplates.QUEUE_ENQUEUED, item.title, position, guild_id)

        await self._event_bus.publish(
            TrackQueued(
                guild_id=guild_id,
                item_title=item.title,
                requested_by=item.requested_by,
                queue_position=position,
            )
        )

        started = await self._playback.ensure_playing(guild_id, channel_id)
        return EnqueueResult(
            item=item,
            position=position,
            queue_length=queue_length,
            started_playback=started,
        )

    async def remove(self, guild_id: DiscordSnowflake, index: QueueIndex) -> QueueItem:
        """Remove the pending item at ``index``.

        Raises:
            QueueIndexError: If ``index`` is outside the queue.
        """
        state = await self._registry.get_or_create(guild_id)
        self._ledger.touch(guild_id)

        item = await state.remove(index)
        logger.info(LogTemplates.QUEUE_REMOVED, item.title, guild_id)
        return item

    async def clear(self, guild_id: DiscordSnowflake) -> int:
        state = await self._registry.get_or_create(guild_id)
        self._ledger.touch(guild_id)

        count = await state.clear()
        logger.info(LogTemplates.QUEUE_CLEARED, count, guild_id)
        return count

    async def shuffle(self, guild_id: DiscordSnowflake) -> int:
        state = await self._registry.get_or_create(guild_id)
        self._ledger.touch(guild_id)

        count = await state.shuffle()
        logger.info(LogTemplates.QUEUE_SHUFFLED, count, guild_id)
        return count

    async def get_queue(self, guild_id: DiscordSnowflake) -> QueueSnapshot:
        state = await self._registry.get_or_create(guild_id)
        self._ledger.touch(guild_id)

        current = await state.current_item()
        upcoming = await state.list()

        durations = [i.duration_seconds for i in ([current] if current else []) + upcoming]
        total_duration = None if any(d is None for d in durations) else sum(durations)

        return QueueSnapshot(
            current_item=current,
            upcoming_items=upcoming,
            total_length=len(upcoming),
            total_duration_seconds=total_duration,
        )
