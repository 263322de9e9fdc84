"""Periodic release of playback resources held by idle guilds."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel

from ...domain.shared.events import EventBus, SessionIdleTimeout, get_event_bus
from ...domain.shared.messages import LogTemplates
from ...domain.shared.types import NonNegativeInt

if TYPE_CHECKING:
    from ...config.settings import IdleSettings
    from .playback_service import PlaybackApplicationService
    from .session_registry import ActivityLedger, SessionRegistry

logger = logging.getLogger(__name__)


class IdleReaper:
    """Stops playback in guilds that saw no queue activity for ``idle_timeout_s``.

    Reaped guilds keep their session and pending queue; only the loop,
    supervisor and voice connection are released.
    """

    def __init__(
        self,
        *,
        session_registry: SessionRegistry,
        activity_ledger: ActivityLedger,
        playback_service: PlaybackApplicationService,
        settings: IdleSettings,
        event_bus: EventBus | None = None,
    ) -> None:
        self._registry = session_registry
        self._ledger = activity_ledger
        self._playback = playback_service
        self._settings = settings
        self._event_bus = event_bus or get_event_bus()
        self._running = False
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._running:
            logger.warning(LogTemplates.IDLE_REAPER_ALREADY_RUNNING)
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="idle-reaper")
        logger.info(
            LogTemplates.IDLE_REAPER_STARTED,
            self._settings.idle_timeout_s,
            self._settings.check_interval_s,
        )

    async def stop(self) -> None:
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(LogTemplates.IDLE_REAPER_STOPPED)

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._settings.check_interval_s)
            except asyncio.CancelledError:
                break

            try:
                await self.sweep()
            except Exception:
                logger.exception("Error during idle sweep")

    async def sweep(self) -> SweepStats:
        stats = SweepStats()
        entries = self._ledger.items()
        now = self._ledger.clock()

        logger.debug(LogTemplates.IDLE_REAPER_SWEEP, len(entries))

        for guild_id, last_activity in entries:
            stats.checked += 1
            idle_seconds = now - last_activity
            if idle_seconds <= self._settings.idle_timeout_s:
                continue

            state = self._registry.get(guild_id)
            if state is None or not await state.is_playing():
                continue

            try:
                await self._playback.release(guild_id)
                await self._event_bus.publish(
                    SessionIdleTimeout(guild_id=guild_id, idle_seconds=idle_seconds)
                )
            except Exception as e:
                stats.failed += 1
                logger.error(LogTemplates.IDLE_REAPER_GUILD_FAILED, guild_id, e)
                continue

            self._ledger.remove(guild_id)
            stats.released += 1
            logger.info(LogTemplates.IDLE_REAPER_RELEASED, guild_id, idle_seconds)

        return stats

    @property
    def is_running(self) -> bool:
        return self._running


class SweepStats(BaseModel):
    checked: NonNegativeInt = 0
    released: NonNegativeInt = 0
    failed: NonNegativeInt = 0
