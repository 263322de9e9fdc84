"""In-memory registry of per-guild playback sessions and their last activity."""

from __future__ import annotations

import asyncio
import logging

from ...domain.playback.entities import GuildPlaybackState
from ...domain.shared.datetime_utils import MonotonicClock, monotonic
from ...domain.shared.messages import LogTemplates
from ...domain.shared.types import DiscordSnowflake

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps guild IDs to their playback state, creating sessions on first use.

    Sessions live for the lifetime of the process; they are reset through
    their own operations rather than removed.
    """

    def __init__(self) -> None:
        self._sessions: dict[DiscordSnowflake, GuildPlaybackState] = {}
        self._lock = asyncio.Lock()

    async def get_or_create(self, guild_id: DiscordSnowflake) -> GuildPlaybackState:
        async with self._lock:
            state = self._sessions.get(guild_id)
            if state is None:
                state = GuildPlaybackState(guild_id)
                self._sessions[guild_id] = state
                logger.debug(LogTemplates.SESSION_CREATED, guild_id)
            return state

    def get(self, guild_id: DiscordSnowflake) -> GuildPlaybackState | None:
        return self._sessions.get(guild_id)

    def all(self) -> list[GuildPlaybackState]:
        return list(self._sessions.values())

    async def discard(self, guild_id: DiscordSnowflake) -> GuildPlaybackState | None:
        async with self._lock:
            return self._sessions.pop(guild_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._sessions


class ActivityLedger:
    """Last-activity timestamps per guild on a monotonic clock."""

    def __init__(self, clock: MonotonicClock = monotonic) -> None:
        self._clock = clock
        self._last_activity: dict[DiscordSnowflake, float] = {}

    @property
    def clock(self) -> MonotonicClock:
        return self._clock

    def touch(self, guild_id: DiscordSnowflake) -> None:
        self._last_activity[guild_id] = self._clock()

    def last_activity(self, guild_id: DiscordSnowflake) -> float | None:
        return self._last_activity.get(guild_id)

    def idle_for(self, guild_id: DiscordSnowflake) -> float | None:
        """Seconds since the guild's last activity, or None if never touched."""
        last = self._last_activity.get(guild_id)
        if last is None:
            return None
        return self._clock() - last

    def remove(self, guild_id: DiscordSnowflake) -> None:
        self._last_activity.pop(guild_id, None)

    def items(self) -> list[tuple[DiscordSnowflake, float]]:
        return list(self._last_activity.items())

    def __len__(self) -> int:
        return len(self._last_activity)
