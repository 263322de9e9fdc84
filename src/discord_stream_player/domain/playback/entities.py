"""Core domain entities for the playback bounded context."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from discord_stream_player.domain.playback.errors import QueueFullError, QueueIndexError
from discord_stream_player.domain.playback.value_objects import PlaybackPhase, SupervisorState
from discord_stream_player.domain.shared.datetime_utils import utcnow
from discord_stream_player.domain.shared.types import (
    DiscordSnowflake,
    DurationSeconds,
    NonEmptyStr,
    TitleStr,
    UtcDatetimeField,
)


class QueueItem(BaseModel):
    """Immutable value object describing one resolved, playable audio item."""

    model_config = ConfigDict(frozen=True, strict=True)

    stream_url: NonEmptyStr
    title: TitleStr
    original_url: NonEmptyStr | None = None
    item_id: NonEmptyStr | None = None
    requested_by: NonEmptyStr | None = None
    requested_at: UtcDatetimeField = Field(default_factory=utcnow)
    duration_seconds: DurationSeconds | None = None

    # Sorted (key, value) pairs; read through ``metadata``.
    extra: tuple[tuple[str, Any], ...] = ()

    @property
    def metadata(self) -> Mapping[str, Any]:
        return MappingProxyType(dict(self.extra))

    @property
    def duration_formatted(self) -> str:
        """Format duration as MM:SS or HH:MM:SS."""
        if self.duration_seconds is None:
            return "Unknown"

        hours, remainder = divmod(self.duration_seconds, 3600)
        minutes, seconds = divmod(remainder, 60)

        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    @property
    def display_title(self) -> str:
        if self.duration_seconds:
            return f"{self.title} [{self.duration_formatted}]"
        return self.title

    def with_metadata(self, **extra: Any) -> QueueItem:
        """Return a copy of this item with ``extra`` merged into its metadata."""
        merged = {**dict(self.extra), **extra}
        return self.model_copy(update={"extra": tuple(sorted(merged.items()))})


class SupervisorHandle(Protocol):
    """What a session needs to know about its bound supervisor."""

    @property
    def state(self) -> SupervisorState: ...


class GuildPlaybackState:
    """Playback state for a single guild.

    Holds the pending queue, the item currently dequeued for playback, the
    playing and skip flags, and the bound voice transport and supervisor. All
    mutating operations run under ``lock``; read-only properties return
    snapshots.
    """

    def __init__(self, guild_id: DiscordSnowflake) -> None:
        self.guild_id = guild_id
        self.lock = asyncio.Lock()
        self._queue: list[QueueItem] = []
        self._current: QueueItem | None = None
        self._playing = False
        self._skip_requested = False
        self._transport: Any | None = None
        self._supervisor: SupervisorHandle | None = None

    def __repr__(self) -> str:
        return (
            f"GuildPlaybackState(guild_id={self.guild_id}, size={len(self._queue)}, "
            f"playing={self._playing}, phase={self.phase.value})"
        )

    # --- queue ---

    async def add(self, item: QueueItem, *, limit: int | None = None) -> int:
        """Append ``item`` to the tail and return its 0-based position.

        The queue itself is unbounded; callers enforcing a size policy pass
        ``limit`` and get :class:`QueueFullError` when it is reached.
        """
        async with self.lock:
            if limit is not None and len(self._queue) >= limit:
                raise QueueFullError(limit)
            self._queue.append(item)
            return len(self._queue) - 1

    async def add_with_metadata(
        self, item: QueueItem, *, limit: int | None = None, **extra: Any
    ) -> int:
        return await self.add(item.with_metadata(**extra) if extra else item, limit=limit)

    async def next(self) -> QueueItem | None:
        """Pop the head of the queue and make it the current item.

        Returns ``None`` without touching the current item when the queue is empty.
        """
        async with self.lock:
            if not self._queue:
                return None
            item = self._queue.pop(0)
            self._current = item
            return item

    async def remove(self, index: int) -> QueueItem:
        async with self.lock:
            if not 0 <= index < len(self._queue):
                raise QueueIndexError(index, len(self._queue))
            return self._queue.pop(index)

    async def clear(self) -> int:
        """Empty the queue and unset the current item, returning the count removed."""
        async with self.lock:
            count = len(self._queue)
            self._queue.clear()
            self._current = None
            return count

    async def shuffle(self, rng: random.Random | None = None) -> int:
        """Reorder pending items in place; the current item is untouched."""
        async with self.lock:
            (rng or random).shuffle(self._queue)
            return len(self._queue)

    async def list(self) -> list[QueueItem]:
        async with self.lock:
            return list(self._queue)

    async def size(self) -> int:
        async with self.lock:
            return len(self._queue)

    async def current_item(self) -> QueueItem | None:
        async with self.lock:
            return self._current

    # --- flags ---

    async def set_playing(self, playing: bool) -> None:
        async with self.lock:
            self._playing = playing

    async def is_playing(self) -> bool:
        async with self.lock:
            return self._playing

    async def end_if_empty(self) -> bool:
        """Clear the playing flag if nothing is queued.

        Returns True when playback ended, False when items arrived and the
        caller should keep going.
        """
        async with self.lock:
            if self._queue:
                return False
            self._playing = False
            return True

    async def set_skip(self, skip: bool) -> None:
        async with self.lock:
            self._skip_requested = skip

    async def skip_requested(self) -> bool:
        async with self.lock:
            return self._skip_requested

    async def consume_skip(self) -> bool:
        """Return the skip flag and reset it."""
        async with self.lock:
            skipped = self._skip_requested
            self._skip_requested = False
            return skipped

    # --- bindings ---

    async def set_voice_transport(self, transport: Any | None) -> None:
        async with self.lock:
            self._transport = transport

    async def get_voice_transport(self) -> Any | None:
        async with self.lock:
            return self._transport

    async def set_supervisor(self, supervisor: SupervisorHandle | None) -> None:
        async with self.lock:
            self._supervisor = supervisor

    async def get_supervisor(self) -> SupervisorHandle | None:
        async with self.lock:
            return self._supervisor

    async def detach(self) -> tuple[Any | None, SupervisorHandle | None]:
        """Clear the playing flag and unbind transport and supervisor.

        Returns what was bound so the caller can stop and disconnect it
        outside the session lock.
        """
        async with self.lock:
            transport, supervisor = self._transport, self._supervisor
            self._playing = False
            self._transport = None
            self._supervisor = None
            return transport, supervisor

    # --- derived state ---

    @property
    def phase(self) -> PlaybackPhase:
        supervisor_state = self._supervisor.state if self._supervisor is not None else None
        return PlaybackPhase.derive(playing=self._playing, supervisor_state=supervisor_state)

    @property
    def has_items(self) -> bool:
        return self._current is not None or bool(self._queue)
