"""
Unit Tests for the Playback Domain Layer

Tests for:
- QueueItem validation and metadata
- GuildPlaybackState queue operations (add, next, remove, clear, shuffle)
- GuildPlaybackState flags, bindings and detach
- SupervisorState transitions and PlaybackPhase derivation
- Error classification
"""

import random
from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from discord_stream_player.domain.playback.entities import GuildPlaybackState, QueueItem
from discord_stream_player.domain.playback.errors import (
    AcquisitionError,
    HealthStalenessError,
    QueueFullError,
    QueueIndexError,
    ReadTimeoutError,
    RestartBudgetExhaustedError,
    TransportNotReadyError,
    classify_error,
)
from discord_stream_player.domain.playback.value_objects import (
    ErrorSeverity,
    PlaybackPhase,
    StreamStats,
    SupervisorState,
)


def _item(title: str, duration: int | None = None) -> QueueItem:
    return QueueItem(
        stream_url=f"https://cdn.example/{title}.opus",
        title=title,
        duration_seconds=duration,
    )


class _StubSupervisor:
    def __init__(self, state: SupervisorState) -> None:
        self.state = state


# =============================================================================
# QueueItem Tests
# =============================================================================


class TestQueueItem:
    """Unit tests for the QueueItem value object."""

    def test_create_minimal(self):
        """Should create an item from a locator and title."""
        item = _item("A")

        assert item.stream_url == "https://cdn.example/A.opus"
        assert item.title == "A"
        assert item.duration_seconds is None
        assert item.requested_at.tzinfo is not None

    def test_empty_stream_url_rejected(self):
        """Should reject an empty stream URL."""
        with pytest.raises(ValidationError):
            QueueItem(stream_url="", title="A")

    def test_empty_title_rejected(self):
        """Should reject an empty title."""
        with pytest.raises(ValidationError):
            QueueItem(stream_url="https://cdn.example/a", title="")

    def test_naive_requested_at_rejected(self):
        """Should reject a timezone-naive requested_at."""
        with pytest.raises(ValidationError):
            QueueItem(stream_url="u", title="A", requested_at=datetime(2024, 1, 1))

    def test_requested_at_normalised_to_utc(self):
        """Should convert an aware requested_at to UTC."""
        plus_two = timezone(timedelta(hours=2))
        item = QueueItem(stream_url="u", title="A", requested_at=datetime(2024, 1, 1, 12, tzinfo=plus_two))

        assert item.requested_at == datetime(2024, 1, 1, 10, tzinfo=UTC)

    def test_immutable(self):
        """Should be frozen."""
        item = _item("A")

        with pytest.raises(ValidationError):
            item.title = "B"

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(None, "Unknown"), (59, "0:59"), (185, "3:05"), (3725, "1:02:05")],
    )
    def test_duration_formatted(self, seconds, expected):
        """Should format durations as M:SS or H:MM:SS."""
        assert _item("A", seconds).duration_formatted == expected

    def test_display_title_includes_duration(self):
        """Should append the duration when known."""
        assert _item("Song", 185).display_title == "Song [3:05]"
        assert _item("Song").display_title == "Song"

    def test_with_metadata_merges(self):
        """Should return a copy with merged metadata, leaving the original untouched."""
        item = _item("A").with_metadata(source="radio")
        merged = item.with_metadata(genre="jazz")

        assert dict(merged.metadata) == {"genre": "jazz", "source": "radio"}
        assert dict(item.metadata) == {"source": "radio"}

    def test_metadata_read_only(self):
        """Should expose metadata as a read-only mapping."""
        item = _item("A").with_metadata(source="radio")

        with pytest.raises(TypeError):
            item.metadata["source"] = "other"  # type: ignore[index]


# =============================================================================
# GuildPlaybackState Queue Tests
# =============================================================================


class TestGuildPlaybackStateQueue:
    """Unit tests for queue operations."""

    @pytest.fixture
    def state(self):
        return GuildPlaybackState(guild_id=123456)

    @pytest.mark.asyncio
    async def test_add_preserves_insertion_order(self, state):
        """Should list items in insertion order and count them."""
        for title in ["A", "B", "C", "D"]:
            await state.add(_item(title))

        assert [i.title for i in await state.list()] == ["A", "B", "C", "D"]
        assert await state.size() == 4

    @pytest.mark.asyncio
    async def test_add_returns_position(self, state):
        """Should return the 0-based position of the appended item."""
        assert await state.add(_item("A")) == 0
        assert await state.add(_item("B")) == 1

    @pytest.mark.asyncio
    async def test_add_respects_limit(self, state):
        """Should raise QueueFullError when the limit is reached."""
        await state.add(_item("A"), limit=2)
        await state.add(_item("B"), limit=2)

        with pytest.raises(QueueFullError):
            await state.add(_item("C"), limit=2)
        assert await state.size() == 2

    @pytest.mark.asyncio
    async def test_next_remove_scenario(self, state):
        """Should dequeue A from [A, B, C] and then remove B at index 0."""
        for title in ["A", "B", "C"]:
            await state.add(_item(title))

        first = await state.next()
        assert first.title == "A"
        assert [i.title for i in await state.list()] == ["B", "C"]

        removed = await state.remove(0)
        assert removed.title == "B"
        assert [i.title for i in await state.list()] == ["C"]

    @pytest.mark.asyncio
    async def test_next_sets_current(self, state):
        """Should make the dequeued item current."""
        await state.add(_item("A"))

        item = await state.next()

        assert await state.current_item() is item
        assert await state.size() == 0

    @pytest.mark.asyncio
    async def test_next_on_empty_keeps_current(self, state):
        """Should return None on an empty queue without touching current."""
        await state.add(_item("A"))
        current = await state.next()

        assert await state.next() is None
        assert await state.current_item() is current

    @pytest.mark.asyncio
    async def test_next_on_fresh_state(self, state):
        """Should return None when nothing was ever queued."""
        assert await state.next() is None
        assert await state.current_item() is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [-1, 3, 10])
    async def test_remove_out_of_range(self, state, index):
        """Should raise QueueIndexError and leave the queue unchanged."""
        for title in ["A", "B", "C"]:
            await state.add(_item(title))

        with pytest.raises(QueueIndexError):
            await state.remove(index)
        assert [i.title for i in await state.list()] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_remove_error_is_index_error(self, state):
        """Should be catchable as a builtin IndexError."""
        with pytest.raises(IndexError):
            await state.remove(0)

    @pytest.mark.asyncio
    async def test_remove_middle_keeps_relative_order(self, state):
        """Should remove exactly the i-th element."""
        for title in ["A", "B", "C", "D"]:
            await state.add(_item(title))

        removed = await state.remove(2)

        assert removed.title == "C"
        assert [i.title for i in await state.list()] == ["A", "B", "D"]

    @pytest.mark.asyncio
    async def test_clear_empties_queue_and_current(self, state):
        """Should drop pending items and the current item."""
        for title in ["A", "B", "C"]:
            await state.add(_item(title))
        await state.next()

        assert await state.clear() == 2
        assert await state.size() == 0
        assert await state.current_item() is None
        assert state.has_items is False

    @pytest.mark.asyncio
    async def test_shuffle_keeps_items(self, state):
        """Should reorder pending items without losing any."""
        titles = [str(i) for i in range(10)]
        for title in titles:
            await state.add(_item(title))

        count = await state.shuffle(random.Random(1))

        assert count == 10
        assert sorted(i.title for i in await state.list()) == sorted(titles)

    @pytest.mark.asyncio
    async def test_add_with_metadata(self, state):
        """Should store the item with the extra metadata attached."""
        await state.add_with_metadata(_item("A"), requester_name="alice")

        (stored,) = await state.list()
        assert stored.metadata["requester_name"] == "alice"


# =============================================================================
# GuildPlaybackState Flags and Bindings Tests
# =============================================================================


class TestGuildPlaybackStateFlags:
    """Unit tests for playing/skip flags and bindings."""

    @pytest.fixture
    def state(self):
        return GuildPlaybackState(guild_id=123456)

    @pytest.mark.asyncio
    async def test_playing_flag(self, state):
        """Should set and read the playing flag."""
        assert await state.is_playing() is False
        await state.set_playing(True)
        assert await state.is_playing() is True

    @pytest.mark.asyncio
    async def test_end_if_empty(self, state):
        """Should clear the playing flag only when nothing is queued."""
        await state.set_playing(True)
        await state.add(QueueItem(stream_url="https://cdn.example/a.opus", title="A"))

        assert await state.end_if_empty() is False
        assert await state.is_playing() is True

        await state.next()
        assert await state.end_if_empty() is True
        assert await state.is_playing() is False

    @pytest.mark.asyncio
    async def test_consume_skip_resets_flag(self, state):
        """Should return the skip flag and reset it."""
        await state.set_skip(True)

        assert await state.skip_requested() is True
        assert await state.consume_skip() is True
        assert await state.consume_skip() is False

    @pytest.mark.asyncio
    async def test_detach_returns_and_clears_bindings(self, state):
        """Should return bound transport and supervisor and clear playing."""
        transport, supervisor = object(), _StubSupervisor(SupervisorState.STREAMING)
        await state.set_voice_transport(transport)
        await state.set_supervisor(supervisor)
        await state.set_playing(True)

        assert await state.detach() == (transport, supervisor)
        assert await state.get_voice_transport() is None
        assert await state.get_supervisor() is None
        assert await state.is_playing() is False

    @pytest.mark.asyncio
    async def test_phase_follows_flags_and_supervisor(self, state):
        """Should derive the joint phase from the playing flag and supervisor state."""
        assert state.phase is PlaybackPhase.IDLE

        await state.set_playing(True)
        assert state.phase is PlaybackPhase.QUEUED_TO_PLAY

        supervisor = _StubSupervisor(SupervisorState.STARTING)
        await state.set_supervisor(supervisor)
        assert state.phase is PlaybackPhase.PIPELINE_STARTING

        supervisor.state = SupervisorState.STREAMING
        assert state.phase is PlaybackPhase.PIPELINE_ACTIVE

        supervisor.state = SupervisorState.STOPPED
        assert state.phase is PlaybackPhase.STOPPED


# =============================================================================
# Value Object Tests
# =============================================================================


class TestSupervisorState:
    """Unit tests for SupervisorState transitions."""

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (SupervisorState.IDLE, SupervisorState.STARTING),
            (SupervisorState.STARTING, SupervisorState.STREAMING),
            (SupervisorState.STREAMING, SupervisorState.COMPLETED),
            (SupervisorState.STREAMING, SupervisorState.FAILED),
            (SupervisorState.FAILED, SupervisorState.RESTARTING),
            (SupervisorState.RESTARTING, SupervisorState.STREAMING),
            (SupervisorState.FAILED, SupervisorState.STOPPED),
            (SupervisorState.COMPLETED, SupervisorState.STARTING),
        ],
    )
    def test_valid_transitions(self, source, target):
        """Should allow the documented transitions."""
        assert source.can_transition_to(target)

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (SupervisorState.IDLE, SupervisorState.STREAMING),
            (SupervisorState.COMPLETED, SupervisorState.STOPPED),
            (SupervisorState.STOPPED, SupervisorState.RESTARTING),
            (SupervisorState.FAILED, SupervisorState.STREAMING),
        ],
    )
    def test_invalid_transitions(self, source, target):
        """Should reject undocumented transitions."""
        assert not source.can_transition_to(target)

    def test_terminal_states(self):
        """Should treat only COMPLETED and STOPPED as terminal."""
        terminal = {s for s in SupervisorState if s.is_terminal}

        assert terminal == {SupervisorState.COMPLETED, SupervisorState.STOPPED}


class TestPlaybackPhase:
    """Unit tests for PlaybackPhase.derive."""

    def test_failed_supervisor_counts_as_starting(self):
        """Should map a FAILED supervisor to PIPELINE_STARTING."""
        phase = PlaybackPhase.derive(playing=True, supervisor_state=SupervisorState.FAILED)

        assert phase is PlaybackPhase.PIPELINE_STARTING

    def test_completed_supervisor_is_stopped(self):
        """Should map a completed supervisor to STOPPED."""
        phase = PlaybackPhase.derive(playing=True, supervisor_state=SupervisorState.COMPLETED)

        assert phase is PlaybackPhase.STOPPED


class TestStreamStats:
    def test_defaults_to_zero(self):
        """Should start every counter at zero."""
        stats = StreamStats()

        assert (stats.frames_sent, stats.frames_dropped, stats.encode_errors, stats.restarts) == (0, 0, 0, 0)


# =============================================================================
# Error Classification Tests
# =============================================================================


class TestClassifyError:
    """Unit tests for classify_error."""

    @pytest.mark.parametrize(
        "error",
        [
            ReadTimeoutError(5.0),
            TransportNotReadyError("not ready"),
            HealthStalenessError(12.0),
        ],
    )
    def test_recoverable(self, error):
        """Should classify read, transport and staleness errors as recoverable."""
        assert classify_error(error) is ErrorSeverity.RECOVERABLE

    @pytest.mark.parametrize(
        "error",
        [
            AcquisitionError("spawn failed"),
            RestartBudgetExhaustedError(3),
            RuntimeError("timeout while reading"),
            OSError("broken pipe"),
        ],
    )
    def test_fatal(self, error):
        """Should classify acquisition, budget and unknown errors as fatal."""
        assert classify_error(error) is ErrorSeverity.FATAL

    def test_read_timeout_message(self):
        """Should carry the timeout in the message."""
        error = ReadTimeoutError(5.0)

        assert error.timeout == 5.0
        assert "5.0" in str(error)

    def test_budget_error_keeps_cause(self):
        """Should keep the restart count and the last recoverable cause."""
        cause = ReadTimeoutError(1.0)
        error = RestartBudgetExhaustedError(3, cause=cause)

        assert error.restarts == 3
        assert error.cause is cause
