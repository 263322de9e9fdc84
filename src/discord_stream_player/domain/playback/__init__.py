"""
Playback Bounded Context

Domain logic for queued audio items, per-guild playback state and the
typed errors of the streaming pipeline.
"""

from discord_stream_player.domain.playback.entities import GuildPlaybackState, QueueItem
from discord_stream_player.domain.playback.errors import (
    AcquisitionError,
    AlreadyPlayingError,
    HealthStalenessError,
    PipelineError,
    QueueFullError,
    QueueIndexError,
    ReadTimeoutError,
    RestartBudgetExhaustedError,
    TransportNotReadyError,
    VoiceConnectionError,
    classify_error,
)
from discord_stream_player.domain.playback.value_objects import (
    ErrorSeverity,
    PlaybackPhase,
    StreamStats,
    SupervisorState,
)

__all__ = [
    # Entities
    "QueueItem",
    "GuildPlaybackState",
    # Value Objects
    "SupervisorState",
    "ErrorSeverity",
    "PlaybackPhase",
    "StreamStats",
    # Errors
    "PipelineError",
    "AcquisitionError",
    "ReadTimeoutError",
    "TransportNotReadyError",
    "HealthStalenessError",
    "RestartBudgetExhaustedError",
    "AlreadyPlayingError",
    "QueueIndexError",
    "QueueFullError",
    "VoiceConnectionError",
    "classify_error",
]
