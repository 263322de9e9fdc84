"""Immutable value objects for the playback bounded context."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from discord_stream_player.domain.shared.types import NonNegativeInt


class SupervisorState(Enum):
    """Lifecycle of a stream supervisor with enforced transitions.

    State transitions:
    - IDLE -> STARTING (play_stream)
    - STARTING -> STREAMING (decoder running)
    - STREAMING -> COMPLETED (decoder reached end of stream)
    - STARTING/STREAMING/RESTARTING -> FAILED (pipeline error)
    - FAILED -> RESTARTING (recoverable, budget left)
    - RESTARTING -> STREAMING (fresh attempt running)
    - FAILED -> STOPPED (fatal, or budget exhausted)
    - Any non-terminal -> STOPPED (stop)
    - COMPLETED/STOPPED -> STARTING (instance reused for a new stream)
    """

    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    RESTARTING = "restarting"
    STOPPED = "stopped"

    def can_transition_to(self, target: SupervisorState) -> bool:
        """Check if transition to target state is valid."""
        valid_transitions = {
            SupervisorState.IDLE: {SupervisorState.STARTING, SupervisorState.STOPPED},
            SupervisorState.STARTING: {
                SupervisorState.STREAMING,
                SupervisorState.FAILED,
                SupervisorState.STOPPED,
            },
            SupervisorState.STREAMING: {
                SupervisorState.COMPLETED,
                SupervisorState.FAILED,
                SupervisorState.STOPPED,
            },
            SupervisorState.FAILED: {SupervisorState.RESTARTING, SupervisorState.STOPPED},
            SupervisorState.RESTARTING: {
                SupervisorState.STREAMING,
                SupervisorState.FAILED,
                SupervisorState.STOPPED,
            },
            SupervisorState.COMPLETED: {SupervisorState.STARTING},
            SupervisorState.STOPPED: {SupervisorState.STARTING},
        }
        return target in valid_transitions.get(self, set())

    @property
    def is_terminal(self) -> bool:
        return self in {SupervisorState.COMPLETED, SupervisorState.STOPPED}

    @property
    def is_streaming(self) -> bool:
        return self == SupervisorState.STREAMING


class ErrorSeverity(Enum):
    """How the supervisor reacts to a pipeline error."""

    RECOVERABLE = "recoverable"
    FATAL = "fatal"


class PlaybackPhase(Enum):
    """Joint state of a session's playing flag and its bound supervisor.

    - IDLE: not playing and no supervisor bound
    - QUEUED_TO_PLAY: playing flag set, supervisor not yet bound
    - PIPELINE_STARTING: supervisor bound and working towards streaming
    - PIPELINE_ACTIVE: supervisor streaming frames
    - STOPPED: bound supervisor has reached a terminal state
    """

    IDLE = "idle"
    QUEUED_TO_PLAY = "queued_to_play"
    PIPELINE_STARTING = "pipeline_starting"
    PIPELINE_ACTIVE = "pipeline_active"
    STOPPED = "stopped"

    @classmethod
    def derive(cls, *, playing: bool, supervisor_state: SupervisorState | None) -> PlaybackPhase:
        if supervisor_state is None:
            return cls.QUEUED_TO_PLAY if playing else cls.IDLE
        if supervisor_state.is_terminal:
            return cls.STOPPED
        if supervisor_state.is_streaming:
            return cls.PIPELINE_ACTIVE
        return cls.PIPELINE_STARTING


class StreamStats(BaseModel):
    """Counters collected by a supervisor over its current stream."""

    model_config = ConfigDict(frozen=True)

    frames_sent: NonNegativeInt = 0
    frames_dropped: NonNegativeInt = 0
    encode_errors: NonNegativeInt = 0
    restarts: NonNegativeInt = 0
