"""Typed errors raised by the streaming pipeline and the playback queue.

Restart decisions are made from the error type alone: every
:class:`PipelineError` subclass declares its :class:`ErrorSeverity`, and any
other exception reaching the supervisor is treated as fatal.
"""

from __future__ import annotations

from typing import ClassVar

from discord_stream_player.domain.playback.value_objects import ErrorSeverity
from discord_stream_player.domain.shared.exceptions import (
    BusinessRuleViolationError,
    DomainError,
)
from discord_stream_player.domain.shared.messages import ErrorMessages


class PipelineError(DomainError):
    """Base class for failures inside the decode, encode and send pipeline."""

    severity: ClassVar[ErrorSeverity] = ErrorSeverity.FATAL


class AcquisitionError(PipelineError):
    """The decoder process could not be started."""

    severity = ErrorSeverity.FATAL


class ReadTimeoutError(PipelineError):
    """No PCM data arrived from the decoder within the read timeout."""

    severity = ErrorSeverity.RECOVERABLE

    def __init__(self, timeout: float) -> None:
        super().__init__(ErrorMessages.READ_TIMEOUT.format(timeout=timeout))
        self.timeout = timeout


class TransportNotReadyError(PipelineError):
    """The voice transport was not ready to accept frames."""

    severity = ErrorSeverity.RECOVERABLE


class HealthStalenessError(PipelineError):
    """No frame was sent within the staleness window."""

    severity = ErrorSeverity.RECOVERABLE

    def __init__(self, seconds: float) -> None:
        super().__init__(ErrorMessages.STREAM_STALE.format(seconds=seconds))
        self.seconds = seconds


class RestartBudgetExhaustedError(PipelineError):
    """Recoverable errors kept happening after the last allowed restart."""

    severity = ErrorSeverity.FATAL

    def __init__(self, restarts: int, cause: BaseException | None = None) -> None:
        super().__init__(ErrorMessages.RESTART_BUDGET_EXHAUSTED.format(restarts=restarts))
        self.restarts = restarts
        self.cause = cause


class AlreadyPlayingError(DomainError):
    """play_stream was called on a supervisor that is already streaming."""

    def __init__(self) -> None:
        super().__init__(ErrorMessages.ALREADY_PLAYING, code="ALREADY_PLAYING")


class QueueIndexError(DomainError, IndexError):
    """A queue position outside ``[0, size)`` was addressed."""

    def __init__(self, index: int, size: int) -> None:
        super().__init__(
            ErrorMessages.QUEUE_INDEX_OUT_OF_RANGE.format(index=index, size=size),
            code="QUEUE_INDEX_OUT_OF_RANGE",
        )
        self.index = index
        self.size = size


class QueueFullError(BusinessRuleViolationError):
    def __init__(self, max_size: int) -> None:
        super().__init__(
            rule="MAX_QUEUE_SIZE",
            message=ErrorMessages.QUEUE_FULL.format(max_size=max_size),
        )
        self.max_size = max_size


class VoiceConnectionError(DomainError):
    """The voice connector could not produce a ready transport."""

    def __init__(self, message: str, channel_id: int | None = None) -> None:
        super().__init__(message, code="VOICE_CONNECTION_FAILED")
        self.channel_id = channel_id


def classify_error(exc: BaseException) -> ErrorSeverity:
    """Return how the supervisor should react to ``exc``."""
    if isinstance(exc, PipelineError):
        return exc.severity
    return ErrorSeverity.FATAL
