"""
Stream Supervisor

Runs one decode -> encode -> send pipeline into a voice transport on a set
of cancellable asyncio tasks, watches its health, and restarts it a bounded
number of times when it fails with a recoverable error.

Tasks owned by a playing supervisor:

- stream: reads PCM blocks from the decoder, encodes and sends frames
- diagnostics: drains the decoder's stderr so it never blocks
- health: periodic staleness and transport readiness checks
- errors: single consumer of the error queue; decides restart or stop
"""

from __future__ import annotations

import asyncio
import itertools
import logging

from discord_stream_player.application.interfaces.audio_stream import (
    AudioStream,
    AudioStreamFactory,
    FrameEncoder,
    FrameEncoderFactory,
    PcmSource,
    PcmSourceFactory,
)
from discord_stream_player.application.interfaces.voice_transport import VoiceTransport
from discord_stream_player.config.settings import StreamSettings
from discord_stream_player.domain.playback.errors import (
    AlreadyPlayingError,
    HealthStalenessError,
    PipelineError,
    ReadTimeoutError,
    RestartBudgetExhaustedError,
    TransportNotReadyError,
    classify_error,
)
from discord_stream_player.domain.playback.value_objects import (
    ErrorSeverity,
    StreamStats,
    SupervisorState,
)
from discord_stream_player.domain.shared.datetime_utils import MonotonicClock, monotonic
from discord_stream_player.domain.shared.exceptions import InvalidOperationError
from discord_stream_player.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)

_READY_POLL_INTERVAL = 0.05

_ids = itertools.count(1)


class StreamSupervisor(AudioStream):
    """Supervised audio stream bound to one voice transport.

    ``play_stream`` returns as soon as the pipeline tasks are running; callers
    learn about the end of the stream through ``wait_finished``. Every error
    raised by the pipeline is funnelled into one queue and handled by a single
    task, so at most one restart happens per failed attempt.
    """

    def __init__(
        self,
        transport: VoiceTransport,
        *,
        decoder_factory: PcmSourceFactory,
        encoder_factory: FrameEncoderFactory,
        settings: StreamSettings | None = None,
        clock: MonotonicClock = monotonic,
        name: str | None = None,
    ) -> None:
        self._transport = transport
        self._decoder_factory = decoder_factory
        self._encoder_factory = encoder_factory
        self._settings = settings or StreamSettings()
        self._clock = clock
        self.name = name or f"stream-{next(_ids)}"

        self._lock = asyncio.Lock()
        self._state = SupervisorState.IDLE
        self._playing = False
        self._locator = ""
        self._encoder: FrameEncoder | None = None
        self._source: PcmSource | None = None

        self._attempt = 0
        self._restart_count = 0
        self._attempt_tasks: set[asyncio.Task[None]] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._errors: asyncio.Queue[tuple[int, BaseException]] = asyncio.Queue()
        self._stop_event = asyncio.Event()
        self._finished = asyncio.Event()
        self._teardown: asyncio.Task[None] | None = None

        self._last_frame_at = self._clock()
        self._last_error: BaseException | None = None
        self._frames_sent = 0
        self._frames_dropped = 0
        self._encode_errors = 0

    def __repr__(self) -> str:
        return f"StreamSupervisor(name={self.name!r}, state={self._state.value}, restarts={self._restart_count})"

    # === Public API ===

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def restart_count(self) -> int:
        return self._restart_count

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    @property
    def stats(self) -> StreamStats:
        return StreamStats(
            frames_sent=self._frames_sent,
            frames_dropped=self._frames_dropped,
            encode_errors=self._encode_errors,
            restarts=self._restart_count,
        )

    def is_playing(self) -> bool:
        return self._playing

    async def play_stream(self, locator: str) -> None:
        async with self._lock:
            if self._playing:
                raise AlreadyPlayingError()
            if self._teardown is not None:
                await asyncio.shield(self._teardown)
                self._teardown = None

            encoder = self._encoder_factory()
            self._transition(SupervisorState.STARTING)
            self._playing = True
            self._locator = locator
            self._encoder = encoder
            self._attempt = 0
            self._restart_count = 0
            self._frames_sent = 0
            self._frames_dropped = 0
            self._encode_errors = 0
            self._last_error = None
            self._errors = asyncio.Queue()
            self._stop_event.clear()
            self._finished.clear()

            logger.info(LogTemplates.SUPERVISOR_STREAM_STARTED, self.name)
            self._start_attempt_locked()
            self._tasks = {
                asyncio.create_task(self._handle_errors(), name=f"{self.name}-errors"),
                asyncio.create_task(self._health_loop(), name=f"{self.name}-health"),
            }

    async def stop(self) -> None:
        logger.debug(LogTemplates.SUPERVISOR_STOPPING, self.name)
        await self._shutdown(SupervisorState.STOPPED)

    async def wait_finished(self, timeout: float | None = None) -> bool:
        try:
            async with asyncio.timeout(timeout):
                await self._finished.wait()
        except TimeoutError:
            return False
        return True

    def check_health(self) -> PipelineError | None:
        """Return the health error for the current attempt, if any.

        Only a streaming supervisor can be unhealthy.
        """
        if not self._playing or self._state is not SupervisorState.STREAMING:
            return None
        silence = self._clock() - self._last_frame_at
        if silence > self._settings.stale_after_s:
            return HealthStalenessError(silence)
        if not self._transport.is_ready():
            return TransportNotReadyError(ErrorMessages.TRANSPORT_HEALTH_FAILED)
        return None

    # === State ===

    def _transition(self, target: SupervisorState) -> None:
        if not self._state.can_transition_to(target):
            raise InvalidOperationError(
                operation=f"transition to {target.value}",
                current_state=self._state.value,
            )
        logger.debug(LogTemplates.SUPERVISOR_STATE_CHANGED, self.name, self._state.value, target.value)
        self._state = target

    # === Attempts ===

    def _start_attempt_locked(self) -> None:
        """Build a decoder for the current attempt and spawn its stream task."""
        source = self._decoder_factory(self._locator)
        self._source = source
        self._last_frame_at = self._clock()
        attempt = self._attempt
        task = asyncio.create_task(
            self._run_attempt(attempt, source, self._encoder),
            name=f"{self.name}-stream-{attempt}",
        )
        self._attempt_tasks = {task}

    async def _run_attempt(self, attempt: int, source: PcmSource, encoder: FrameEncoder) -> None:
        try:
            await source.start()
            drain = asyncio.create_task(source.drain_diagnostics(), name=f"{self.name}-diagnostics-{attempt}")
            self._attempt_tasks.add(drain)
            await self._wait_transport_ready()

            async with self._lock:
                if attempt != self._attempt or not self._playing:
                    return
                self._transition(SupervisorState.STREAMING)
                self._last_frame_at = self._clock()

            await self._set_speaking(True)
            try:
                await self._pump(source, encoder)
            finally:
                await self._set_speaking(False)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._errors.put_nowait((attempt, e))
            return

        await self._complete(attempt)

    async def _wait_transport_ready(self) -> None:
        timeout = self._settings.ready_timeout_s
        try:
            async with asyncio.timeout(timeout):
                while not self._transport.is_ready():
                    await asyncio.sleep(_READY_POLL_INTERVAL)
        except TimeoutError as e:
            raise TransportNotReadyError(ErrorMessages.TRANSPORT_READY_TIMEOUT.format(timeout=timeout)) from e

    async def _pump(self, source: PcmSource, encoder: FrameEncoder) -> None:
        frame_size = encoder.frame_size_bytes
        read_timeout = self._settings.read_timeout_s
        send_timeout = self._settings.send_timeout_s
        log_every = self._settings.progress_log_every

        while True:
            try:
                async with asyncio.timeout(read_timeout):
                    block = await source.read_block(frame_size)
            except TimeoutError as e:
                raise ReadTimeoutError(read_timeout) from e

            if not block:
                return

            try:
                frame = encoder.encode(block)
            except Exception as e:
                await self._record(encode_error=True)
                logger.warning(LogTemplates.ENCODER_FRAME_FAILED, e)
                continue

            sent = await self._transport.send_frame(frame, timeout=send_timeout)
            total = await self._record(sent=sent, dropped=not sent)
            if not sent:
                logger.debug(LogTemplates.SUPERVISOR_FRAME_DROPPED, total)
            elif self._frames_sent % log_every == 0:
                logger.debug(LogTemplates.SUPERVISOR_PROGRESS, self.name, self._frames_sent)

            if len(block) < frame_size:
                return

    async def _record(
        self, *, sent: bool = False, dropped: bool = False, encode_error: bool = False
    ) -> int:
        """Update frame counters; returns frames sent plus dropped."""
        async with self._lock:
            if sent:
                self._frames_sent += 1
                self._last_frame_at = self._clock()
            if dropped:
                self._frames_dropped += 1
            if encode_error:
                self._encode_errors += 1
            return self._frames_sent + self._frames_dropped

    async def _complete(self, attempt: int) -> None:
        async with self._lock:
            if attempt != self._attempt or self._state is not SupervisorState.STREAMING:
                return
            self._transition(SupervisorState.COMPLETED)
        logger.info(LogTemplates.SUPERVISOR_STREAM_COMPLETED, self.name, self._frames_sent)
        await self._shutdown(SupervisorState.COMPLETED)

    # === Health ===

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.health_interval_s)
            error = self.check_health()
            if error is not None:
                logger.warning(LogTemplates.SUPERVISOR_HEALTH_FAILED, self.name, error)
                self._errors.put_nowait((self._attempt, error))

    # === Error handling ===

    async def _handle_errors(self) -> None:
        while True:
            attempt, error = await self._errors.get()
            await self._handle_error(attempt, error)
            if not self._playing:
                return

    async def _handle_error(self, attempt: int, error: BaseException) -> None:
        severity = classify_error(error)
        async with self._lock:
            if attempt != self._attempt or not self._playing or self._state.is_terminal:
                # Attempt already replaced or torn down.
                return
            logger.warning(LogTemplates.SUPERVISOR_ERROR, self.name, error)
            self._last_error = error
            self._transition(SupervisorState.FAILED)

            if severity is ErrorSeverity.FATAL:
                logger.error(LogTemplates.SUPERVISOR_FATAL, self.name, error)
                restart = False
            elif self._restart_count >= self._settings.max_restarts:
                self._last_error = RestartBudgetExhaustedError(self._restart_count, cause=error)
                logger.error(LogTemplates.SUPERVISOR_BUDGET_EXHAUSTED, self.name, self._last_error)
                restart = False
            else:
                self._restart_count += 1
                self._attempt += 1
                self._transition(SupervisorState.RESTARTING)
                logger.info(
                    LogTemplates.SUPERVISOR_RESTARTING,
                    self.name,
                    self._restart_count,
                    self._settings.max_restarts,
                )
                restart = True
            old_tasks = self._attempt_tasks
            self._attempt_tasks = set()
            old_source = self._source

        if not restart:
            await self._shutdown(SupervisorState.STOPPED)
            return

        await _cancel_all(old_tasks)
        if old_source is not None:
            await old_source.terminate()

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._settings.restart_backoff_s)
        except TimeoutError:
            pass
        else:
            return

        async with self._lock:
            if self._state is not SupervisorState.RESTARTING or not self._playing:
                return
            self._start_attempt_locked()

    # === Teardown ===

    async def _shutdown(self, target: SupervisorState) -> None:
        """Release every resource and move to ``target`` unless already terminal.

        The first caller schedules a single teardown task; every caller,
        including concurrent ones, returns only once that task is done.
        """
        current = asyncio.current_task()
        async with self._lock:
            if self._teardown is None:
                if not self._state.is_terminal and self._state.can_transition_to(target):
                    self._transition(target)
                self._playing = False
                self._stop_event.set()
                tasks = {t for t in self._attempt_tasks | self._tasks if t is not current}
                self._attempt_tasks = set()
                self._tasks = set()
                source, self._source = self._source, None
                self._teardown = asyncio.create_task(
                    self._release(tasks, source), name=f"{self.name}-teardown"
                )
            teardown = self._teardown

        # Shielded: the teardown may be cancelling the very task awaiting it.
        await asyncio.shield(teardown)

    async def _release(self, tasks: set[asyncio.Task[None]], source: PcmSource | None) -> None:
        await _cancel_all(tasks)
        if source is not None:
            await source.terminate()
        await self._set_speaking(False)
        self._finished.set()

    async def _set_speaking(self, speaking: bool) -> None:
        try:
            await self._transport.set_speaking(speaking)
        except Exception as e:
            logger.warning(LogTemplates.SUPERVISOR_SPEAKING_FAILED, e)


async def _cancel_all(tasks: set[asyncio.Task[None]]) -> None:
    current = asyncio.current_task()
    owned = [t for t in tasks if t is not current]
    for task in owned:
        task.cancel()
    if owned:
        await asyncio.gather(*owned, return_exceptions=True)


def create_supervisor_factory(
    *,
    decoder_factory: PcmSourceFactory,
    encoder_factory: FrameEncoderFactory,
    settings: StreamSettings,
    clock: MonotonicClock = monotonic,
) -> AudioStreamFactory:
    """Return a factory binding fresh supervisors to a transport."""

    def factory(transport: VoiceTransport) -> AudioStream:
        return StreamSupervisor(
            transport,
            decoder_factory=decoder_factory,
            encoder_factory=encoder_factory,
            settings=settings,
            clock=clock,
        )

    return factory
