"""Centralized message constants for error messages and log templates."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Discord ID Validation Errors
    INVALID_SNOWFLAKE = "Discord snowflake ID must be positive"
    SNOWFLAKE_TOO_LARGE = "Discord snowflake ID exceeds maximum value (2^64)"

    # Queue Errors
    QUEUE_INDEX_OUT_OF_RANGE = "Invalid queue index {index} (queue has {size} items)"
    QUEUE_FULL = "Queue is full (max {max_size} items)"

    # Time/Date Validation Errors
    TIMEZONE_REQUIRED_UTC_DATETIME = "datetime must be timezone-aware (UTC)"

    # Pipeline Errors
    ALREADY_PLAYING = "Stream supervisor is already playing"
    DECODER_START_FAILED = "Failed to start decoder process: {error}"
    DECODER_NO_STDOUT = "Decoder process has no output stream"
    READ_TIMEOUT = "Timed out after {timeout}s reading PCM data"
    TRANSPORT_READY_TIMEOUT = "Timed out after {timeout}s waiting for voice transport"
    TRANSPORT_HEALTH_FAILED = "Voice transport health check failed: transport not ready"
    STREAM_STALE = "Stream health check failed: no frames in {seconds:.1f}s"
    RESTART_BUDGET_EXHAUSTED = "Restart budget exhausted after {restarts} restarts"
    ENCODER_BAD_BLOCK = "PCM block of {size} bytes exceeds frame size {frame_size}"

    # Voice Errors
    GUILD_NOT_FOUND = "Guild {guild_id} not found"
    CHANNEL_NOT_VOICE = "Channel {channel_id} is not a voice channel"
    VOICE_CONNECT_FAILED = "Failed to join voice channel {channel_id} after {attempts} attempts"
    VOICE_NOT_READY = "Voice connection to channel {channel_id} never became ready"

    # Configuration Errors
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"
    DISCORD_TOKEN_REQUIRED = "DISCORD__TOKEN environment variable is required"
    BOT_NOT_INITIALIZED = "Bot not initialized. Call set_bot() first."
    FFMPEG_NOT_FOUND = "ffmpeg executable not found: {path}"
    OPUS_NOT_LOADED = "libopus could not be loaded; voice frames cannot be encoded"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Decoder Process
    DECODER_STARTING = "Starting decoder process for %s"
    DECODER_STARTED = "Decoder process started (pid %s)"
    DECODER_STDERR = "ffmpeg[%s]: %s"
    DECODER_TERMINATED = "Decoder process %s terminated (returncode %s)"
    DECODER_KILL_FAILED = "Failed to kill decoder process %s: %r"

    # Frame Encoder
    ENCODER_CREATED = "Opus encoder created (%d Hz, %d channels, %d kbps)"
    ENCODER_FRAME_FAILED = "Opus encoding error, skipping frame: %r"

    # Stream Supervisor
    SUPERVISOR_STATE_CHANGED = "Supervisor %s state %s -> %s"
    SUPERVISOR_STREAM_STARTED = "Starting audio stream on supervisor %s"
    SUPERVISOR_STREAM_COMPLETED = "Audio stream completed normally on supervisor %s (%d frames)"
    SUPERVISOR_PROGRESS = "Supervisor %s streamed %d frames"
    SUPERVISOR_FRAME_DROPPED = "Voice send channel blocked, dropped frame %d"
    SUPERVISOR_ERROR = "Pipeline error on supervisor %s: %s"
    SUPERVISOR_RESTARTING = "Restarting stream on supervisor %s (attempt %d/%d)"
    SUPERVISOR_FATAL = "Error is not recoverable, stopping supervisor %s: %s"
    SUPERVISOR_BUDGET_EXHAUSTED = "Supervisor %s gave up: %s"
    SUPERVISOR_STOPPING = "Stopping supervisor %s"
    SUPERVISOR_HEALTH_FAILED = "Health check failed on supervisor %s: %s"
    SUPERVISOR_SPEAKING_FAILED = "Failed to toggle speaking indicator: %r"

    # Voice Transport
    VOICE_CONNECTING = "Joining voice channel %s in guild %s (attempt %d/%d)"
    VOICE_CONNECTED = "Voice connection ready for channel %s in guild %s"
    VOICE_CONNECT_ATTEMPT_FAILED = "Voice join attempt %d/%d failed: %r"
    VOICE_REUSED = "Reusing voice connection in guild %s"
    VOICE_MOVED = "Moved voice connection to channel %s in guild %s"
    VOICE_DISCONNECTED = "Disconnected from voice in guild %s"
    VOICE_DISCONNECT_FAILED = "Failed to disconnect voice in guild %s: %r"
    VOICE_SEND_FAILED = "Failed to send audio packet: %r"

    # Queue Operations
    QUEUE_ENQUEUED = "Added '%s' to queue at position %d in guild %s"
    QUEUE_REMOVED = "Removed '%s' from queue in guild %s"
    QUEUE_CLEARED = "Cleared %d items from queue in guild %s"
    QUEUE_SHUFFLED = "Shuffled %d items in guild %s"
    QUEUE_ENDED = "Queue ended in guild %s"

    # Playback Orchestration
    PLAYBACK_RUNNER_STARTED = "Playback runner started for guild %s"
    PLAYBACK_RUNNER_STOPPED = "Playback runner stopped for guild %s"
    PLAYBACK_RUNNER_ALREADY_ACTIVE = "Playback runner already active for guild %s"
    PLAYBACK_NOW_PLAYING = "Now playing '%s' in guild %s"
    PLAYBACK_FINISHED = "Finished '%s' in guild %s (skipped=%s, state=%s)"
    PLAYBACK_START_FAILED = "Failed to start '%s' in guild %s: %s"
    PLAYBACK_SKIPPED = "Skipped '%s' in guild %s"
    PLAYBACK_STOPPED = "Stopped playback in guild %s"
    PLAYBACK_WAITING_PREVIOUS = "Waiting for previous supervisor to stop in guild %s"
    PRESENCE_UPDATE_FAILED = "Failed to update now-playing indicator: %r"

    # Idle Reaper
    IDLE_REAPER_STARTED = "Idle reaper started (timeout %ss, interval %ss)"
    IDLE_REAPER_STOPPED = "Idle reaper stopped"
    IDLE_REAPER_ALREADY_RUNNING = "Idle reaper is already running"
    IDLE_REAPER_SWEEP = "Running idle sweep over %d sessions"
    IDLE_REAPER_RELEASED = "Guild %s idle for %.0fs, released playback resources"
    IDLE_REAPER_GUILD_FAILED = "Failed to reap idle guild %s: %r"

    # Session Registry
    SESSION_CREATED = "Created playback session for guild %s"

    # Bot Lifecycle
    BOT_STARTING = "Starting stream player (environment: %s)"
    BOT_STARTING_RUN = "Running bot..."
    BOT_STREAM_POLICY = "Stream policy: %dkbps, %d restarts, %.0fs idle timeout (reaper %s)"
    BOT_PREFLIGHT_FAILED = "Startup check failed: %s"
    BOT_STOPPED = "Bot stopped"
    BOT_KEYBOARD_INTERRUPT = "Received keyboard interrupt"
    BOT_FATAL_ERROR = "Fatal error: %s"
    BOT_SETUP = "Setting up bot..."
    BOT_SETUP_COMPLETE = "Bot setup complete"
    BOT_READY = "Bot ready as %s (ID: %s)"
    BOT_SHUTTING_DOWN = "Shutting down bot..."
    BOT_SHUTDOWN_COMPLETE = "Bot shutdown complete"
    BOT_SHUTDOWN_TIMEOUT = "Graceful shutdown timed out after %ss"
    BOT_REAPER_START_FAILED = "Failed to start idle reaper: %r"
    BOT_CONTAINER_SHUTDOWN_ERROR = "Error shutting down container: %r"
