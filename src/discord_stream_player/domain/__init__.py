"""
Domain Layer

Contains pure business logic organized by bounded contexts:
- shared/: Cross-cutting types, exceptions and events
- playback/: Queue items, per-guild playback state and pipeline errors
"""

from discord_stream_player.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
