"""
Shared Domain Kernel

Contains exceptions, constrained types and events shared across the domain.
"""

from discord_stream_player.domain.shared.exceptions import (
    BusinessRuleViolationError,
    DomainError,
    InvalidOperationError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "ValidationError",
    "BusinessRuleViolationError",
    "InvalidOperationError",
]
